"""Object storage clients (S3 or local filesystem).

Both backends expose the same two calls used by the photo service:
``put(path, data, content_type)`` and ``create_signed_url(path, ttl_seconds)``.
One instance is built by the app factory and handed out via ``get_storage``.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import os
import time
from urllib.parse import quote, urlparse

import boto3
from botocore.client import BaseClient
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.core.config import Settings, settings
from app.core.errors import Forbidden, NotFound, Upstream

logger = logging.getLogger(__name__)


# =============================================================================
# S3 client construction
# =============================================================================

def _normalize_endpoint(endpoint_url: str | None) -> str | None:
    if endpoint_url:
        return endpoint_url.rstrip("/")
    return None


def _is_gcs_compat_endpoint(endpoint_url: str | None) -> bool:
    if not endpoint_url:
        return False
    hostname = (urlparse(endpoint_url).hostname or "").lower()
    return hostname == "storage.googleapis.com" or hostname.endswith(".storage.googleapis.com")


def _resolve_region(region: str | None, endpoint_url: str | None) -> str | None:
    selected = region or None
    if _is_gcs_compat_endpoint(endpoint_url) and (selected is None or selected == "us-east-1"):
        # GCS XML API expects region "auto" for SigV4 signing.
        return "auto"
    return selected


def _build_s3_config(url_style: str, timeout_seconds: float) -> Config:
    kwargs = {
        "connect_timeout": timeout_seconds,
        "read_timeout": timeout_seconds,
        "retries": {"max_attempts": 1},
    }
    style = (url_style or "").strip().lower()
    if style in {"path", "virtual"}:
        kwargs["s3"] = {"addressing_style": style}
    return Config(**kwargs)


def get_s3_client(config: Settings = settings, *, timeout_seconds: float = 10.0) -> BaseClient:
    """Return a configured S3 client (supports S3-compatible endpoints)."""
    endpoint = _normalize_endpoint(config.S3_ENDPOINT_URL)
    return boto3.client(
        "s3",
        region_name=_resolve_region(config.S3_REGION, endpoint),
        aws_access_key_id=config.AWS_ACCESS_KEY_ID or None,
        aws_secret_access_key=config.AWS_SECRET_ACCESS_KEY or None,
        endpoint_url=endpoint,
        config=_build_s3_config(config.S3_URL_STYLE, timeout_seconds),
    )


# =============================================================================
# Backends
# =============================================================================

class S3ObjectStorage:
    def __init__(self, client: BaseClient, bucket: str):
        self._client = client
        self._bucket = bucket

    def put(self, path: str, data: bytes, content_type: str | None = None) -> None:
        extra = {"ContentType": content_type} if content_type else {}
        try:
            self._client.put_object(Bucket=self._bucket, Key=path, Body=data, **extra)
        except (BotoCoreError, ClientError) as exc:
            logger.error("Storage put failed", extra={"path": path, "error": str(exc)})
            raise Upstream("storage_error", "Could not store object") from exc

    def create_signed_url(self, path: str, ttl_seconds: int) -> str:
        try:
            return self._client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self._bucket, "Key": path},
                ExpiresIn=ttl_seconds,
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("Signed URL failed", extra={"path": path, "error": str(exc)})
            raise Upstream("storage_error", "Could not sign object URL") from exc

    def close(self) -> None:
        self._client.close()


class LocalObjectStorage:
    """
    Filesystem storage for dev.

    Signed URLs carry an expiry and an HMAC over ``path:exp`` keyed by
    JWT_SECRET, so links still expire outside S3.
    """

    def __init__(self, root: str, base_url: str, secret: str):
        self._root = root
        self._base_url = base_url.rstrip("/")
        self._secret = secret

    def _full_path(self, path: str) -> str:
        full = os.path.abspath(os.path.join(self._root, path))
        if not full.startswith(os.path.abspath(self._root) + os.sep):
            raise Upstream("storage_error", "Invalid storage path")
        return full

    def put(self, path: str, data: bytes, content_type: str | None = None) -> None:
        full = self._full_path(path)
        os.makedirs(os.path.dirname(full), exist_ok=True)
        with open(full, "wb") as f:
            f.write(data)

    def sign(self, path: str, expires_at: int) -> str:
        message = f"{path}:{expires_at}".encode("utf-8")
        digest = hmac.new(self._secret.encode("utf-8"), message, hashlib.sha256).digest()
        return base64.urlsafe_b64encode(digest).decode("utf-8").rstrip("=")

    def create_signed_url(self, path: str, ttl_seconds: int) -> str:
        expires_at = int(time.time()) + ttl_seconds
        signature = self.sign(path, expires_at)
        return f"{self._base_url}/storage/{quote(path)}?exp={expires_at}&sig={signature}"

    def resolve_signed(self, path: str, expires_at: int, signature: str) -> str:
        """
        Check a link built by create_signed_url and return the file to serve.

        Raises:
            Forbidden: signature mismatch (code "invalid_signature") or
                expired link (code "link_expired")
            NotFound: nothing stored at path
        """
        if not hmac.compare_digest(self.sign(path, expires_at), signature or ""):
            raise Forbidden("invalid_signature", "Invalid link signature")
        if expires_at < int(time.time()):
            raise Forbidden("link_expired", "Link has expired")
        full = self._full_path(path)
        if not os.path.isfile(full):
            raise NotFound("object_not_found", "Object not found")
        return full

    def close(self) -> None:
        return None


def build_object_storage(config: Settings = settings):
    """Build the configured storage backend. Called once by the app factory."""
    backend = (config.STORAGE_BACKEND or "local").lower()
    if backend == "s3":
        return S3ObjectStorage(get_s3_client(config), config.S3_BUCKET)
    return LocalObjectStorage(config.LOCAL_STORAGE_PATH, config.APP_BASE_URL, config.JWT_SECRET)
