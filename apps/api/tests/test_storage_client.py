"""Tests for object storage clients."""
import time
from urllib.parse import parse_qs, urlparse

import pytest
from httpx import AsyncClient

from app.core.config import Settings
from app.core.deps import get_storage
from app.core.errors import Upstream
from app.services.storage_client import (
    LocalObjectStorage,
    S3ObjectStorage,
    _resolve_region,
    build_object_storage,
)


def test_local_put_and_signed_url(tmp_path):
    storage = LocalObjectStorage(str(tmp_path), "https://app.test/", "secret")
    storage.put("turns/abc/misc/x.jpg", b"data", "image/jpeg")
    assert (tmp_path / "turns/abc/misc/x.jpg").read_bytes() == b"data"

    url = storage.create_signed_url("turns/abc/misc/x.jpg", 60)
    parsed = urlparse(url)
    assert parsed.path == "/storage/turns/abc/misc/x.jpg"
    query = parse_qs(parsed.query)
    exp = int(query["exp"][0])
    assert time.time() < exp <= time.time() + 61
    assert query["sig"][0] == storage.sign("turns/abc/misc/x.jpg", exp)


def test_local_rejects_escape(tmp_path):
    storage = LocalObjectStorage(str(tmp_path), "https://app.test", "secret")
    with pytest.raises(Upstream):
        storage.put("../outside.jpg", b"x")


def test_gcs_endpoint_uses_auto_region():
    assert _resolve_region("us-east-1", "https://storage.googleapis.com") == "auto"
    assert _resolve_region("eu-west-1", "https://s3.amazonaws.com") == "eu-west-1"


def test_build_object_storage_backends(tmp_path):
    local = build_object_storage(
        Settings(DATABASE_URL="sqlite://", STORAGE_BACKEND="local", LOCAL_STORAGE_PATH=str(tmp_path))
    )
    assert isinstance(local, LocalObjectStorage)

    s3 = build_object_storage(
        Settings(
            DATABASE_URL="sqlite://",
            STORAGE_BACKEND="s3",
            S3_BUCKET="turn-photos",
            AWS_ACCESS_KEY_ID="key",
            AWS_SECRET_ACCESS_KEY="secret",
        )
    )
    assert isinstance(s3, S3ObjectStorage)
    url = s3.create_signed_url("turns/abc/misc/x.jpg", 120)
    assert "turns/abc/misc/x.jpg" in url
    assert "Expires=" in url or "X-Amz-Expires=120" in url
    s3.close()


# =============================================================================
# Local download route
# =============================================================================

PHOTO = "turns/abc/misc/x.jpg"


@pytest.fixture
def local_storage(tmp_path, overrides) -> LocalObjectStorage:
    storage = LocalObjectStorage(str(tmp_path), "https://app.test", "secret")
    storage.put(PHOTO, b"jpeg-bytes", "image/jpeg")
    overrides.dependency_overrides[get_storage] = lambda: storage
    return storage


def _relative(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.path}?{parsed.query}"


@pytest.mark.asyncio
async def test_signed_link_serves_object(client: AsyncClient, local_storage):
    response = await client.get(_relative(local_storage.create_signed_url(PHOTO, 300)))
    assert response.status_code == 200
    assert response.content == b"jpeg-bytes"
    assert response.headers["content-type"] == "image/jpeg"


@pytest.mark.asyncio
async def test_expired_link_is_refused(client: AsyncClient, local_storage):
    exp = int(time.time()) - 5
    response = await client.get(f"/storage/{PHOTO}?exp={exp}&sig={local_storage.sign(PHOTO, exp)}")
    assert response.status_code == 403
    assert response.json()["error"] == "link_expired"


@pytest.mark.asyncio
async def test_tampered_link_is_refused(client: AsyncClient, local_storage):
    url = urlparse(local_storage.create_signed_url(PHOTO, 300))
    query = parse_qs(url.query)
    exp, sig = query["exp"][0], query["sig"][0]

    for target in (
        f"{url.path}?exp={exp}&sig=A{sig[1:]}" if sig[0] != "A" else f"{url.path}?exp={exp}&sig=B{sig[1:]}",
        f"{url.path}?exp={int(exp) + 3600}&sig={sig}",
        f"/storage/turns/abc/misc/other.jpg?exp={exp}&sig={sig}",
    ):
        response = await client.get(target)
        assert response.status_code == 403, target
        assert response.json()["error"] == "invalid_signature"


@pytest.mark.asyncio
async def test_signed_link_to_missing_object(client: AsyncClient, local_storage):
    response = await client.get(_relative(local_storage.create_signed_url("turns/abc/misc/gone.jpg", 300)))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_route_is_closed_for_other_backends(client: AsyncClient):
    response = await client.get(f"/storage/{PHOTO}?exp=9999999999&sig=x")
    assert response.status_code == 404
