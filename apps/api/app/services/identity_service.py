"""Identity resolution for the two credential channels.

Managers send ``Authorization: Bearer <token>`` issued by the account
identity provider. Cleaners carry a signed field session in a cookie.
``resolve_identity`` is the only place that turns a credential into an
``Actor``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

import httpx
import jwt
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import Settings, settings
from app.core.errors import Forbidden, Unauthenticated, Upstream, UpstreamTimeout
from app.core.security import decode_field_session_token
from app.db.enums import Role
from app.db.models import Cleaner, Manager
from app.schemas.auth import Actor, FieldSessionPayload

logger = logging.getLogger(__name__)


# =============================================================================
# Credentials
# =============================================================================

@dataclass(frozen=True)
class BearerCredential:
    token: str


@dataclass(frozen=True)
class FieldSessionCredential:
    token: str


@dataclass(frozen=True)
class NoCredential:
    pass


Credential = BearerCredential | FieldSessionCredential | NoCredential


# =============================================================================
# Identity provider client
# =============================================================================

@dataclass(frozen=True)
class ProviderUser:
    id: UUID
    email: str | None = None


class HttpIdentityProvider:
    """
    Client for the account provider's ``GET /auth/v1/user`` endpoint.

    401/403 from the provider means the token is bad; anything else that
    is not a 200 is an upstream failure.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        *,
        timeout_seconds: float = 5.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._http_client = http_client
        self._owns_client = http_client is None
        self._timeout = timeout_seconds

    def _get_client(self) -> httpx.Client:
        if self._http_client is None:
            self._http_client = httpx.Client(timeout=httpx.Timeout(self._timeout))
        return self._http_client

    def close(self) -> None:
        if self._owns_client and self._http_client is not None:
            self._http_client.close()
            self._http_client = None

    def get_user(self, token: str) -> ProviderUser:
        if not self._base_url:
            raise Upstream("auth_provider_not_configured", "Identity provider is not configured")

        headers = {"Authorization": f"Bearer {token}"}
        if self._api_key:
            headers["apikey"] = self._api_key

        try:
            response = self._get_client().get(f"{self._base_url}/auth/v1/user", headers=headers)
        except httpx.TimeoutException as exc:
            logger.warning("Identity provider timed out")
            raise UpstreamTimeout("auth_provider_timeout", "Identity provider timed out") from exc
        except httpx.HTTPError as exc:
            logger.warning("Identity provider transport error", extra={"error": str(exc)})
            raise Upstream("auth_provider_error", "Identity provider unavailable") from exc

        if response.status_code in (400, 401, 403, 404):
            raise Unauthenticated("invalid_token", "Invalid or expired token")
        if response.status_code != 200:
            logger.warning(
                "Identity provider returned error",
                extra={"status_code": response.status_code},
            )
            raise Upstream("auth_provider_error", "Identity provider unavailable")

        data = response.json() or {}
        try:
            return ProviderUser(id=UUID(str(data["id"])), email=data.get("email"))
        except (KeyError, ValueError) as exc:
            raise Unauthenticated("invalid_token", "Invalid or expired token") from exc


def build_identity_provider(config: Settings = settings) -> HttpIdentityProvider:
    return HttpIdentityProvider(
        config.AUTH_PROVIDER_URL,
        config.AUTH_PROVIDER_API_KEY,
        timeout_seconds=config.AUTH_PROVIDER_TIMEOUT_SECONDS,
    )


# =============================================================================
# Resolver
# =============================================================================

def _resolve_bearer(db: Session, provider, token: str) -> Actor:
    user = provider.get_user(token)

    manager_id = db.scalar(select(Manager.id).where(Manager.user_id == user.id))
    if manager_id:
        return Actor(role=Role.MANAGER, subject_id=manager_id)

    cleaner_id = db.scalar(select(Cleaner.id).where(Cleaner.user_id == user.id))
    if cleaner_id:
        return Actor(role=Role.CLEANER, subject_id=cleaner_id)

    logger.info("Provider user has no subject row", extra={"user_id": str(user.id)})
    raise Forbidden("no_role", "No manager or cleaner linked to this account")


def _resolve_field_session(token: str) -> Actor:
    try:
        claims = decode_field_session_token(token)
        payload = FieldSessionPayload.model_validate(claims)
    except jwt.ExpiredSignatureError as exc:
        raise Unauthenticated("session_expired", "Session expired") from exc
    except (jwt.InvalidTokenError, ValidationError) as exc:
        raise Unauthenticated("invalid_session", "Invalid session") from exc
    # field sessions are only ever minted for cleaners
    if payload.role != Role.CLEANER:
        raise Unauthenticated("invalid_session", "Invalid session")
    return Actor(role=payload.role, subject_id=payload.sub)


def resolve_identity(db: Session, provider, credential: Credential) -> Actor:
    """
    Turn a request credential into ``{role, subject_id}``.

    Pure read: no rows are written and no cookies are touched.

    Raises:
        Unauthenticated: no credential, or a bad/expired one
        Forbidden: provider user is valid but linked to no subject row
        UpstreamTimeout / Upstream: provider unreachable
    """
    if isinstance(credential, BearerCredential):
        return _resolve_bearer(db, provider, credential.token)
    if isinstance(credential, FieldSessionCredential):
        return _resolve_field_session(credential.token)
    if isinstance(credential, NoCredential):
        raise Unauthenticated("not_authenticated", "Not authenticated")
    raise TypeError(f"Unknown credential type: {type(credential).__name__}")
