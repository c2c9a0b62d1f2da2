"""Tests for identity resolution (bearer tokens and field sessions)."""
import uuid
from datetime import datetime, timedelta, timezone

import httpx
import jwt
import pytest
from httpx import AsyncClient

from app.core.config import settings
from app.core.errors import Forbidden, Unauthenticated, Upstream, UpstreamTimeout
from app.core.security import FIELD_SESSION_ALGORITHM, FIELD_SESSION_COOKIE, create_field_session_token
from app.db.enums import Role
from app.services.identity_service import (
    BearerCredential,
    FieldSessionCredential,
    HttpIdentityProvider,
    NoCredential,
    ProviderUser,
    resolve_identity,
)


def _provider(handler) -> HttpIdentityProvider:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return HttpIdentityProvider("https://auth.example.com", "anon-key", http_client=client)


# =============================================================================
# Resolver
# =============================================================================

def test_bearer_resolves_manager(db, identity_provider, manager):
    identity_provider.users["t1"] = ProviderUser(id=manager.user_id)
    actor = resolve_identity(db, identity_provider, BearerCredential("t1"))
    assert actor.role == Role.MANAGER
    assert actor.subject_id == manager.id


def test_bearer_without_subject_row(db, identity_provider):
    identity_provider.users["t1"] = ProviderUser(id=uuid.uuid4())
    with pytest.raises(Forbidden) as exc:
        resolve_identity(db, identity_provider, BearerCredential("t1"))
    assert exc.value.code == "no_role"


def test_field_session_resolves_cleaner(db, identity_provider, cleaner):
    token = create_field_session_token(cleaner.id, cleaner.phone)
    actor = resolve_identity(db, identity_provider, FieldSessionCredential(token))
    assert actor.role == Role.CLEANER
    assert actor.subject_id == cleaner.id


def test_expired_field_session(db, identity_provider, cleaner):
    past = datetime.now(timezone.utc) - timedelta(days=1)
    token = jwt.encode(
        {"sub": str(cleaner.id), "role": "cleaner", "iat": past - timedelta(days=31), "exp": past},
        settings.JWT_SECRET,
        algorithm=FIELD_SESSION_ALGORITHM,
    )
    with pytest.raises(Unauthenticated) as exc:
        resolve_identity(db, identity_provider, FieldSessionCredential(token))
    assert exc.value.code == "session_expired"


def test_field_session_with_wrong_role_or_key(db, identity_provider, manager):
    exp = datetime.now(timezone.utc) + timedelta(days=1)
    forged_role = jwt.encode(
        {"sub": str(manager.id), "role": "manager", "exp": exp},
        settings.JWT_SECRET,
        algorithm=FIELD_SESSION_ALGORITHM,
    )
    wrong_key = jwt.encode(
        {"sub": str(manager.id), "role": "cleaner", "exp": exp},
        "some-other-secret",
        algorithm=FIELD_SESSION_ALGORITHM,
    )
    for token in (forged_role, wrong_key, "garbage"):
        with pytest.raises(Unauthenticated) as exc:
            resolve_identity(db, identity_provider, FieldSessionCredential(token))
        assert exc.value.code == "invalid_session"


def test_no_credential(db, identity_provider):
    with pytest.raises(Unauthenticated):
        resolve_identity(db, identity_provider, NoCredential())


# =============================================================================
# HTTP identity provider
# =============================================================================

def test_provider_returns_user():
    user_id = uuid.uuid4()

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/auth/v1/user"
        assert request.headers["Authorization"] == "Bearer abc"
        assert request.headers["apikey"] == "anon-key"
        return httpx.Response(200, json={"id": str(user_id), "email": "m@example.com"})

    user = _provider(handler).get_user("abc")
    assert user == ProviderUser(id=user_id, email="m@example.com")


def test_provider_rejects_bad_token():
    provider = _provider(lambda request: httpx.Response(401, json={"msg": "bad jwt"}))
    with pytest.raises(Unauthenticated):
        provider.get_user("abc")


def test_provider_outage_is_upstream():
    provider = _provider(lambda request: httpx.Response(503))
    with pytest.raises(Upstream):
        provider.get_user("abc")


def test_provider_timeout():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(UpstreamTimeout):
        _provider(handler).get_user("abc")


def test_provider_not_configured():
    with pytest.raises(Upstream) as exc:
        HttpIdentityProvider("").get_user("abc")
    assert exc.value.code == "auth_provider_not_configured"


# =============================================================================
# HTTP
# =============================================================================

@pytest.mark.asyncio
async def test_me_requires_credential(client: AsyncClient):
    response = await client.get("/auth/me")
    assert response.status_code == 401
    assert response.json()["error"] == "not_authenticated"


@pytest.mark.asyncio
async def test_me_for_manager(manager_client: AsyncClient, manager):
    response = await manager_client.get("/auth/me")
    assert response.status_code == 200
    assert response.json()["role"] == "manager"
    assert response.json()["subject_id"] == str(manager.id)


@pytest.mark.asyncio
async def test_bearer_wins_over_cookie(make_client, auth_cookies, cleaner):
    async with make_client(
        headers={"Authorization": "Bearer unknown"}, cookies=auth_cookies(cleaner)
    ) as c:
        response = await c.get("/auth/me")
    assert response.status_code == 401
    assert response.json()["error"] == "invalid_token"


@pytest.mark.asyncio
async def test_logout_clears_cookie(cleaner_client: AsyncClient):
    response = await cleaner_client.post("/auth/logout")
    assert response.status_code == 200
    assert response.json() == {"ok": True}
    assert f"{FIELD_SESSION_COOKIE}=" in response.headers["set-cookie"]
