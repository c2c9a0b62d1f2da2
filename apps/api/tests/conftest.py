"""
Test configuration and fixtures.

Provides:
- In-memory SQLite session (tables created and dropped per test)
- Fake SMS gateway, object storage and identity provider
- HTTPX AsyncClients for anonymous, manager (bearer) and cleaner (cookie) callers
"""
import os
import uuid
from dataclasses import dataclass, field
from typing import AsyncGenerator, Generator

# Must be set before app settings are imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["TESTING"] = "1"
os.environ["SMS_BACKEND"] = "log"
os.environ["RATE_LIMIT_OTP"] = "1000"
os.environ["JWT_SECRET"] = "test-secret-for-field-sessions"
os.environ["APP_BASE_URL"] = "https://app.test"
os.environ.setdefault("TWILIO_VALIDATE_SIGNATURES", "false")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

from app.main import app
from app.core.deps import get_db, get_identity_provider, get_sms_gateway, get_storage
from app.core.errors import Unauthenticated
from app.core.security import FIELD_SESSION_COOKIE, create_field_session_token
from app.db.base import Base
from app.db.enums import TurnStatus
from app.db.models import (
    Cleaner,
    Manager,
    Organization,
    Property,
    PropertyCleaner,
    PropertyTemplate,
    TemplateShot,
    Turn,
    TurnPhoto,
)
from app.db.session import build_engine, build_session_factory
from app.db.types import utcnow
from app.services.identity_service import ProviderUser
from app.services.sms_gateway import SmsMessage, SmsNotConfigured, SmsSendError


engine = build_engine("sqlite://")
TestingSession = build_session_factory(engine)


# =============================================================================
# Fake clients
# =============================================================================

@dataclass
class FakeSmsGateway:
    """Records messages instead of sending them."""
    is_configured: bool = True
    fail: bool = False
    sent: list[tuple[str, str]] = field(default_factory=list)

    def send(self, to: str, body: str) -> SmsMessage:
        if not self.is_configured:
            raise SmsNotConfigured("not configured")
        if self.fail:
            raise SmsSendError("carrier rejected", status_code=400)
        self.sent.append((to, body))
        return SmsMessage(id=f"SM{len(self.sent):04d}")

    def close(self) -> None:
        return None


@dataclass
class FakeStorage:
    objects: dict[str, bytes] = field(default_factory=dict)

    def put(self, path: str, data: bytes, content_type: str | None = None) -> None:
        self.objects[path] = data

    def create_signed_url(self, path: str, ttl_seconds: int) -> str:
        return f"https://storage.test/{path}?ttl={ttl_seconds}"

    def close(self) -> None:
        return None


@dataclass
class FakeIdentityProvider:
    """Maps bearer tokens to provider users."""
    users: dict[str, ProviderUser] = field(default_factory=dict)

    def get_user(self, token: str) -> ProviderUser:
        user = self.users.get(token)
        if user is None:
            raise Unauthenticated("invalid_token", "Invalid or expired token")
        return user

    def close(self) -> None:
        return None


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """
    Fresh schema per test.

    App code commits and rolls back freely, so fixtures commit their rows
    instead of relying on an outer transaction.
    """
    Base.metadata.create_all(engine)
    session = TestingSession()
    yield session
    session.close()
    Base.metadata.drop_all(engine)


@pytest.fixture
def sms() -> FakeSmsGateway:
    return FakeSmsGateway()


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def identity_provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


# =============================================================================
# Domain Fixtures
# =============================================================================

@pytest.fixture
def org(db: Session) -> Organization:
    org = Organization(name="Harbor Rentals")
    db.add(org)
    db.commit()
    return org


def _make_manager(db: Session, org: Organization, phone: str, name: str) -> Manager:
    now = utcnow()
    manager = Manager(
        org_id=org.id,
        user_id=uuid.uuid4(),
        name=name,
        phone=phone,
        sms_consent=True,
        sms_consent_at=now,
        phone_verified_at=now,
    )
    db.add(manager)
    db.commit()
    return manager


def _make_cleaner(db: Session, phone: str, name: str) -> Cleaner:
    now = utcnow()
    cleaner = Cleaner(
        name=name,
        phone=phone,
        sms_consent=True,
        sms_consent_at=now,
        phone_verified_at=now,
    )
    db.add(cleaner)
    db.commit()
    return cleaner


@pytest.fixture
def manager(db: Session, org: Organization) -> Manager:
    return _make_manager(db, org, "+15550000001", "Morgan")


@pytest.fixture
def other_manager(db: Session, org: Organization) -> Manager:
    return _make_manager(db, org, "+15550000002", "Avery")


@pytest.fixture
def cleaner(db: Session) -> Cleaner:
    return _make_cleaner(db, "+15550000101", "Rosa")


@pytest.fixture
def other_cleaner(db: Session) -> Cleaner:
    return _make_cleaner(db, "+15550000102", "Luis")


@pytest.fixture
def prop(db: Session, org: Organization, manager: Manager) -> Property:
    prop = Property(org_id=org.id, manager_id=manager.id, name="Seaside Loft", unit="4B")
    db.add(prop)
    db.commit()
    return prop


@pytest.fixture
def assigned(db: Session, prop: Property, cleaner: Cleaner) -> PropertyCleaner:
    link = PropertyCleaner(property_id=prop.id, cleaner_id=cleaner.id)
    db.add(link)
    db.commit()
    return link


@pytest.fixture
def shot(db: Session, prop: Property) -> TemplateShot:
    template = PropertyTemplate(property_id=prop.id)
    db.add(template)
    db.flush()
    shot = TemplateShot(template_id=template.id, area_key="bathroom", label="Bathroom sink")
    db.add(shot)
    db.commit()
    return shot


@pytest.fixture
def make_turn(db: Session, prop: Property, cleaner: Cleaner, assigned: PropertyCleaner):
    """Factory for a turn in a given status, optionally with photos."""
    def _make(status: TurnStatus = TurnStatus.IN_PROGRESS, photos: list[tuple[str, str]] | None = None) -> Turn:
        turn = Turn(
            property_id=prop.id,
            cleaner_id=cleaner.id,
            manager_id=prop.manager_id,
            status=status.value,
        )
        db.add(turn)
        db.flush()
        for area_key, name in photos or []:
            db.add(
                TurnPhoto(
                    turn_id=turn.id,
                    area_key=area_key,
                    storage_path=f"turns/{turn.id}/misc/{name}",
                )
            )
        db.commit()
        return turn
    return _make


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture
def overrides(
    db: Session,
    sms: FakeSmsGateway,
    storage: FakeStorage,
    identity_provider: FakeIdentityProvider,
):
    """Point every client dependency at the test doubles."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_sms_gateway] = lambda: sms
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_identity_provider] = lambda: identity_provider
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def make_client(overrides):
    """Factory for extra clients, e.g. ``async with make_client(cookies=...) as c``."""
    def _make(**kwargs) -> AsyncClient:
        return AsyncClient(transport=ASGITransport(app=app), base_url="http://test", **kwargs)
    return _make


@pytest.fixture(scope="function")
async def client(make_client) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated client for public endpoints."""
    async with make_client() as c:
        yield c


def bearer_for(identity_provider: FakeIdentityProvider, manager: Manager) -> dict[str, str]:
    token = f"token-{manager.id.hex[:8]}"
    identity_provider.users[token] = ProviderUser(id=manager.user_id, email="manager@example.com")
    return {"Authorization": f"Bearer {token}"}


def cookies_for(cleaner: Cleaner) -> dict[str, str]:
    return {FIELD_SESSION_COOKIE: create_field_session_token(cleaner.id, cleaner.phone)}


@pytest.fixture(scope="function")
async def manager_client(
    make_client, identity_provider: FakeIdentityProvider, manager: Manager
) -> AsyncGenerator[AsyncClient, None]:
    """Client authenticated as ``manager`` through the identity provider."""
    async with make_client(headers=bearer_for(identity_provider, manager)) as c:
        yield c


@pytest.fixture(scope="function")
async def cleaner_client(make_client, cleaner: Cleaner) -> AsyncGenerator[AsyncClient, None]:
    """Client carrying ``cleaner``'s field-session cookie."""
    async with make_client(cookies=cookies_for(cleaner)) as c:
        yield c


@pytest.fixture
def auth_headers(identity_provider: FakeIdentityProvider):
    """``auth_headers(manager)`` → bearer header for that manager."""
    def _headers(manager: Manager) -> dict[str, str]:
        return bearer_for(identity_provider, manager)
    return _headers


@pytest.fixture
def auth_cookies():
    """``auth_cookies(cleaner)`` → field-session cookie for that cleaner."""
    return cookies_for
