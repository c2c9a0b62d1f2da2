"""FastAPI dependencies for authentication, authorization, and client access.

Clients (session factory, SMS gateway, object storage, identity provider)
are built by ``create_app`` and kept on ``app.state``; these dependencies
only hand them out, so tests can swap any of them with
``app.dependency_overrides``.
"""

from typing import Generator

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from app.core.errors import Forbidden
from app.core.security import FIELD_SESSION_COOKIE
from app.db.enums import Role
from app.schemas.auth import Actor
from app.services.identity_service import (
    BearerCredential,
    Credential,
    FieldSessionCredential,
    NoCredential,
    resolve_identity,
)


def get_db(request: Request) -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def get_sms_gateway(request: Request):
    return request.app.state.sms_gateway


def get_storage(request: Request):
    return request.app.state.storage


def get_identity_provider(request: Request):
    return request.app.state.identity_provider


def extract_credential(request: Request) -> Credential:
    """
    Pick the request's credential, bearer first.

    A present but malformed Authorization header is still a bearer
    credential (with an empty token) so it fails as invalid rather than
    silently falling through to the cookie.
    """
    auth_header = request.headers.get("Authorization")
    if auth_header:
        scheme, _, token = auth_header.partition(" ")
        if scheme.lower() == "bearer":
            return BearerCredential(token=token.strip())

    cookie = request.cookies.get(FIELD_SESSION_COOKIE)
    if cookie:
        return FieldSessionCredential(token=cookie)

    return NoCredential()


def get_current_actor(
    credential: Credential = Depends(extract_credential),
    db: Session = Depends(get_db),
    provider=Depends(get_identity_provider),
) -> Actor:
    """
    Get the authenticated actor for this request.

    This is the PRIMARY auth dependency for turn, photo and property endpoints.

    Raises:
        Unauthenticated (401): no credential, or an invalid/expired one
        Forbidden (403): provider account not linked to a manager or cleaner
    """
    return resolve_identity(db, provider, credential)


def require_role(role: Role):
    """
    Dependency factory for role-based authorization.

    Usage:
        actor: Actor = Depends(require_role(Role.MANAGER))
    """
    def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role != role:
            raise Forbidden("wrong_role", f"Only a {role.value} can perform this action")
        return actor
    return dependency
