"""Security utilities for field-session tokens and cookies."""

from datetime import datetime, timedelta, timezone
from uuid import UUID

import jwt
from fastapi import Response

from app.core.config import settings
from app.db.enums import Role


FIELD_SESSION_COOKIE = "field_session"
FIELD_SESSION_ALGORITHM = "HS256"


# =============================================================================
# Field Session Token (JWT in cookie)
# =============================================================================

def create_field_session_token(cleaner_id: UUID, phone: str) -> str:
    """
    Create signed field-session JWT.

    Always signs with current secret (JWT_SECRET). The token authorizes
    exactly the embedded cleaner until it expires.
    """
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(cleaner_id),
        "phone": phone,
        "role": Role.CLEANER.value,
        "iat": now,
        "exp": now + timedelta(days=settings.FIELD_SESSION_DAYS),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=FIELD_SESSION_ALGORITHM)


def decode_field_session_token(token: str) -> dict:
    """
    Decode and verify field-session JWT.

    Tries current secret first, then previous (for rotation support).

    Raises:
        jwt.InvalidTokenError: If token invalid with all secrets
    """
    last_error = None
    for secret in settings.jwt_secrets:
        try:
            return jwt.decode(
                token,
                secret,
                algorithms=[FIELD_SESSION_ALGORITHM],
                options={"require": ["sub", "exp"]},
            )
        except jwt.ExpiredSignatureError:
            raise
        except jwt.InvalidTokenError as e:
            last_error = e
            continue
    raise last_error  # type: ignore


# =============================================================================
# Cookie helpers
# =============================================================================

def set_field_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=FIELD_SESSION_COOKIE,
        value=token,
        max_age=settings.FIELD_SESSION_DAYS * 24 * 60 * 60,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        path="/",
    )


def clear_field_session_cookie(response: Response) -> None:
    response.delete_cookie(
        key=FIELD_SESSION_COOKIE,
        path="/",
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
    )
