"""Authentication-related Pydantic schemas."""

from uuid import UUID

from pydantic import BaseModel

from app.db.enums import Role


class FieldSessionPayload(BaseModel):
    """Decoded field-session JWT payload structure."""
    sub: UUID  # cleaner_id
    phone: str | None = None
    role: Role = Role.CLEANER


class Actor(BaseModel):
    """
    Resolved identity for an authenticated request.

    Returned by the get_current_actor dependency; every authorization
    decision is made from these two fields.
    """
    role: Role
    subject_id: UUID


class MeResponse(BaseModel):
    """Response schema for GET /auth/me endpoint."""
    role: Role
    subject_id: UUID
    name: str | None = None
    phone: str | None = None
    phone_verified: bool = False
