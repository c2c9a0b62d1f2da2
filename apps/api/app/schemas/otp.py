"""Phone verification request/response schemas."""

from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field

from app.db.enums import Role


class OtpSendRequest(BaseModel):
    role: Role
    phone: str = Field(min_length=1)
    subject_id: UUID | None = None
    name: str | None = Field(default=None, max_length=255)
    consent: bool = True


class OtpSendResponse(BaseModel):
    """Never carries the code itself."""
    ok: bool = True
    subject_id: UUID
    sms_sid: str | None = None


class OtpVerifyRequest(BaseModel):
    role: Role
    phone: str = Field(min_length=1)
    code: str = Field(min_length=1, max_length=12, validation_alias=AliasChoices("code", "otp"))
    subject_id: UUID | None = None


class OtpVerifyResponse(BaseModel):
    ok: bool = True
    subject_id: UUID
    role: Role
