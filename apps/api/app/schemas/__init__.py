"""Pydantic schemas for API request/response models."""

from app.schemas.auth import Actor, FieldSessionPayload, MeResponse
from app.schemas.otp import OtpSendRequest, OtpSendResponse, OtpVerifyRequest, OtpVerifyResponse

__all__ = [
    "Actor",
    "FieldSessionPayload",
    "MeResponse",
    "OtpSendRequest",
    "OtpSendResponse",
    "OtpVerifyRequest",
    "OtpVerifyResponse",
]
