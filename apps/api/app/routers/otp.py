"""Phone verification endpoints (public, rate limited per IP)."""

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from app.core.deps import get_db, get_sms_gateway
from app.core.rate_limit import OTP_LIMIT, client_ip, limiter
from app.core.security import set_field_session_cookie
from app.schemas.otp import OtpSendRequest, OtpSendResponse, OtpVerifyRequest, OtpVerifyResponse
from app.services import otp_service

router = APIRouter(prefix="/otp", tags=["otp"])


@router.post("/send", response_model=OtpSendResponse)
@limiter.limit(OTP_LIMIT)
def send_otp(
    request: Request,
    body: OtpSendRequest,
    db: Session = Depends(get_db),
    sms=Depends(get_sms_gateway),
) -> OtpSendResponse:
    """
    Text a 6-digit code to the phone.

    The response has the subject id but never the code.
    """
    result = otp_service.send_code(
        db,
        sms,
        role=body.role,
        phone_raw=body.phone,
        subject_id=body.subject_id,
        display_name=body.name,
        consent=body.consent,
    )
    return OtpSendResponse(subject_id=result.subject_id, sms_sid=result.sms_sid)


@router.post("/verify", response_model=OtpVerifyResponse)
@limiter.limit(OTP_LIMIT)
def verify_otp(
    request: Request,
    response: Response,
    body: OtpVerifyRequest,
    db: Session = Depends(get_db),
) -> OtpVerifyResponse:
    """
    Check a code. Cleaners also get the field-session cookie.
    """
    result = otp_service.verify_code(
        db,
        role=body.role,
        phone_raw=body.phone,
        code=body.code,
        subject_id=body.subject_id,
        client_ip=client_ip(request),
    )
    if result.session_token:
        set_field_session_cookie(response, result.session_token)
    return OtpVerifyResponse(subject_id=result.subject_id, role=result.role)
