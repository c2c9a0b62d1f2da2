"""Inbound SMS webhook (Twilio)."""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.deps import get_db
from app.core.errors import Forbidden
from app.core.rate_limit import limiter
from app.services import sms_inbound_service
from app.services.sms_gateway import validate_twilio_signature

router = APIRouter(prefix="/sms", tags=["sms"])
logger = logging.getLogger(__name__)


def _twiml_response(message: str) -> Response:
    return Response(
        content=sms_inbound_service.twiml(message),
        media_type="text/xml",
        status_code=200,
    )


@router.post("/inbound")
@limiter.exempt
async def receive_inbound_sms(
    request: Request,
    db: Session = Depends(get_db),
) -> Response:
    """
    Handle STOP / START / HELP replies.

    Security:
    - Validates X-Twilio-Signature when TWILIO_VALIDATE_SIGNATURES is on

    Always answers 200 with TwiML once the request is accepted.
    """
    form = await request.form()
    params = {key: str(value) for key, value in form.items()}

    if settings.TWILIO_VALIDATE_SIGNATURES:
        url = settings.TWILIO_WEBHOOK_URL or str(request.url)
        signature = request.headers.get("X-Twilio-Signature")
        if not validate_twilio_signature(settings.TWILIO_AUTH_TOKEN, url, params, signature):
            logger.warning("Inbound SMS signature invalid")
            raise Forbidden("invalid_signature", "Invalid signature")

    try:
        result = sms_inbound_service.handle_inbound(
            db,
            params.get("From") or params.get("from"),
            params.get("Body") or params.get("body"),
        )
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Inbound SMS handling failed")
        return _twiml_response(f"{settings.SMS_BRAND_NAME}: Sorry, something went wrong.")

    return _twiml_response(result.reply)
