"""Inbound SMS keyword handling (STOP / START / HELP).

Opt-out state lives on the manager and cleaner rows that share the phone.
STOP only stamps rows that are not already opted out, so repeating it
keeps the original opt-out time.
"""

import logging
from dataclasses import dataclass
from xml.sax.saxutils import escape

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.structured_logging import build_log_context
from app.db.models import Cleaner, Manager
from app.db.types import utcnow
from app.utils.normalization import normalize_keyword, normalize_phone

logger = logging.getLogger(__name__)


STOP_KEYWORDS = frozenset({"STOP", "STOPALL", "UNSUBSCRIBE", "CANCEL", "END", "QUIT"})
START_KEYWORDS = frozenset({"START", "UNSTOP", "YES"})
HELP_KEYWORDS = frozenset({"HELP", "INFO"})


@dataclass(frozen=True)
class InboundResult:
    action: str  # "opt_out" | "opt_in" | "help" | "none"
    reply: str
    updated: int = 0


def twiml(message: str) -> str:
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f"<Response><Message>{escape(message)}</Message></Response>"
    )


def opt_out(db: Session, phone: str) -> int:
    """Stamp sms_opt_out_at where unset. Returns rows changed."""
    now = utcnow()
    updated = 0
    for model in (Manager, Cleaner):
        result = db.execute(
            update(model)
            .where(model.phone == phone, model.sms_opt_out_at.is_(None))
            .values(sms_opt_out_at=now)
        )
        updated += result.rowcount or 0
    db.commit()
    return updated


def opt_in(db: Session, phone: str) -> int:
    """Clear the opt-out and restore consent. Returns rows matched."""
    now = utcnow()
    updated = 0
    for model in (Manager, Cleaner):
        result = db.execute(
            update(model)
            .where(model.phone == phone)
            .values(sms_opt_out_at=None, sms_consent=True, sms_consent_at=now)
        )
        updated += result.rowcount or 0
    db.commit()
    return updated


def handle_inbound(db: Session, from_raw: str | None, body: str | None) -> InboundResult:
    """Apply a keyword from an inbound text and build the reply."""
    brand = settings.SMS_BRAND_NAME
    keyword = normalize_keyword(body)

    try:
        phone = normalize_phone(from_raw)
    except ValueError:
        phone = None

    if keyword in STOP_KEYWORDS:
        updated = opt_out(db, phone) if phone else 0
        logger.info("SMS opt-out", extra=build_log_context(phone=phone, event="stop"))
        return InboundResult(
            action="opt_out",
            reply=f"You have been opted out of {brand} SMS. Reply START to resubscribe.",
            updated=updated,
        )

    if keyword in START_KEYWORDS:
        updated = opt_in(db, phone) if phone else 0
        logger.info("SMS opt-in", extra=build_log_context(phone=phone, event="start"))
        return InboundResult(
            action="opt_in",
            reply=f"You have been re-subscribed to {brand} SMS alerts. Reply STOP to opt out.",
            updated=updated,
        )

    if keyword in HELP_KEYWORDS:
        return InboundResult(
            action="help",
            reply=f"{brand}: Reply STOP to opt out. Email {settings.SMS_SUPPORT_EMAIL} for help.",
        )

    return InboundResult(
        action="none",
        reply=f"{brand}: Thanks! Reply STOP to opt out, HELP for help.",
    )
