"""Notification dispatcher - SMS side effects of committed turn transitions.

Callers commit the transition first, then call ``notify_turn_event``.
The result always says whether a message went out and, if not, why;
every attempt is written to the turn's event trail.
"""

from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass
from urllib.parse import quote
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.structured_logging import build_log_context, mask_phone
from app.db.enums import AuditEvent, CLEANER_EVENTS, MANAGER_EVENTS, TurnEventKind
from app.db.models import Cleaner, Manager, Property, Turn, TurnPhoto
from app.services import turn_event_service
from app.services.sms_gateway import SmsNotConfigured, SmsSendError

logger = logging.getLogger(__name__)


E164 = re.compile(r"^\+[1-9]\d{6,14}$")
SMS_FOOTER = "Reply STOP to opt out, HELP for help."


@dataclass(frozen=True)
class NotifyResult:
    sent: bool
    reason: str | None = None
    to: str | None = None
    sid: str | None = None
    body: str | None = None

    def as_dict(self) -> dict:
        return asdict(self)


# =============================================================================
# Recipient resolution
# =============================================================================

def resolve_manager(db: Session, turn: Turn, prop: Property | None) -> Manager | None:
    """
    Manager to tell about a turn.

    turn.manager_id, else property.manager_id, else the most recently
    phone-verified manager in the property's org.
    """
    manager_id = turn.manager_id or (prop.manager_id if prop else None)
    if manager_id:
        return db.get(Manager, manager_id)

    if prop is None or prop.org_id is None:
        return None

    return db.scalar(
        select(Manager)
        .where(Manager.org_id == prop.org_id, Manager.phone_verified_at.is_not(None))
        .order_by(Manager.phone_verified_at.desc())
        .limit(1)
    )


def check_sendable(recipient: Manager | Cleaner) -> str | None:
    """Return the refusal reason, or None if the recipient can be texted."""
    if not recipient.phone:
        return "no_phone"
    if not E164.match(recipient.phone):
        return "invalid_phone"
    if not recipient.sms_consent:
        return "no_consent"
    if not recipient.phone_verified_at:
        return "not_verified"
    if recipient.sms_opt_out_at:
        return "opted_out"
    return None


# =============================================================================
# Message bodies
# =============================================================================

def _site_base() -> str:
    return settings.APP_BASE_URL.rstrip("/")


def _property_label(prop: Property | None) -> str:
    if prop is None:
        return "a property"
    parts = [p for p in (prop.name, prop.unit) if p]
    return " · ".join(parts) or "a property"


def _first_flagged_area(db: Session, turn_id: UUID) -> str | None:
    return db.scalar(
        select(TurnPhoto.area_key)
        .where(TurnPhoto.turn_id == turn_id, TurnPhoto.needs_fix.is_(True), TurnPhoto.area_key != "")
        .order_by(TurnPhoto.created_at)
        .limit(1)
    )


def build_body(
    db: Session,
    kind: TurnEventKind,
    turn: Turn,
    prop: Property | None,
    cleaner: Cleaner | None,
) -> str:
    brand = settings.SMS_BRAND_NAME
    where = _property_label(prop)
    turn_path = f"{_site_base()}/turns/{turn.id}"

    if kind == TurnEventKind.SUBMITTED or kind == TurnEventKind.FIX:
        who = (cleaner.name if cleaner else None) or (cleaner.phone if cleaner else None) or "Cleaner"
        verb = "submitted fixes" if kind == TurnEventKind.FIX else "submitted a turn"
        text = f'{brand}: {who} {verb} for "{where}".\nReview: {turn_path}/review?manager=1'
    elif kind == TurnEventKind.NEEDS_FIX:
        link = f"{turn_path}/capture?tab=needs-fix"
        area = _first_flagged_area(db, turn.id)
        if area:
            link += f"&open={quote(area)}"
        text = f'{brand}: Your manager flagged items to fix for "{where}".\nFix: {link}'
    else:
        text = f'{brand}: Your turn for "{where}" was approved. Thank you!\nDetails: {turn_path}/done'

    return f"{text}\n{SMS_FOOTER}"


# =============================================================================
# Dispatch
# =============================================================================

def _dispatch(db: Session, sms, turn_id: UUID, kind: TurnEventKind) -> NotifyResult:
    turn = db.get(Turn, turn_id)
    if turn is None:
        return NotifyResult(sent=False, reason="turn_not_found")

    prop = db.get(Property, turn.property_id)
    cleaner = db.get(Cleaner, turn.cleaner_id)

    if kind in MANAGER_EVENTS:
        recipient = resolve_manager(db, turn, prop)
        if recipient is None:
            return NotifyResult(sent=False, reason="no_manager")
    else:
        recipient = cleaner
        if recipient is None:
            return NotifyResult(sent=False, reason="no_cleaner")

    reason = check_sendable(recipient)
    if reason:
        return NotifyResult(sent=False, reason=reason, to=mask_phone(recipient.phone))

    body = build_body(db, kind, turn, prop, cleaner)
    to = mask_phone(recipient.phone)
    try:
        message = sms.send(recipient.phone, body)
    except SmsNotConfigured:
        return NotifyResult(sent=False, reason="sms_not_configured", to=to, body=body)
    except SmsSendError as exc:
        logger.warning(
            "Turn notification send failed",
            extra=build_log_context(turn_id=turn_id, event=kind.value, reason=str(exc)),
        )
        return NotifyResult(sent=False, reason="send_failed", to=to, body=body)

    return NotifyResult(sent=True, to=to, sid=message.id, body=body)


def notify_turn_event(db: Session, sms, turn_id: UUID, kind: TurnEventKind) -> NotifyResult:
    """
    Text the party that should act next on a turn.

    Managers hear about ``submitted``/``fix``; cleaners about
    ``needs_fix``/``approved``. Never raises: failures come back as
    ``NotifyResult(sent=False, reason=...)``.
    """
    if kind not in MANAGER_EVENTS and kind not in CLEANER_EVENTS:
        return NotifyResult(sent=False, reason="unknown_event")

    try:
        result = _dispatch(db, sms, turn_id, kind)
    except Exception:
        db.rollback()
        logger.exception(
            "Turn notification crashed",
            extra=build_log_context(turn_id=turn_id, event=kind.value),
        )
        result = NotifyResult(sent=False, reason="send_failed")

    if result.reason != "turn_not_found":
        try:
            turn_event_service.record_event(
                db,
                turn_id,
                AuditEvent.NOTIFICATION,
                meta={
                    "kind": kind.value,
                    "sent": result.sent,
                    "reason": result.reason,
                    "to": result.to,
                    "sid": result.sid,
                },
            )
            db.commit()
        except Exception:
            db.rollback()
            logger.exception(
                "Could not record notification event",
                extra=build_log_context(turn_id=turn_id, event=kind.value),
            )

    logger.info(
        "Turn notification",
        extra=build_log_context(
            turn_id=turn_id,
            event=kind.value,
            reason=result.reason or ("sent" if result.sent else None),
        ),
    )
    return result
