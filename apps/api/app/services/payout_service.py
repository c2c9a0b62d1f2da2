"""Payout side effect on turn approval.

No payment rail is wired up yet; a request is recorded on the turn's
event trail with a reference that a payout processor can pick up.
"""

import logging
import uuid
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.structured_logging import build_log_context
from app.db.enums import AuditEvent
from app.schemas.auth import Actor
from app.services import turn_event_service

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PayoutResult:
    ok: bool
    reference: str | None = None
    reason: str | None = None


def request_payout(
    db: Session,
    *,
    turn_id: UUID,
    cleaner_id: UUID | None,
    amount_cents: int | None,
    currency: str = "USD",
    actor: Actor | None = None,
) -> PayoutResult:
    """Record a payout request. Flushes; the caller commits."""
    if not cleaner_id:
        return PayoutResult(ok=False, reason="no_cleaner")
    if not amount_cents or amount_cents <= 0:
        return PayoutResult(ok=False, reason="no_amount")

    reference = f"payout_{uuid.uuid4().hex[:16]}"
    turn_event_service.record_event(
        db,
        turn_id,
        AuditEvent.PAYOUT_REQUESTED,
        actor=actor,
        meta={
            "cleaner_id": str(cleaner_id),
            "amount_cents": amount_cents,
            "currency": currency,
            "reference": reference,
        },
    )
    logger.info(
        "Payout requested",
        extra=build_log_context(turn_id=turn_id, subject_id=cleaner_id, event="payout_requested"),
    )
    return PayoutResult(ok=True, reference=reference)
