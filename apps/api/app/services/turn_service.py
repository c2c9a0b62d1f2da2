"""Turn service - the turn lifecycle state machine.

    in_progress → submitted → needs_fix → submitted → approved
                            ↘ approved

Each transition is a single conditional UPDATE on (id, allowed sources),
so two racing requests cannot both move a turn. Handlers commit the
transition before notifying; a failed SMS never undoes a transition.
"""

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session, selectinload

from app.core.errors import Conflict, Forbidden, NotFound, ValidationFailed
from app.core.structured_logging import build_log_context
from app.core.turn_access import is_assigned, normalize_storage_path, require_turn_access
from app.db.enums import TERMINAL_TURN_STATUSES, AuditEvent, Role, TurnEventKind, TurnStatus
from app.db.models import Property, Turn, TurnPhoto
from app.db.types import utcnow
from app.schemas.auth import Actor
from app.schemas.turn import PhotoIn, PhotoNoteIn
from app.services import (
    notification_service,
    payout_service,
    photo_service,
    property_service,
    turn_event_service,
)
from app.services.notification_service import NotifyResult
from app.services.payout_service import PayoutResult

logger = logging.getLogger(__name__)


# Allowed source states per target
TRANSITIONS: dict[TurnStatus, frozenset[TurnStatus]] = {
    TurnStatus.SUBMITTED: frozenset({TurnStatus.IN_PROGRESS, TurnStatus.NEEDS_FIX}),
    TurnStatus.NEEDS_FIX: frozenset({TurnStatus.SUBMITTED}),
    TurnStatus.APPROVED: frozenset({TurnStatus.SUBMITTED}),
    TurnStatus.CANCELLED: frozenset(s for s in TurnStatus if s not in TERMINAL_TURN_STATUSES),
}


@dataclass(frozen=True)
class TransitionOutcome:
    status: TurnStatus
    notify: NotifyResult | None = None
    flagged_count: int = 0
    payout: PayoutResult | None = None


def can_transition(source: TurnStatus, target: TurnStatus) -> bool:
    return source in TRANSITIONS.get(target, frozenset())


def _transition(db: Session, turn_id: UUID, target: TurnStatus, **values) -> None:
    """
    Move a turn to ``target`` if its current status allows it.

    Does not commit.

    Raises:
        NotFound: turn does not exist
        Conflict: current status is not a legal source (code "invalid_transition")
    """
    sources = [s.value for s in TRANSITIONS[target]]
    now = utcnow()
    result = db.execute(
        update(Turn)
        .where(Turn.id == turn_id, Turn.status.in_(sources))
        .values(status=target.value, updated_at=now, **values)
    )
    if result.rowcount == 1:
        return

    current = db.scalar(select(Turn.status).where(Turn.id == turn_id))
    db.rollback()
    if current is None:
        raise NotFound("turn_not_found", "Turn not found")
    raise Conflict(
        "invalid_transition",
        f"Cannot move turn from '{current}' to '{target.value}'",
    )


def _require_manager(actor: Actor) -> None:
    if actor.role != Role.MANAGER:
        raise Forbidden("wrong_role", "Only a manager can perform this action")


def _require_cleaner(actor: Actor) -> None:
    if actor.role != Role.CLEANER:
        raise Forbidden("wrong_role", "Only a cleaner can perform this action")


# =============================================================================
# Start / read
# =============================================================================

def start_turn(
    db: Session,
    actor: Actor,
    *,
    property_id: UUID,
    cleaner_id: UUID | None = None,
    phone: str | None = None,
) -> Turn:
    """
    Create an in_progress turn for a property.

    Cleaners start turns for themselves; managers start them for a cleaner
    (by id or phone) on a property they own. Either way the cleaner must
    already be assigned to the property.

    A missing property is refused the same way as a foreign one.

    Raises:
        NotFound: named cleaner missing
        Forbidden: property missing, not the property's manager, cleaner id
            mismatch, or cleaner not assigned (code "cleaner_not_assigned")
    """
    prop = db.get(Property, property_id)
    if prop is None:
        raise Forbidden("forbidden", "Not allowed to manage this property")

    if actor.role == Role.CLEANER:
        if cleaner_id and cleaner_id != actor.subject_id:
            raise Forbidden("forbidden", "Cleaners can only start their own turns")
        cleaner_id = actor.subject_id
    else:
        if prop.manager_id != actor.subject_id:
            raise Forbidden("forbidden", "Not allowed to manage this property")
        cleaner_id = property_service.find_cleaner(db, cleaner_id=cleaner_id, phone=phone).id

    if not is_assigned(db, cleaner_id, property_id):
        raise Forbidden("cleaner_not_assigned", "Cleaner is not assigned to this property")

    turn = Turn(
        property_id=property_id,
        cleaner_id=cleaner_id,
        manager_id=prop.manager_id,
        status=TurnStatus.IN_PROGRESS.value,
    )
    db.add(turn)
    db.flush()
    turn_event_service.record_event(db, turn.id, AuditEvent.STARTED, actor=actor)
    db.commit()
    db.refresh(turn)

    logger.info(
        "Turn started",
        extra=build_log_context(turn_id=turn.id, role=actor.role.value, subject_id=actor.subject_id),
    )
    return turn


def get_turn(db: Session, actor: Actor, turn_id: UUID) -> Turn:
    require_turn_access(db, actor, turn_id)
    return db.scalars(
        select(Turn).options(selectinload(Turn.photos)).where(Turn.id == turn_id)
    ).one()


# =============================================================================
# Transitions
# =============================================================================

def submit_turn(
    db: Session,
    sms,
    actor: Actor,
    turn_id: UUID,
    photos: list[PhotoIn],
) -> TransitionOutcome:
    """
    Attach photos and move the turn to submitted, then tell the manager.

    Raises:
        ValidationFailed: no photos, or a bad photo path
        Forbidden / NotFound / Conflict: see _transition
    """
    require_turn_access(db, actor, turn_id)
    if not photos:
        raise ValidationFailed("photos_required", "At least one photo is required")
    rows = photo_service.build_photo_rows(turn_id, photos, is_fix=False)

    _transition(db, turn_id, TurnStatus.SUBMITTED, submitted_at=utcnow())
    db.add_all(rows)
    turn_event_service.record_event(
        db, turn_id, AuditEvent.SUBMITTED, actor=actor, meta={"photo_count": len(rows)}
    )
    db.commit()

    notify = notification_service.notify_turn_event(db, sms, turn_id, TurnEventKind.SUBMITTED)
    return TransitionOutcome(status=TurnStatus.SUBMITTED, notify=notify)


def _flag_photos(db: Session, turn_id: UUID, photo_notes: list[PhotoNoteIn]) -> int:
    """Mark referenced photos as needing a fix. Returns the number of distinct rows flagged."""
    photos = list(db.scalars(select(TurnPhoto).where(TurnPhoto.turn_id == turn_id)))
    by_id = {p.id: p for p in photos}
    by_path: dict[str, list[TurnPhoto]] = {}
    for p in photos:
        by_path.setdefault(p.storage_path, []).append(p)

    # each review replaces the previous review's flags
    for p in photos:
        p.needs_fix = False

    flagged: set[UUID] = set()
    for item in photo_notes:
        matches: list[TurnPhoto] = []
        if item.photo_id and item.photo_id in by_id:
            matches = [by_id[item.photo_id]]
        elif item.storage_path:
            key = normalize_storage_path(item.storage_path)
            matches = by_path.get(key, []) if key else []
        for p in matches:
            p.needs_fix = True
            p.manager_note = item.note
            flagged.add(p.id)
    return len(flagged)


def flag_needs_fix(
    db: Session,
    sms,
    actor: Actor,
    turn_id: UUID,
    *,
    note: str | None = None,
    note_original: str | None = None,
    note_translated: str | None = None,
    photo_notes: list[PhotoNoteIn] | None = None,
) -> TransitionOutcome:
    """
    Send a submitted turn back to the cleaner with notes, then tell the cleaner.

    Raises:
        Forbidden: not a manager, or not this turn's manager
        NotFound / Conflict: see _transition
    """
    _require_manager(actor)
    require_turn_access(db, actor, turn_id)

    sent_note = (note_translated or note or note_original or "").strip() or None
    _transition(
        db,
        turn_id,
        TurnStatus.NEEDS_FIX,
        needs_fix_at=utcnow(),
        manager_note=sent_note,
        manager_note_original=note_original,
        manager_note_translated=note_translated,
    )
    flagged_count = _flag_photos(db, turn_id, photo_notes or [])
    turn_event_service.record_event(
        db,
        turn_id,
        AuditEvent.NEEDS_FIX,
        actor=actor,
        meta={"note": sent_note, "flagged_count": flagged_count},
    )
    db.commit()

    notify = notification_service.notify_turn_event(db, sms, turn_id, TurnEventKind.NEEDS_FIX)
    return TransitionOutcome(status=TurnStatus.NEEDS_FIX, notify=notify, flagged_count=flagged_count)


def submit_fix(
    db: Session,
    sms,
    actor: Actor,
    turn_id: UUID,
    photos: list[PhotoIn],
    *,
    reply: str | None = None,
    reply_original: str | None = None,
    reply_translated: str | None = None,
    reply_original_lang: str | None = None,
    reply_translated_lang: str | None = None,
) -> TransitionOutcome:
    """
    Append fix photos and resubmit a needs_fix turn, then tell the manager.

    Earlier photos are kept; fix photos are new rows with is_fix set.

    Raises:
        ValidationFailed: neither photos nor a reply, or a bad photo path
        Forbidden / NotFound / Conflict: see _transition
    """
    require_turn_access(db, actor, turn_id)
    sent_reply = (reply_translated or reply or reply_original or "").strip() or None
    if not photos and not sent_reply:
        raise ValidationFailed("photos_required", "Add at least one photo or a reply")
    rows = photo_service.build_photo_rows(turn_id, photos, is_fix=True)

    now = utcnow()
    _transition(
        db,
        turn_id,
        TurnStatus.SUBMITTED,
        submitted_at=now,
        last_fix_submitted_at=now,
        cleaner_reply=sent_reply,
        cleaner_reply_original=reply_original,
        cleaner_reply_translated=reply_translated,
        cleaner_reply_original_lang=reply_original_lang or ("es" if reply_original else None),
        cleaner_reply_translated_lang=reply_translated_lang or ("en" if reply_translated else None),
    )
    db.add_all(rows)
    turn_event_service.record_event(
        db, turn_id, AuditEvent.FIX_SUBMITTED, actor=actor, meta={"photo_count": len(rows)}
    )
    db.commit()

    notify = notification_service.notify_turn_event(db, sms, turn_id, TurnEventKind.FIX)
    return TransitionOutcome(status=TurnStatus.SUBMITTED, notify=notify)


def approve_turn(
    db: Session,
    sms,
    actor: Actor,
    turn_id: UUID,
    *,
    approved_by: str | None = None,
    payout_amount_cents: int | None = None,
) -> TransitionOutcome:
    """
    Approve a submitted turn, optionally request a payout, then tell the cleaner.

    Raises:
        Forbidden: not a manager, or not this turn's manager
        NotFound / Conflict: see _transition
    """
    _require_manager(actor)
    require_turn_access(db, actor, turn_id)

    approver = approved_by or str(actor.subject_id)
    _transition(db, turn_id, TurnStatus.APPROVED, approved_at=utcnow(), approved_by=approver)
    turn_event_service.record_event(
        db, turn_id, AuditEvent.APPROVED, actor=actor, meta={"approved_by": approver}
    )

    payout = None
    if payout_amount_cents is not None:
        cleaner_id = db.scalar(select(Turn.cleaner_id).where(Turn.id == turn_id))
        payout = payout_service.request_payout(
            db,
            turn_id=turn_id,
            cleaner_id=cleaner_id,
            amount_cents=payout_amount_cents,
            actor=actor,
        )
    db.commit()

    notify = notification_service.notify_turn_event(db, sms, turn_id, TurnEventKind.APPROVED)
    return TransitionOutcome(status=TurnStatus.APPROVED, notify=notify, payout=payout)
