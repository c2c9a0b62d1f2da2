"""Turn event service - append-only audit trail per turn."""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.db.enums import AuditEvent
from app.db.models import TurnEvent
from app.schemas.auth import Actor


def record_event(
    db: Session,
    turn_id: UUID,
    event: AuditEvent,
    actor: Actor | None = None,
    meta: dict | None = None,
) -> TurnEvent:
    """
    Append a turn event.

    Args:
        db: Database session
        turn_id: The turn this event is for
        event: Event name (from AuditEvent enum)
        actor: Who caused it (None for system)
        meta: Event-specific details as JSON

    Returns:
        The created event row
    """
    row = TurnEvent(
        turn_id=turn_id,
        event=event.value,
        actor_role=actor.role.value if actor else None,
        actor_id=actor.subject_id if actor else None,
        meta=meta,
    )
    db.add(row)
    db.flush()  # Don't commit - let caller control transaction
    return row


def list_events(
    db: Session,
    turn_id: UUID,
    event: AuditEvent | None = None,
) -> list[TurnEvent]:
    """Events for a turn, oldest first."""
    stmt = select(TurnEvent).where(TurnEvent.turn_id == turn_id)
    if event is not None:
        stmt = stmt.where(TurnEvent.event == event.value)
    return list(db.scalars(stmt.order_by(TurnEvent.created_at, TurnEvent.id)))
