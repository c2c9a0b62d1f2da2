"""Property service - cleaner assignment."""

import logging
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from app.core.errors import NotFound, ValidationFailed
from app.core.structured_logging import build_log_context
from app.db.models import Cleaner, PropertyCleaner
from app.utils.normalization import normalize_phone

logger = logging.getLogger(__name__)


def _insert_for(db: Session):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise RuntimeError(f"Unsupported dialect for upsert: {dialect}")


def find_cleaner(db: Session, cleaner_id: UUID | None = None, phone: str | None = None) -> Cleaner:
    """
    Look up a cleaner by id or phone.

    Raises:
        ValidationFailed: neither given, or phone malformed
        NotFound: no such cleaner
    """
    if cleaner_id:
        cleaner = db.get(Cleaner, cleaner_id)
    elif phone:
        try:
            normalized = normalize_phone(phone)
        except ValueError as exc:
            raise ValidationFailed("invalid_phone", "Invalid phone number") from exc
        cleaner = db.scalar(select(Cleaner).where(Cleaner.phone == normalized))
    else:
        raise ValidationFailed("cleaner_required", "cleaner_id or phone required")

    if cleaner is None:
        raise NotFound("cleaner_not_found", "Cleaner not found")
    return cleaner


def assign_cleaner(db: Session, property_id: UUID, cleaner_id: UUID) -> bool:
    """
    Link a cleaner to a property. Idempotent.

    Uses INSERT ... ON CONFLICT DO NOTHING on the (property_id, cleaner_id)
    pair so concurrent callers end up with one row.

    Returns:
        True if a row was created, False if it already existed
    """
    insert = _insert_for(db)
    stmt = (
        insert(PropertyCleaner)
        .values(property_id=property_id, cleaner_id=cleaner_id)
        .on_conflict_do_nothing(index_elements=["property_id", "cleaner_id"])
    )
    result = db.execute(stmt)
    db.commit()

    created = bool(result.rowcount)
    logger.info(
        "Cleaner assignment",
        extra=build_log_context(
            subject_id=cleaner_id,
            event="assigned" if created else "already_assigned",
        ),
    )
    return created


def count_assignments(db: Session, property_id: UUID, cleaner_id: UUID) -> int:
    return db.scalar(
        select(func.count())
        .select_from(PropertyCleaner)
        .where(
            PropertyCleaner.property_id == property_id,
            PropertyCleaner.cleaner_id == cleaner_id,
        )
    )
