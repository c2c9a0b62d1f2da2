"""Turn access control - centralized allow/deny for turns and stored photos.

Turn rule:
- Manager: the turn's effective manager (turn.manager_id, else the
  property's manager_id)
- Cleaner: the turn's own cleaner, or any cleaner assigned to the
  turn's property

Storage paths encode their owner:
- turns/<turn_id>/...  → turn rule above
- shots/<shot_id>/...  → shot → template → property; the property's
  manager or an assigned cleaner
Anything else is denied.

Missing targets and denied targets raise the same Forbidden so callers
cannot fish for ids.
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import exists, select
from sqlalchemy.orm import Session

from app.core.errors import Forbidden
from app.db.enums import Role
from app.db.models import (
    Property,
    PropertyCleaner,
    PropertyTemplate,
    TemplateShot,
    Turn,
)
from app.schemas.auth import Actor


STORAGE_PREFIX = "photos/"


@dataclass(frozen=True)
class TurnTarget:
    turn_id: UUID


@dataclass(frozen=True)
class ShotTarget:
    shot_id: UUID


@dataclass(frozen=True)
class StoragePathTarget:
    path: str


def normalize_storage_path(path: str) -> str | None:
    """
    Canonical object key, or None if the path is unusable.

    Strips a leading slash and the bucket-style ``photos/`` prefix;
    rejects traversal and empty segments.
    """
    if not path:
        return None
    key = path.strip().lstrip("/")
    if key.startswith(STORAGE_PREFIX):
        key = key[len(STORAGE_PREFIX):]
    segments = key.split("/")
    if any(seg in ("", ".", "..") for seg in segments):
        return None
    return key


def parse_storage_path(path: str) -> TurnTarget | ShotTarget | None:
    """Reverse-map an object key to the entity that owns it."""
    key = normalize_storage_path(path)
    if key is None:
        return None

    segments = key.split("/")
    if len(segments) < 3:
        return None

    kind, raw_id = segments[0], segments[1]
    try:
        owner_id = UUID(raw_id)
    except ValueError:
        return None

    if kind == "turns":
        return TurnTarget(turn_id=owner_id)
    if kind == "shots":
        return ShotTarget(shot_id=owner_id)
    return None


def is_assigned(db: Session, cleaner_id: UUID, property_id: UUID) -> bool:
    return bool(
        db.scalar(
            select(
                exists().where(
                    PropertyCleaner.cleaner_id == cleaner_id,
                    PropertyCleaner.property_id == property_id,
                )
            )
        )
    )


def effective_manager_id(turn: Turn, property_manager_id: UUID | None) -> UUID | None:
    return turn.manager_id or property_manager_id


def _can_access_turn(db: Session, actor: Actor, turn: Turn) -> bool:
    if actor.role == Role.MANAGER:
        property_manager_id = db.scalar(
            select(Property.manager_id).where(Property.id == turn.property_id)
        )
        return effective_manager_id(turn, property_manager_id) == actor.subject_id

    if actor.role == Role.CLEANER:
        if turn.cleaner_id == actor.subject_id:
            return True
        return is_assigned(db, actor.subject_id, turn.property_id)

    return False


def _can_access_property(db: Session, actor: Actor, prop: Property) -> bool:
    if actor.role == Role.MANAGER:
        return prop.manager_id == actor.subject_id
    if actor.role == Role.CLEANER:
        return is_assigned(db, actor.subject_id, prop.id)
    return False


def _property_for_shot(db: Session, shot_id: UUID) -> Property | None:
    stmt = (
        select(Property)
        .join(PropertyTemplate, PropertyTemplate.property_id == Property.id)
        .join(TemplateShot, TemplateShot.template_id == PropertyTemplate.id)
        .where(TemplateShot.id == shot_id)
    )
    return db.scalars(stmt).first()


def authorize(db: Session, actor: Actor, target) -> bool:
    """Allow/deny for a TurnTarget, ShotTarget or StoragePathTarget. Never raises."""
    if isinstance(target, StoragePathTarget):
        parsed = parse_storage_path(target.path)
        if parsed is None:
            return False
        return authorize(db, actor, parsed)

    if isinstance(target, TurnTarget):
        turn = db.get(Turn, target.turn_id)
        if turn is None:
            return False
        return _can_access_turn(db, actor, turn)

    if isinstance(target, ShotTarget):
        prop = _property_for_shot(db, target.shot_id)
        if prop is None:
            return False
        return _can_access_property(db, actor, prop)

    return False


def require_turn_access(db: Session, actor: Actor, turn_id: UUID) -> Turn:
    """
    Load a turn the actor may act on.

    Raises:
        Forbidden: turn missing or not accessible
    """
    turn = db.get(Turn, turn_id)
    if turn is None or not _can_access_turn(db, actor, turn):
        raise Forbidden("forbidden", "Not allowed to access this turn")
    return turn


def require_path_access(db: Session, actor: Actor, path: str) -> str:
    """
    Check an object key and return its canonical form.

    Raises:
        Forbidden: unknown path shape, missing owner, or not accessible
    """
    key = normalize_storage_path(path)
    if key is None or not authorize(db, actor, StoragePathTarget(key)):
        raise Forbidden("forbidden", "Not allowed to access this object")
    return key


def require_property_manager(db: Session, actor: Actor, property_id: UUID) -> Property:
    """
    Load a property owned by the acting manager.

    Raises:
        Forbidden: property missing, actor not a manager, or not the owner
    """
    prop = db.get(Property, property_id)
    if prop is None or actor.role != Role.MANAGER or prop.manager_id != actor.subject_id:
        raise Forbidden("forbidden", "Not allowed to manage this property")
    return prop
