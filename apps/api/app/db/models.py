"""SQLAlchemy ORM models."""

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.db.enums import TurnStatus
from app.db.types import utcnow


# =============================================================================
# Tenancy & actors
# =============================================================================

class Organization(Base):
    """A property-management company. Managers and properties belong to one."""

    __tablename__ = "organizations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    managers: Mapped[list["Manager"]] = relationship(back_populates="organization")
    properties: Mapped[list["Property"]] = relationship(back_populates="organization")


class Manager(Base):
    """
    Office staff member.

    Linked to an identity-provider account via user_id; the phone is only
    used for notifications once verified.
    """

    __tablename__ = "managers"
    __table_args__ = (
        Index("ix_managers_org_verified", "org_id", "phone_verified_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    org_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, unique=True, nullable=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(20), unique=True, nullable=True)

    # SMS consent (TCPA)
    sms_consent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    sms_consent_at: Mapped[datetime | None] = mapped_column(nullable=True)
    sms_opt_out_at: Mapped[datetime | None] = mapped_column(nullable=True)
    phone_verified_at: Mapped[datetime | None] = mapped_column(nullable=True)
    sms_consent_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)
    consent_text_snapshot: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    organization: Mapped["Organization | None"] = relationship(back_populates="managers")


class Cleaner(Base):
    """
    Field worker. Identified by phone; no office account required.
    """

    __tablename__ = "cleaners"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, unique=True, nullable=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(20), unique=True, nullable=True)

    sms_consent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    sms_consent_at: Mapped[datetime | None] = mapped_column(nullable=True)
    sms_opt_out_at: Mapped[datetime | None] = mapped_column(nullable=True)
    phone_verified_at: Mapped[datetime | None] = mapped_column(nullable=True)
    sms_consent_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)
    consent_text_snapshot: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)


# =============================================================================
# Properties & templates
# =============================================================================

class Property(Base):
    __tablename__ = "properties"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    org_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True
    )
    manager_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("managers.id", ondelete="SET NULL"), nullable=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    unit: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    organization: Mapped["Organization | None"] = relationship(back_populates="properties")


class PropertyCleaner(Base):
    """
    Cleaner ↔ property assignment.

    Unique on the pair; created with insert-on-conflict-do-nothing so
    concurrent writers converge on one row.
    """

    __tablename__ = "property_cleaners"
    __table_args__ = (
        UniqueConstraint("property_id", "cleaner_id", name="uq_property_cleaners_pair"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    property_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False
    )
    cleaner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("cleaners.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)


class PropertyTemplate(Base):
    """Checklist template for a property (editing lives elsewhere)."""

    __tablename__ = "property_templates"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    property_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), default="Default", nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class TemplateShot(Base):
    """One required shot in a template. Reference photos live under shots/<id>/."""

    __tablename__ = "template_shots"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    template_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("property_templates.id", ondelete="CASCADE"), nullable=False
    )
    area_key: Mapped[str] = mapped_column(String(100), nullable=False)
    label: Mapped[str] = mapped_column(String(255), nullable=False)


# =============================================================================
# Turns
# =============================================================================

class Turn(Base):
    """
    A cleaning work order for one property and one cleaner.

    Status changes only through turn_service (conditional updates);
    each transition stamps its own timestamp column.
    """

    __tablename__ = "turns"
    __table_args__ = (
        Index("ix_turns_property", "property_id"),
        Index("ix_turns_cleaner", "cleaner_id"),
        Index("ix_turns_manager_status", "manager_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    property_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False
    )
    cleaner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("cleaners.id", ondelete="CASCADE"), nullable=False
    )
    manager_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("managers.id", ondelete="SET NULL"), nullable=True
    )
    status: Mapped[str] = mapped_column(
        String(20), default=TurnStatus.IN_PROGRESS.value, nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    submitted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    needs_fix_at: Mapped[datetime | None] = mapped_column(nullable=True)
    last_fix_submitted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Manager review note (needs-fix summary)
    manager_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    manager_note_original: Mapped[str | None] = mapped_column(Text, nullable=True)
    manager_note_translated: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Cleaner reply on fix resubmission; cleaner_reply is the manager-facing text
    cleaner_reply: Mapped[str | None] = mapped_column(Text, nullable=True)
    cleaner_reply_original: Mapped[str | None] = mapped_column(Text, nullable=True)
    cleaner_reply_translated: Mapped[str | None] = mapped_column(Text, nullable=True)
    cleaner_reply_original_lang: Mapped[str | None] = mapped_column(String(10), nullable=True)
    cleaner_reply_translated_lang: Mapped[str | None] = mapped_column(String(10), nullable=True)

    photos: Mapped[list["TurnPhoto"]] = relationship(
        back_populates="turn",
        cascade="all, delete-orphan",
        order_by="TurnPhoto.created_at",
    )


PHOTO_SCHEMA_VERSION = 2


class TurnPhoto(Base):
    """
    Photo metadata for a turn. Rows are append-only: fix photos are new rows
    with is_fix=True, originals are kept.
    """

    __tablename__ = "turn_photos"
    __table_args__ = (
        Index("ix_turn_photos_turn_path", "turn_id", "storage_path"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    turn_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("turns.id", ondelete="CASCADE"), nullable=False
    )
    schema_version: Mapped[int] = mapped_column(
        Integer, default=PHOTO_SCHEMA_VERSION, nullable=False
    )
    shot_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    area_key: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    storage_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    is_fix: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    cleaner_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    cleaner_note_original: Mapped[str | None] = mapped_column(Text, nullable=True)
    cleaner_note_translated: Mapped[str | None] = mapped_column(Text, nullable=True)
    cleaner_note_original_lang: Mapped[str | None] = mapped_column(String(10), nullable=True)
    cleaner_note_translated_lang: Mapped[str | None] = mapped_column(String(10), nullable=True)

    needs_fix: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    manager_note: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    turn: Mapped["Turn"] = relationship(back_populates="photos")


class TurnEvent(Base):
    """Append-only audit trail for a turn (transitions, notifications, payouts)."""

    __tablename__ = "turn_events"
    __table_args__ = (
        Index("ix_turn_events_turn_created", "turn_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    turn_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("turns.id", ondelete="CASCADE"), nullable=False
    )
    event: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_role: Mapped[str | None] = mapped_column(String(20), nullable=True)
    actor_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    meta: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)


# =============================================================================
# Phone verification
# =============================================================================

class OtpChallenge(Base):
    """
    One-time SMS code bound to (role, phone).

    Only the newest unused challenge per (role, phone) is considered on
    verify; older ones are superseded, not deleted.
    """

    __tablename__ = "otp_challenges"
    __table_args__ = (
        Index("ix_otp_challenges_role_phone_created", "role", "phone", "created_at"),
        Index("ix_otp_challenges_role_subject_created", "role", "subject_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    subject_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    phone: Mapped[str] = mapped_column(String(20), nullable=False)
    code: Mapped[str] = mapped_column(String(6), nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(nullable=False)
    used_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
