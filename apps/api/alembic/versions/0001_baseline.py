"""Baseline migration - actors, properties, turns and phone verification

Revision ID: 0001_baseline
Revises: 
Create Date: 2026-10-18

Creates every table the turns API uses. UUIDs and timestamps are
generated by the application, so no database extensions are needed.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_baseline'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _ts(name: str, nullable: bool = True) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def _consent_columns() -> list[sa.Column]:
    return [
        sa.Column('sms_consent', sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts('sms_consent_at'),
        _ts('sms_opt_out_at'),
        _ts('phone_verified_at'),
        sa.Column('sms_consent_ip', sa.String(64), nullable=True),
        sa.Column('consent_text_snapshot', sa.Text(), nullable=True),
    ]


def upgrade() -> None:
    """Create all tables."""

    # ==========================================================================
    # Tenancy & actors
    # ==========================================================================
    op.create_table(
        'organizations',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        _ts('created_at', nullable=False),
    )

    op.create_table(
        'managers',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('org_id', sa.Uuid(), sa.ForeignKey('organizations.id', ondelete='SET NULL'), nullable=True),
        sa.Column('user_id', sa.Uuid(), nullable=True, unique=True),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(20), nullable=True, unique=True),
        *_consent_columns(),
        _ts('created_at', nullable=False),
    )
    op.create_index('ix_managers_org_verified', 'managers', ['org_id', 'phone_verified_at'])

    op.create_table(
        'cleaners',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), nullable=True, unique=True),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(20), nullable=True, unique=True),
        *_consent_columns(),
        _ts('created_at', nullable=False),
    )

    # ==========================================================================
    # Properties & templates
    # ==========================================================================
    op.create_table(
        'properties',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('org_id', sa.Uuid(), sa.ForeignKey('organizations.id', ondelete='SET NULL'), nullable=True),
        sa.Column('manager_id', sa.Uuid(), sa.ForeignKey('managers.id', ondelete='SET NULL'), nullable=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('unit', sa.String(100), nullable=True),
        _ts('created_at', nullable=False),
    )

    op.create_table(
        'property_cleaners',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('property_id', sa.Uuid(), sa.ForeignKey('properties.id', ondelete='CASCADE'), nullable=False),
        sa.Column('cleaner_id', sa.Uuid(), sa.ForeignKey('cleaners.id', ondelete='CASCADE'), nullable=False),
        _ts('created_at', nullable=False),
        sa.UniqueConstraint('property_id', 'cleaner_id', name='uq_property_cleaners_pair'),
    )

    op.create_table(
        'property_templates',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('property_id', sa.Uuid(), sa.ForeignKey('properties.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
    )

    op.create_table(
        'template_shots',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('template_id', sa.Uuid(), sa.ForeignKey('property_templates.id', ondelete='CASCADE'), nullable=False),
        sa.Column('area_key', sa.String(100), nullable=False),
        sa.Column('label', sa.String(255), nullable=False),
    )

    # ==========================================================================
    # Turns
    # ==========================================================================
    op.create_table(
        'turns',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('property_id', sa.Uuid(), sa.ForeignKey('properties.id', ondelete='CASCADE'), nullable=False),
        sa.Column('cleaner_id', sa.Uuid(), sa.ForeignKey('cleaners.id', ondelete='CASCADE'), nullable=False),
        sa.Column('manager_id', sa.Uuid(), sa.ForeignKey('managers.id', ondelete='SET NULL'), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='in_progress'),
        _ts('created_at', nullable=False),
        _ts('updated_at', nullable=False),
        _ts('submitted_at'),
        _ts('needs_fix_at'),
        _ts('last_fix_submitted_at'),
        _ts('approved_at'),
        _ts('cancelled_at'),
        sa.Column('approved_by', sa.String(255), nullable=True),
        sa.Column('manager_note', sa.Text(), nullable=True),
        sa.Column('manager_note_original', sa.Text(), nullable=True),
        sa.Column('manager_note_translated', sa.Text(), nullable=True),
        sa.Column('cleaner_reply', sa.Text(), nullable=True),
        sa.Column('cleaner_reply_original', sa.Text(), nullable=True),
        sa.Column('cleaner_reply_translated', sa.Text(), nullable=True),
        sa.Column('cleaner_reply_original_lang', sa.String(10), nullable=True),
        sa.Column('cleaner_reply_translated_lang', sa.String(10), nullable=True),
    )
    op.create_index('ix_turns_property', 'turns', ['property_id'])
    op.create_index('ix_turns_cleaner', 'turns', ['cleaner_id'])
    op.create_index('ix_turns_manager_status', 'turns', ['manager_id', 'status'])

    op.create_table(
        'turn_photos',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('turn_id', sa.Uuid(), sa.ForeignKey('turns.id', ondelete='CASCADE'), nullable=False),
        sa.Column('schema_version', sa.Integer(), nullable=False, server_default='2'),
        sa.Column('shot_id', sa.Uuid(), nullable=True),
        sa.Column('area_key', sa.String(100), nullable=False, server_default=''),
        sa.Column('storage_path', sa.String(1024), nullable=False),
        sa.Column('is_fix', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('cleaner_note', sa.Text(), nullable=True),
        sa.Column('cleaner_note_original', sa.Text(), nullable=True),
        sa.Column('cleaner_note_translated', sa.Text(), nullable=True),
        sa.Column('cleaner_note_original_lang', sa.String(10), nullable=True),
        sa.Column('cleaner_note_translated_lang', sa.String(10), nullable=True),
        sa.Column('needs_fix', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('manager_note', sa.Text(), nullable=True),
        _ts('created_at', nullable=False),
    )
    op.create_index('ix_turn_photos_turn_path', 'turn_photos', ['turn_id', 'storage_path'])

    op.create_table(
        'turn_events',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('turn_id', sa.Uuid(), sa.ForeignKey('turns.id', ondelete='CASCADE'), nullable=False),
        sa.Column('event', sa.String(50), nullable=False),
        sa.Column('actor_role', sa.String(20), nullable=True),
        sa.Column('actor_id', sa.Uuid(), nullable=True),
        sa.Column('meta', sa.JSON(), nullable=True),
        _ts('created_at', nullable=False),
    )
    op.create_index('ix_turn_events_turn_created', 'turn_events', ['turn_id', 'created_at'])

    # ==========================================================================
    # Phone verification
    # ==========================================================================
    op.create_table(
        'otp_challenges',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('role', sa.String(20), nullable=False),
        sa.Column('subject_id', sa.Uuid(), nullable=False),
        sa.Column('phone', sa.String(20), nullable=False),
        sa.Column('code', sa.String(6), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        _ts('expires_at', nullable=False),
        _ts('used_at'),
        _ts('created_at', nullable=False),
    )
    op.create_index('ix_otp_challenges_role_phone_created', 'otp_challenges', ['role', 'phone', 'created_at'])
    op.create_index('ix_otp_challenges_role_subject_created', 'otp_challenges', ['role', 'subject_id', 'created_at'])


def downgrade() -> None:
    """Drop all tables."""
    for table in (
        'otp_challenges',
        'turn_events',
        'turn_photos',
        'turns',
        'template_shots',
        'property_templates',
        'property_cleaners',
        'properties',
        'cleaners',
        'managers',
        'organizations',
    ):
        op.drop_table(table)
