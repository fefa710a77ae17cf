"""booking_workflow_schema

Revision ID: 4f1c2a9e7b3d
Revises:
Create Date: 2026-10-17 09:12:44.318207

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4f1c2a9e7b3d'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


THERAPIST_STATUS = ('active', 'inactive', 'pending')
BOOKING_STATUS = (
    'pending',
    'awaiting_therapist_selection',
    'quote_pending',
    'confirmed',
    'ongoing',
    'completed',
    'cancelled',
)


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'venues',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=True, comment='ISO 4217 code used for prices at this venue'),
        sa.Column('timezone', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'therapists',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=True),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=20), nullable=True),
        sa.Column('status', sa.Enum(*THERAPIST_STATUS, name='therapist_status'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id'),
    )
    op.create_index('ix_therapists_status', 'therapists', ['status'])

    op.create_table(
        'therapist_venues',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('therapist_id', sa.Uuid(), nullable=False),
        sa.Column('venue_id', sa.Uuid(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['therapist_id'], ['therapists.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['venue_id'], ['venues.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('therapist_id', 'venue_id', name='uq_therapist_venue'),
    )
    op.create_index('ix_therapist_venues_therapist_id', 'therapist_venues', ['therapist_id'])
    op.create_index('ix_therapist_venues_venue_id', 'therapist_venues', ['venue_id'])

    op.create_table(
        'bookings',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('booking_number', sa.Integer(), nullable=False, comment='Human-facing sequential booking number'),
        sa.Column('venue_id', sa.Uuid(), nullable=False),
        sa.Column('venue_name', sa.String(length=255), nullable=True),
        sa.Column('client_first_name', sa.String(length=100), nullable=False),
        sa.Column('client_last_name', sa.String(length=100), nullable=False),
        sa.Column('client_email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=20), nullable=False),
        sa.Column('language', sa.String(length=5), nullable=False),
        sa.Column('booking_date', sa.Date(), nullable=False),
        sa.Column('booking_time', sa.Time(), nullable=False),
        sa.Column('status', sa.Enum(*BOOKING_STATUS, name='booking_status'), nullable=False),
        sa.Column('therapist_id', sa.Uuid(), nullable=True),
        sa.Column('therapist_name', sa.String(length=255), nullable=True),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('declined_by', sa.JSON(), nullable=False, comment='Therapist ids who passed on this booking'),
        sa.Column('total_price', sa.Numeric(10, 2), nullable=True),
        sa.Column('treatments', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['venue_id'], ['venues.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['therapist_id'], ['therapists.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('booking_number'),
    )
    op.create_index('ix_bookings_venue_id', 'bookings', ['venue_id'])
    op.create_index('ix_bookings_booking_date', 'bookings', ['booking_date'])
    op.create_index('ix_bookings_status', 'bookings', ['status'])
    op.create_index('ix_bookings_therapist_id', 'bookings', ['therapist_id'])

    op.create_table(
        'booking_proposed_slots',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('booking_id', sa.Uuid(), nullable=False),
        sa.Column('slot_1_date', sa.Date(), nullable=False),
        sa.Column('slot_1_time', sa.Time(), nullable=False),
        sa.Column('slot_2_date', sa.Date(), nullable=True),
        sa.Column('slot_2_time', sa.Time(), nullable=True),
        sa.Column('slot_3_date', sa.Date(), nullable=True),
        sa.Column('slot_3_time', sa.Time(), nullable=True),
        sa.Column('validated_slot', sa.Integer(), nullable=True),
        sa.Column('validated_by', sa.Uuid(), nullable=True),
        sa.Column('validated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('admin_notified_at', sa.DateTime(timezone=True), nullable=True, comment='Set once admins were alerted that nobody claimed in time'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('validated_slot IS NULL OR validated_slot IN (1, 2, 3)', name='proposed_slots_validated_slot_range'),
        sa.CheckConstraint('(slot_2_date IS NULL) = (slot_2_time IS NULL)', name='proposed_slots_slot_2_complete'),
        sa.CheckConstraint('(slot_3_date IS NULL) = (slot_3_time IS NULL)', name='proposed_slots_slot_3_complete'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['validated_by'], ['therapists.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('booking_id'),
    )
    op.create_index('ix_booking_proposed_slots_expires_at', 'booking_proposed_slots', ['expires_at'])

    op.create_table(
        'notification_logs',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('booking_id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('notification_type', sa.String(length=50), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('booking_id', 'user_id', name='uq_notification_logs_booking_user'),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('notification_logs')
    op.drop_index('ix_booking_proposed_slots_expires_at', table_name='booking_proposed_slots')
    op.drop_table('booking_proposed_slots')
    op.drop_index('ix_bookings_therapist_id', table_name='bookings')
    op.drop_index('ix_bookings_status', table_name='bookings')
    op.drop_index('ix_bookings_booking_date', table_name='bookings')
    op.drop_index('ix_bookings_venue_id', table_name='bookings')
    op.drop_table('bookings')
    op.drop_index('ix_therapist_venues_venue_id', table_name='therapist_venues')
    op.drop_index('ix_therapist_venues_therapist_id', table_name='therapist_venues')
    op.drop_table('therapist_venues')
    op.drop_index('ix_therapists_status', table_name='therapists')
    op.drop_table('therapists')
    op.drop_table('venues')
    sa.Enum(name='booking_status').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='therapist_status').drop(op.get_bind(), checkfirst=True)
