"""Initial booking schema

Revision ID: 0001
Revises:
Create Date: 2026-01-18 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade database schema."""
    # Create rooms table
    op.create_table('rooms',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('property', sa.String(length=20), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('capacity_max', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('capacity_max > 0', name='ck_room_capacity_positive'),
        sa.CheckConstraint('length(name) > 0', name='ck_room_name_not_empty'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('property', 'name', name='uq_room_property_name')
    )
    op.create_index(op.f('ix_rooms_property'), 'rooms', ['property'], unique=False)

    # Create bookings table
    op.create_table('bookings',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('reference_id', sa.String(length=32), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('property', sa.String(length=20), nullable=False),
        sa.Column('booking_mode', sa.String(length=20), nullable=False),
        sa.Column('checkin_date', sa.Date(), nullable=False),
        sa.Column('checkout_date', sa.Date(), nullable=False),
        sa.Column('guests_count', sa.Integer(), nullable=False),
        sa.Column('children_count', sa.Integer(), nullable=False),
        sa.Column('total_price_amount', sa.Integer(), nullable=True),
        sa.Column('total_price_currency', sa.String(length=3), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('hold_expires_at', sa.DateTime(), nullable=True),
        sa.Column('checked_in', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('checkout_date > checkin_date', name='ck_booking_checkout_after_checkin'),
        sa.CheckConstraint('guests_count > 0', name='ck_booking_guests_positive'),
        sa.CheckConstraint('children_count >= 0', name='ck_booking_children_non_negative'),
        sa.CheckConstraint('total_price_amount IS NULL OR total_price_amount >= 0', name='ck_booking_price_non_negative'),
        sa.CheckConstraint("status = 'hold' OR hold_expires_at IS NULL", name='ck_booking_hold_expiry_only_while_held'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_bookings_reference_id'), 'bookings', ['reference_id'], unique=True)
    op.create_index(op.f('ix_bookings_user_id'), 'bookings', ['user_id'], unique=False)
    op.create_index(op.f('ix_bookings_status'), 'bookings', ['status'], unique=False)
    op.create_index(op.f('ix_bookings_hold_expires_at'), 'bookings', ['hold_expires_at'], unique=False)
    op.create_index('ix_bookings_status_hold_expires_at', 'bookings', ['status', 'hold_expires_at'], unique=False)

    # Create booking_rooms association table
    op.create_table('booking_rooms',
        sa.Column('booking_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('room_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['room_id'], ['rooms.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('booking_id', 'room_id')
    )

    # Create booking_guests table
    op.create_table('booking_guests',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('booking_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('is_child', sa.Boolean(), nullable=False),
        sa.Column('is_booking_user', sa.Boolean(), nullable=False),
        sa.Column('order_index', sa.Integer(), nullable=False),
        sa.CheckConstraint('length(first_name) > 0', name='ck_booking_guest_first_name_not_empty'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_booking_guests_booking_id'), 'booking_guests', ['booking_id'], unique=False)

    # Create room_inventory table
    op.create_table('room_inventory',
        sa.Column('room_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('day', sa.Date(), nullable=False),
        sa.Column('held', sa.Boolean(), nullable=False),
        sa.Column('booked', sa.Boolean(), nullable=False),
        sa.Column('booking_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('NOT (held AND booked)', name='ck_room_inventory_held_xor_booked'),
        sa.CheckConstraint('(held OR booked) = (booking_id IS NOT NULL)', name='ck_room_inventory_owner_matches_flags'),
        sa.ForeignKeyConstraint(['room_id'], ['rooms.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('room_id', 'day')
    )
    op.create_index(op.f('ix_room_inventory_booking_id'), 'room_inventory', ['booking_id'], unique=False)

    # Create property_inventory table
    op.create_table('property_inventory',
        sa.Column('property', sa.String(length=20), nullable=False),
        sa.Column('day', sa.Date(), nullable=False),
        sa.Column('capacity_total', sa.Integer(), nullable=False),
        sa.Column('capacity_held', sa.Integer(), nullable=False),
        sa.Column('capacity_booked', sa.Integer(), nullable=False),
        sa.Column('buyout_held', sa.Boolean(), nullable=False),
        sa.Column('buyout_booked', sa.Boolean(), nullable=False),
        sa.Column('buyout_booking_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('capacity_total >= 0', name='ck_property_inventory_total_non_negative'),
        sa.CheckConstraint('capacity_held >= 0', name='ck_property_inventory_held_non_negative'),
        sa.CheckConstraint('capacity_booked >= 0', name='ck_property_inventory_booked_non_negative'),
        sa.CheckConstraint('capacity_held + capacity_booked <= capacity_total', name='ck_property_inventory_within_capacity'),
        sa.CheckConstraint('NOT (buyout_held AND buyout_booked)', name='ck_property_inventory_buyout_held_xor_booked'),
        sa.ForeignKeyConstraint(['buyout_booking_id'], ['bookings.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('property', 'day')
    )

    # Create refund_policies table
    op.create_table('refund_policies',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('property', sa.String(length=20), nullable=False),
        sa.Column('booking_mode', sa.String(length=20), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(
        'uq_refund_policies_active_property_mode',
        'refund_policies',
        ['property', 'booking_mode'],
        unique=True,
        postgresql_where=sa.text('is_active')
    )

    # Create refund_policy_rules table
    op.create_table('refund_policy_rules',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('refund_policy_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('days_before_checkin', sa.Integer(), nullable=False),
        sa.Column('refund_percentage', sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('priority', sa.Integer(), nullable=False),
        sa.CheckConstraint('days_before_checkin >= 0', name='ck_refund_rule_days_non_negative'),
        sa.CheckConstraint('refund_percentage >= 0 AND refund_percentage <= 100', name='ck_refund_rule_percentage_range'),
        sa.ForeignKeyConstraint(['refund_policy_id'], ['refund_policies.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_refund_policy_rules_refund_policy_id'), 'refund_policy_rules', ['refund_policy_id'], unique=False)

    # Create pending_refunds table
    op.create_table('pending_refunds',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('booking_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('payment_id', sa.String(length=255), nullable=False),
        sa.Column('policy_refund_amount', sa.Integer(), nullable=False),
        sa.Column('admin_refund_amount', sa.Integer(), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('applied_rule_days_before_checkin', sa.Integer(), nullable=True),
        sa.Column('applied_rule_refund_percentage', sa.Numeric(precision=5, scale=2), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        sa.Column('reviewed_by', sa.String(length=128), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('policy_refund_amount >= 0', name='ck_pending_refund_policy_amount_non_negative'),
        sa.CheckConstraint('admin_refund_amount IS NULL OR admin_refund_amount >= 0', name='ck_pending_refund_admin_amount_non_negative'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_pending_refunds_booking_id'), 'pending_refunds', ['booking_id'], unique=False)
    op.create_index(op.f('ix_pending_refunds_payment_id'), 'pending_refunds', ['payment_id'], unique=False)
    op.create_index(op.f('ix_pending_refunds_status'), 'pending_refunds', ['status'], unique=False)


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_index(op.f('ix_pending_refunds_status'), table_name='pending_refunds')
    op.drop_index(op.f('ix_pending_refunds_payment_id'), table_name='pending_refunds')
    op.drop_index(op.f('ix_pending_refunds_booking_id'), table_name='pending_refunds')
    op.drop_table('pending_refunds')

    op.drop_index(op.f('ix_refund_policy_rules_refund_policy_id'), table_name='refund_policy_rules')
    op.drop_table('refund_policy_rules')

    op.drop_index('uq_refund_policies_active_property_mode', table_name='refund_policies')
    op.drop_table('refund_policies')

    op.drop_table('property_inventory')

    op.drop_index(op.f('ix_room_inventory_booking_id'), table_name='room_inventory')
    op.drop_table('room_inventory')

    op.drop_index(op.f('ix_booking_guests_booking_id'), table_name='booking_guests')
    op.drop_table('booking_guests')

    op.drop_table('booking_rooms')

    op.drop_index('ix_bookings_status_hold_expires_at', table_name='bookings')
    op.drop_index(op.f('ix_bookings_hold_expires_at'), table_name='bookings')
    op.drop_index(op.f('ix_bookings_status'), table_name='bookings')
    op.drop_index(op.f('ix_bookings_user_id'), table_name='bookings')
    op.drop_index(op.f('ix_bookings_reference_id'), table_name='bookings')
    op.drop_table('bookings')

    op.drop_index(op.f('ix_rooms_property'), table_name='rooms')
    op.drop_table('rooms')
