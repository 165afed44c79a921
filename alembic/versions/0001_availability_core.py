"""availability core tables

Revision ID: 0001_availability_core
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001_availability_core'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

BOOKING_STATUSES = ('pending', 'confirmed', 'cancelled', 'completed', 'disputed')
ACTIVE_STATUS_SQL = sa.text("status IN ('pending', 'confirmed')")


def upgrade() -> None:
    """Upgrade schema."""

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.Text(), nullable=False, unique=True),
        sa.Column('first_name', sa.Text(), nullable=False),
        sa.Column('last_name', sa.Text(), nullable=True),
        sa.Column('role', sa.Enum('client', 'provider', 'admin', name='user_role'), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.current_timestamp()),
        sa.Column('booking_version', sa.Integer(), nullable=False, server_default=sa.text('0')),
    )

    op.create_table(
        'services',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('provider_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column('base_price_pence', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('travel_fee_pence', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('materials_fee_pence', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('materials_policy', sa.Text(), nullable=False, server_default=sa.text("'client_provides'")),
        sa.Column('location_types', sa.Text(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index('ix_services_provider_id', 'services', ['provider_id'])

    op.create_table(
        'availability_rules',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('provider_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('day_of_week', sa.Integer(), nullable=False),
        sa.Column('start_time', sa.Text(), nullable=False),
        sa.Column('end_time', sa.Text(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.current_timestamp()),
    )
    op.create_index('ix_availability_rules_provider_day', 'availability_rules', ['provider_id', 'day_of_week'])

    op.create_table(
        'availability_exceptions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('provider_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('start_datetime', sa.DateTime(), nullable=False),
        sa.Column('end_datetime', sa.DateTime(), nullable=False),
        sa.Column('type', sa.Text(), nullable=False, server_default=sa.text("'blocked'")),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.current_timestamp()),
    )
    op.create_index(
        'ix_availability_exceptions_provider_start',
        'availability_exceptions',
        ['provider_id', 'start_datetime'],
    )

    op.create_table(
        'provider_availability_settings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column(
            'provider_id',
            sa.Integer(),
            sa.ForeignKey('users.id', ondelete='CASCADE'),
            nullable=False,
            unique=True,
        ),
        sa.Column('min_lead_time_hours', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('max_bookings_per_day', sa.Integer(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.current_timestamp()),
    )

    op.create_table(
        'bookings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('client_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('provider_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('service_id', sa.Integer(), sa.ForeignKey('services.id'), nullable=False),
        sa.Column('start_datetime', sa.DateTime(), nullable=False),
        sa.Column('end_datetime', sa.DateTime(), nullable=False),
        sa.Column(
            'status',
            sa.Enum(*BOOKING_STATUSES, name='booking_status'),
            nullable=False,
            server_default=sa.text("'pending'"),
        ),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('cancel_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.current_timestamp()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.current_timestamp()),
    )
    op.create_index('ix_bookings_provider_start', 'bookings', ['provider_id', 'start_datetime'])
    op.create_index(
        'uq_bookings_provider_active_start',
        'bookings',
        ['provider_id', 'start_datetime'],
        unique=True,
        sqlite_where=ACTIVE_STATUS_SQL,
        postgresql_where=ACTIVE_STATUS_SQL,
    )

    op.create_table(
        'booking_audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('booking_id', sa.Integer(), sa.ForeignKey('bookings.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('action', sa.Text(), nullable=False),
        sa.Column('new_status', sa.Text(), nullable=True),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.current_timestamp()),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('booking_audit_logs')
    op.drop_index('uq_bookings_provider_active_start', table_name='bookings')
    op.drop_index('ix_bookings_provider_start', table_name='bookings')
    op.drop_table('bookings')
    op.drop_table('provider_availability_settings')
    op.drop_index('ix_availability_exceptions_provider_start', table_name='availability_exceptions')
    op.drop_table('availability_exceptions')
    op.drop_index('ix_availability_rules_provider_day', table_name='availability_rules')
    op.drop_table('availability_rules')
    op.drop_index('ix_services_provider_id', table_name='services')
    op.drop_table('services')
    op.drop_table('users')
    sa.Enum(name='booking_status').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='user_role').drop(op.get_bind(), checkfirst=True)
