"""Billing schema: payments, orders, client services, maintenance.

Revision ID: 0001_billing_schema
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '0001_billing_schema'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), onupdate=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True, index=True),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('is_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'service_definitions',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        # Prices in cents
        sa.Column('one_off_price', sa.Integer(), nullable=True),
        sa.Column('recurring_price', sa.Integer(), nullable=True),
        sa.Column('recurring_price_per_unit', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('billing_cycle_days', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )

    for table in ('products', 'packages'):
        op.create_table(
            table,
            sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
            sa.Column('name', sa.String(255), nullable=False),
            sa.Column('description', sa.Text(), nullable=True),
            sa.Column('price', sa.Integer(), nullable=False),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        )

    op.create_table(
        'payments',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('users.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='USD'),
        sa.Column('method', sa.String(30), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='PENDING', index=True),
        sa.Column('reference', sa.String(100), nullable=False, unique=True),
        sa.Column('external_transaction_id', sa.String(255), nullable=True),
        sa.Column('poll_handle', sa.Text(), nullable=True, index=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('failed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'orders',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('users.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('item_type', sa.String(20), nullable=False),
        sa.Column('item_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('payment_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('payments.id', ondelete='CASCADE'),
                  nullable=False, unique=True),
        sa.Column('reference', sa.String(100), nullable=False, index=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='PENDING'),
        # Null on a COMPLETED order means paid but not yet provisioned
        sa.Column('provisioned_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'client_services',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('users.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('service_definition_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('service_definitions.id'),
                  nullable=False, index=True),
        sa.Column('units', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('status', sa.String(30), nullable=False, server_default='ACTIVE', index=True),
        sa.Column('enable_recurring', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('custom_recurring_price', sa.Integer(), nullable=True),
        sa.Column('next_billing_date', sa.Date(), nullable=True, index=True),
        sa.Column('one_off_price_paid', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('one_off_paid_in_cash', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('one_off_cash_confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('one_off_cash_confirmed_by', sa.String(100), nullable=True),
        sa.Column('current_period_paid_in_cash', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('current_period_cash_confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('current_period_cash_confirmed_by', sa.String(100), nullable=True),
        sa.Column('last_reminder_billing_date', sa.Date(), nullable=True),
        sa.Column('date_joined', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), onupdate=sa.func.now(), nullable=False),
        sa.UniqueConstraint('user_id', 'service_definition_id',
                            name='uq_client_service_user_definition'),
    )

    op.create_table(
        'projects',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('users.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('name', sa.String(255), nullable=False),
    )

    op.create_table(
        'maintenance',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('project_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('projects.id', ondelete='CASCADE'),
                  nullable=False, unique=True),
        sa.Column('monthly_fee', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('current_period_start', sa.Date(), nullable=False),
        sa.Column('current_period_end', sa.Date(), nullable=False, index=True),
        sa.Column('is_paid_for_current_period', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('paid_in_cash', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('cash_confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cash_confirmed_by', sa.String(100), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reminder_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_reminder_sent', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('end_date', sa.Date(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'notifications',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('users.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('type', sa.String(30), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )

    # Sweep for stale pending payments
    op.create_index(
        'ix_payments_pending_created_at',
        'payments',
        ['created_at'],
        postgresql_where=sa.text("status = 'PENDING'")
    )


def downgrade() -> None:
    op.drop_index('ix_payments_pending_created_at', table_name='payments')
    for table in (
        'notifications',
        'maintenance',
        'projects',
        'client_services',
        'orders',
        'payments',
        'packages',
        'products',
        'service_definitions',
        'users',
    ):
        op.drop_table(table)
