"""Create ticketing and agent ledger tables

Revision ID: 001_ticketing_schema
Revises:
Create Date: 2026-10-19

Creates the tables the payment core reads and writes:
- profiles, user_roles: auth platform profile and role grants
- agents, agent_registrations, agent_settings: agent program
- concerts, ticket_types: catalogue and inventory
- orders, order_items: checkout, payment intents, ticket codes
- withdrawals, agent_payments: agent ledger

Tables that already exist (hosted database) are left untouched.
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import text


# revision identifiers, used by Alembic.
revision = '001_ticketing_schema'
down_revision = None
branch_labels = None
depends_on = None


def table_exists(table_name: str) -> bool:
    """Check if a table exists in the current database."""
    conn = op.get_bind()
    return sa.inspect(conn).has_table(table_name)


def _id_column() -> sa.Column:
    return sa.Column('id', sa.Uuid(), primary_key=True)


def _created_at() -> sa.Column:
    return sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())


def _updated_at() -> sa.Column:
    return sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())


def upgrade() -> None:
    """Create ticketing tables."""

    if not table_exists('profiles'):
        op.create_table(
            'profiles',
            _id_column(),
            sa.Column('user_id', sa.Uuid(), nullable=False),
            sa.Column('full_name', sa.String(200), nullable=True),
            sa.Column('phone', sa.String(20), nullable=True),
            _created_at(),
        )
        op.create_index('ix_profiles_user_id', 'profiles', ['user_id'], unique=True)

    if not table_exists('user_roles'):
        op.create_table(
            'user_roles',
            _id_column(),
            sa.Column('user_id', sa.Uuid(), nullable=False),
            sa.Column('role', sa.String(20), nullable=False, comment='admin, agent, user'),
            _created_at(),
            sa.UniqueConstraint('user_id', 'role', name='uq_user_roles_user_role'),
        )
        op.create_index('ix_user_roles_user_id', 'user_roles', ['user_id'])

    if not table_exists('agents'):
        op.create_table(
            'agents',
            _id_column(),
            sa.Column('user_id', sa.Uuid(), nullable=False),
            sa.Column('business_name', sa.String(200), nullable=False),
            sa.Column('business_description', sa.Text(), nullable=True),
            sa.Column('registration_status', sa.String(20), nullable=False, server_default='pending',
                      comment='pending, active, rejected'),
            sa.Column('registration_payment_id', sa.String(100), nullable=True),
            sa.Column('max_events', sa.Integer(), nullable=False, server_default='5'),
            sa.Column('successful_events_count', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('is_auto_approve', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('total_earnings', sa.Numeric(14, 2), nullable=False, server_default='0'),
            sa.Column('total_commission_paid', sa.Numeric(14, 2), nullable=False, server_default='0'),
            sa.Column('bank_name', sa.String(100), nullable=True),
            sa.Column('bank_account_number', sa.String(50), nullable=True),
            sa.Column('bank_account_name', sa.String(200), nullable=True),
            _created_at(),
            _updated_at(),
        )
        op.create_index('ix_agents_user_id', 'agents', ['user_id'], unique=True)
        op.create_index('ix_agents_registration_status', 'agents', ['registration_status'])

    if not table_exists('agent_registrations'):
        op.create_table(
            'agent_registrations',
            _id_column(),
            sa.Column('user_id', sa.Uuid(), nullable=False),
            sa.Column('business_name', sa.String(200), nullable=False),
            sa.Column('business_description', sa.Text(), nullable=True),
            sa.Column('bank_name', sa.String(100), nullable=True),
            sa.Column('bank_account_number', sa.String(50), nullable=True),
            sa.Column('bank_account_name', sa.String(200), nullable=True),
            sa.Column('registration_fee', sa.Numeric(14, 2), nullable=False),
            sa.Column('payment_method', sa.String(20), nullable=True),
            sa.Column('payment_id', sa.String(100), nullable=True),
            sa.Column('payment_data', sa.JSON(), nullable=True),
            sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('status', sa.String(20), nullable=False, server_default='pending',
                      comment='pending, paid, active'),
            sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('processed_by', sa.Uuid(), nullable=True),
            _created_at(),
        )
        op.create_index('ix_agent_registrations_user_id', 'agent_registrations', ['user_id'])
        op.create_index('ix_agent_registrations_payment_id', 'agent_registrations', ['payment_id'])
        op.create_index('ix_agent_registrations_status', 'agent_registrations', ['status'])
        op.create_index(
            'uq_agent_registrations_open_per_user',
            'agent_registrations',
            ['user_id'],
            unique=True,
            postgresql_where=sa.text("status IN ('pending', 'paid')"),
        )

    if not table_exists('agent_settings'):
        op.create_table(
            'agent_settings',
            _id_column(),
            sa.Column('registration_fee', sa.Numeric(14, 2), nullable=False, server_default='500000'),
            sa.Column('default_max_events', sa.Integer(), nullable=False, server_default='5'),
            sa.Column('max_events_before_auto_approve', sa.Integer(), nullable=False, server_default='3'),
            sa.Column('platform_commission_percent', sa.Numeric(5, 2), nullable=False, server_default='10'),
            _created_at(),
            _updated_at(),
        )

    if not table_exists('concerts'):
        op.create_table(
            'concerts',
            _id_column(),
            sa.Column('title', sa.String(200), nullable=False),
            sa.Column('artist', sa.String(200), nullable=False),
            sa.Column('venue', sa.String(200), nullable=True),
            sa.Column('city', sa.String(100), nullable=True),
            sa.Column('date', sa.Date(), nullable=True),
            sa.Column('agent_id', sa.Uuid(), sa.ForeignKey('agents.id', ondelete='SET NULL'), nullable=True),
            _created_at(),
        )
        op.create_index('ix_concerts_agent_id', 'concerts', ['agent_id'])

    if not table_exists('ticket_types'):
        op.create_table(
            'ticket_types',
            _id_column(),
            sa.Column('concert_id', sa.Uuid(), sa.ForeignKey('concerts.id', ondelete='CASCADE'), nullable=False),
            sa.Column('name', sa.String(100), nullable=False),
            sa.Column('description', sa.Text(), nullable=True),
            sa.Column('price', sa.Numeric(14, 2), nullable=False),
            sa.Column('total_quantity', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('available_quantity', sa.Integer(), nullable=False, server_default='0'),
            _created_at(),
            sa.CheckConstraint('available_quantity >= 0', name='ck_ticket_types_available_non_negative'),
            sa.CheckConstraint('available_quantity <= total_quantity', name='ck_ticket_types_available_le_total'),
        )
        op.create_index('ix_ticket_types_concert_id', 'ticket_types', ['concert_id'])

    if not table_exists('orders'):
        op.create_table(
            'orders',
            _id_column(),
            sa.Column('order_number', sa.String(40), nullable=False),
            sa.Column('user_id', sa.Uuid(), nullable=True),
            sa.Column('status', sa.String(20), nullable=False, server_default='pending',
                      comment='pending, paid, cancelled, expired'),
            sa.Column('total_amount', sa.Numeric(14, 2), nullable=False),
            sa.Column('customer_name', sa.String(100), nullable=False),
            sa.Column('customer_email', sa.String(255), nullable=False),
            sa.Column('customer_phone', sa.String(20), nullable=False),
            sa.Column('payment_method', sa.String(20), nullable=True, comment='VA, EWALLET, QRIS'),
            sa.Column('payment_id', sa.String(100), nullable=True),
            sa.Column('payment_data', sa.JSON(), nullable=True),
            sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
            _created_at(),
            _updated_at(),
        )
        op.create_index('ix_orders_order_number', 'orders', ['order_number'], unique=True)
        op.create_index('ix_orders_user_id', 'orders', ['user_id'])
        op.create_index('ix_orders_status', 'orders', ['status'])
        op.create_index('ix_orders_payment_id', 'orders', ['payment_id'])
        op.create_index('ix_orders_created_at', 'orders', ['created_at'])
        op.create_index('ix_order_status_expires', 'orders', ['status', 'expires_at'])
        op.create_index('ix_order_user_created', 'orders', ['user_id', 'created_at'])

    if not table_exists('order_items'):
        op.create_table(
            'order_items',
            _id_column(),
            sa.Column('order_id', sa.Uuid(), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
            sa.Column('ticket_type_id', sa.Uuid(), sa.ForeignKey('ticket_types.id', ondelete='SET NULL'),
                      nullable=True),
            sa.Column('concert_id', sa.Uuid(), sa.ForeignKey('concerts.id', ondelete='SET NULL'), nullable=True),
            sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
            sa.Column('unit_price', sa.Numeric(14, 2), nullable=False),
            sa.Column('subtotal', sa.Numeric(14, 2), nullable=False),
            sa.Column('ticket_code', sa.String(40), nullable=True),
            sa.Column('is_used', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('used_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('validated_by', sa.Uuid(), nullable=True),
            _created_at(),
            sa.CheckConstraint('quantity > 0', name='ck_order_items_quantity_positive'),
        )
        op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])
        op.create_index('ix_order_items_concert_id', 'order_items', ['concert_id'])
        op.create_index('ix_order_items_ticket_code', 'order_items', ['ticket_code'], unique=True)

    if not table_exists('withdrawals'):
        op.create_table(
            'withdrawals',
            _id_column(),
            sa.Column('agent_id', sa.Uuid(), sa.ForeignKey('agents.id', ondelete='CASCADE'), nullable=False),
            sa.Column('amount', sa.Numeric(14, 2), nullable=False),
            sa.Column('bank_name', sa.String(100), nullable=False),
            sa.Column('bank_account_number', sa.String(50), nullable=False),
            sa.Column('bank_account_name', sa.String(200), nullable=False),
            sa.Column('notes', sa.Text(), nullable=True),
            sa.Column('status', sa.String(20), nullable=False, server_default='pending',
                      comment='pending, processing, completed, rejected'),
            sa.Column('admin_notes', sa.Text(), nullable=True),
            sa.Column('processed_by', sa.Uuid(), nullable=True),
            sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
            _created_at(),
            _updated_at(),
            sa.CheckConstraint('amount > 0', name='ck_withdrawals_amount_positive'),
        )
        op.create_index('ix_withdrawals_agent_id', 'withdrawals', ['agent_id'])
        op.create_index('ix_withdrawals_status', 'withdrawals', ['status'])
        op.create_index('ix_withdrawals_created_at', 'withdrawals', ['created_at'])
        op.create_index('ix_withdrawal_agent_status', 'withdrawals', ['agent_id', 'status'])

    if not table_exists('agent_payments'):
        op.create_table(
            'agent_payments',
            _id_column(),
            sa.Column('agent_id', sa.Uuid(), sa.ForeignKey('agents.id', ondelete='CASCADE'), nullable=False),
            sa.Column('order_id', sa.Uuid(), sa.ForeignKey('orders.id', ondelete='SET NULL'), nullable=True),
            sa.Column('gross_amount', sa.Numeric(14, 2), nullable=False),
            sa.Column('commission_amount', sa.Numeric(14, 2), nullable=False),
            sa.Column('net_amount', sa.Numeric(14, 2), nullable=False),
            sa.Column('status', sa.String(20), nullable=False, server_default='pending', comment='pending, paid'),
            sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
            _created_at(),
            sa.UniqueConstraint('agent_id', 'order_id', name='uq_agent_payments_agent_order'),
        )
        op.create_index('ix_agent_payments_agent_id', 'agent_payments', ['agent_id'])
        op.create_index('ix_agent_payments_order_id', 'agent_payments', ['order_id'])

    # Seed the single agent_settings row
    conn = op.get_bind()
    count = conn.execute(text("SELECT COUNT(*) FROM agent_settings")).scalar()
    if not count:
        op.execute(text(
            "INSERT INTO agent_settings (id, registration_fee, default_max_events, "
            "max_events_before_auto_approve, platform_commission_percent) "
            "VALUES (gen_random_uuid(), 500000, 5, 3, 10)"
        ))


def downgrade() -> None:
    """Drop ticketing tables."""
    for table_name in (
        'agent_payments',
        'withdrawals',
        'order_items',
        'orders',
        'ticket_types',
        'concerts',
        'agent_settings',
        'agent_registrations',
        'agents',
        'user_roles',
        'profiles',
    ):
        if table_exists(table_name):
            op.drop_table(table_name)
