"""create_wallet_engine_tables

Revision ID: create_wallet_engine_20260105
Revises:
Create Date: 2026-01-05 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = 'create_wallet_engine_20260105'
down_revision = None
branch_labels = None
depends_on = None


TRANSACTION_TYPES = (
    'DEPOSIT', 'WITHDRAWAL', 'PURCHASE', 'REFUND', 'AUCTION_HOLD',
    'AUCTION_RELEASE', 'SELLER_PAYOUT', 'PLATFORM_FEE', 'ESCROW_HOLD', 'ESCROW_RELEASE',
)
TRANSACTION_STATUSES = ('PENDING', 'COMPLETED', 'FAILED', 'CANCELLED')

# Native enum types created on PostgreSQL (dropped on downgrade)
NATIVE_ENUMS = (
    'order_status', 'order_kind', 'auction_state', 'product_status',
    'hold_status', 'hold_reason', 'wallet_transaction_type', 'wallet_kind', 'user_status',
)


def _timestamps():
    return [
        sa.Column('id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    ]


def _status_enum(name):
    return sa.Enum(*TRANSACTION_STATUSES, name=name, native_enum=False, create_constraint=True, length=20)


def upgrade() -> None:
    op.create_table(
        'users',
        *_timestamps(),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('status', sa.Enum('ACTIVE', 'SUSPENDED', name='user_status', create_constraint=True), nullable=False),
        sa.Column('first_name', sa.String(length=255), nullable=True),
        sa.Column('last_name', sa.String(length=255), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_users_id'), 'users', ['id'], unique=False)
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)

    op.create_table(
        'wallets',
        *_timestamps(),
        sa.Column('user_id', sa.Uuid(as_uuid=True), nullable=True),
        sa.Column('kind', sa.Enum('USER', 'PLATFORM', name='wallet_kind', create_constraint=True), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name='fk_wallets_user_id'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('kind', 'user_id', 'currency', name='uq_wallets_kind_user_currency'),
    )
    op.create_index(op.f('ix_wallets_id'), 'wallets', ['id'], unique=False)
    op.create_index(op.f('ix_wallets_user_id'), 'wallets', ['user_id'], unique=True)
    op.create_index(op.f('ix_wallets_kind'), 'wallets', ['kind'], unique=False)

    op.create_table(
        'holds',
        *_timestamps(),
        sa.Column('wallet_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('reason', sa.Enum('BID', 'ORDER_ESCROW', name='hold_reason', create_constraint=True), nullable=False),
        sa.Column('reference_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('status', sa.Enum('ACTIVE', 'RELEASED', 'FORFEITED', name='hold_status', create_constraint=True), nullable=False),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('hold_transaction_id', sa.Uuid(as_uuid=True), nullable=True),
        sa.Column('resolution_transaction_id', sa.Uuid(as_uuid=True), nullable=True),
        sa.ForeignKeyConstraint(['wallet_id'], ['wallets.id'], name='fk_holds_wallet_id'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('amount > 0', name='check_holds_amount_positive'),
    )
    op.create_index(op.f('ix_holds_id'), 'holds', ['id'], unique=False)
    op.create_index(op.f('ix_holds_wallet_id'), 'holds', ['wallet_id'], unique=False)
    op.create_index(op.f('ix_holds_reason'), 'holds', ['reason'], unique=False)
    op.create_index(op.f('ix_holds_reference_id'), 'holds', ['reference_id'], unique=False)
    op.create_index(op.f('ix_holds_status'), 'holds', ['status'], unique=False)
    op.create_index('ix_holds_wallet_status', 'holds', ['wallet_id', 'status'], unique=False)
    op.create_index('ix_holds_reference', 'holds', ['reason', 'reference_id'], unique=False)

    op.create_table(
        'wallet_transactions',
        *_timestamps(),
        sa.Column('wallet_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('type', sa.Enum(*TRANSACTION_TYPES, name='wallet_transaction_type', create_constraint=True), nullable=False),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('status', _status_enum('wallet_transaction_status'), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=False),
        sa.Column('reference', sa.String(length=255), nullable=True),
        sa.Column('hold_id', sa.Uuid(as_uuid=True), nullable=True),
        sa.Column('transaction_metadata', sa.JSON(), nullable=True),
        sa.ForeignKeyConstraint(['wallet_id'], ['wallets.id'], name='fk_wallet_transactions_wallet_id'),
        sa.ForeignKeyConstraint(['hold_id'], ['holds.id'], name='fk_wallet_transactions_hold_id'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('wallet_id', 'sequence', name='uq_wallet_transactions_wallet_sequence'),
        sa.CheckConstraint('amount <> 0', name='check_wallet_transactions_amount_nonzero'),
    )
    op.create_index(op.f('ix_wallet_transactions_id'), 'wallet_transactions', ['id'], unique=False)
    op.create_index(op.f('ix_wallet_transactions_wallet_id'), 'wallet_transactions', ['wallet_id'], unique=False)
    op.create_index(op.f('ix_wallet_transactions_type'), 'wallet_transactions', ['type'], unique=False)
    op.create_index(op.f('ix_wallet_transactions_status'), 'wallet_transactions', ['status'], unique=False)
    op.create_index(op.f('ix_wallet_transactions_reference'), 'wallet_transactions', ['reference'], unique=False)
    op.create_index(op.f('ix_wallet_transactions_hold_id'), 'wallet_transactions', ['hold_id'], unique=False)
    op.create_index('ix_wallet_transactions_wallet_type', 'wallet_transactions', ['wallet_id', 'type'], unique=False)

    op.create_table(
        'wallet_transaction_status_events',
        *_timestamps(),
        sa.Column('transaction_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('from_status', _status_enum('status_event_from_status'), nullable=False),
        sa.Column('to_status', _status_enum('status_event_to_status'), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['transaction_id'], ['wallet_transactions.id'], name='fk_status_events_transaction_id'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_wallet_transaction_status_events_id'), 'wallet_transaction_status_events', ['id'], unique=False)
    op.create_index(
        op.f('ix_wallet_transaction_status_events_transaction_id'),
        'wallet_transaction_status_events',
        ['transaction_id'],
        unique=True,
    )

    op.create_table(
        'products',
        *_timestamps(),
        sa.Column('owner_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('status', sa.Enum('ACTIVE', 'SOLD', 'EXPIRED', 'INACTIVE', name='product_status', create_constraint=True), nullable=False),
        sa.Column('price', sa.BigInteger(), nullable=True),
        sa.Column('is_auction', sa.Boolean(), nullable=False),
        sa.Column('minimum_bid', sa.BigInteger(), nullable=True),
        sa.Column('min_increment', sa.BigInteger(), nullable=True),
        sa.Column('current_bid', sa.BigInteger(), nullable=True),
        sa.Column('auction_end_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('auction_state', sa.Enum('NO_BIDS', 'HAS_BIDS', 'CLOSED', name='auction_state', create_constraint=True), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id'], name='fk_products_owner_id'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('price IS NULL OR price > 0', name='check_products_price_positive'),
        sa.CheckConstraint('minimum_bid IS NULL OR minimum_bid > 0', name='check_products_minimum_bid_positive'),
    )
    op.create_index(op.f('ix_products_id'), 'products', ['id'], unique=False)
    op.create_index(op.f('ix_products_owner_id'), 'products', ['owner_id'], unique=False)
    op.create_index(op.f('ix_products_status'), 'products', ['status'], unique=False)
    op.create_index(op.f('ix_products_is_auction'), 'products', ['is_auction'], unique=False)
    op.create_index(op.f('ix_products_auction_end_date'), 'products', ['auction_end_date'], unique=False)
    op.create_index('ix_products_auction_sweep', 'products', ['is_auction', 'status', 'auction_end_date'], unique=False)

    op.create_table(
        'bids',
        *_timestamps(),
        sa.Column('product_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('user_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('is_winning', sa.Boolean(), nullable=False),
        sa.Column('hold_id', sa.Uuid(as_uuid=True), nullable=True),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name='fk_bids_product_id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name='fk_bids_user_id'),
        sa.ForeignKeyConstraint(['hold_id'], ['holds.id'], name='fk_bids_hold_id'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('hold_id', name='uq_bids_hold_id'),
        sa.CheckConstraint('amount > 0', name='check_bids_amount_positive'),
    )
    op.create_index(op.f('ix_bids_id'), 'bids', ['id'], unique=False)
    op.create_index(op.f('ix_bids_product_id'), 'bids', ['product_id'], unique=False)
    op.create_index(op.f('ix_bids_user_id'), 'bids', ['user_id'], unique=False)
    op.create_index('ix_bids_product_amount', 'bids', ['product_id', 'amount'], unique=False)
    # At most one winning bid per product
    op.create_index(
        'uq_bids_one_winning_per_product',
        'bids',
        ['product_id'],
        unique=True,
        postgresql_where=sa.text('is_winning'),
        sqlite_where=sa.text('is_winning = 1'),
    )

    op.create_table(
        'orders',
        *_timestamps(),
        sa.Column('buyer_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('seller_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('product_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('kind', sa.Enum('DIRECT', 'AUCTION', name='order_kind', create_constraint=True), nullable=False),
        sa.Column('total_amount', sa.BigInteger(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column(
            'status',
            sa.Enum('PENDING', 'CONFIRMED', 'SHIPPED', 'DELIVERED', 'CANCELLED', 'REFUNDED', name='order_status', create_constraint=True),
            nullable=False,
        ),
        sa.Column('hold_id', sa.Uuid(as_uuid=True), nullable=True),
        sa.Column('winning_bid_id', sa.Uuid(as_uuid=True), nullable=True),
        sa.Column('platform_fee_amount', sa.BigInteger(), nullable=True),
        sa.Column('settled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_frozen', sa.Boolean(), nullable=False),
        sa.Column('frozen_reason', sa.Text(), nullable=True),
        sa.Column('incident_reference', sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(['buyer_id'], ['users.id'], name='fk_orders_buyer_id'),
        sa.ForeignKeyConstraint(['seller_id'], ['users.id'], name='fk_orders_seller_id'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name='fk_orders_product_id'),
        sa.ForeignKeyConstraint(['hold_id'], ['holds.id'], name='fk_orders_hold_id'),
        sa.ForeignKeyConstraint(['winning_bid_id'], ['bids.id'], name='fk_orders_winning_bid_id'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('winning_bid_id', name='uq_orders_winning_bid_id'),
        sa.CheckConstraint('total_amount > 0', name='check_orders_total_positive'),
    )
    op.create_index(op.f('ix_orders_id'), 'orders', ['id'], unique=False)
    op.create_index(op.f('ix_orders_buyer_id'), 'orders', ['buyer_id'], unique=False)
    op.create_index(op.f('ix_orders_seller_id'), 'orders', ['seller_id'], unique=False)
    op.create_index(op.f('ix_orders_product_id'), 'orders', ['product_id'], unique=False)
    op.create_index(op.f('ix_orders_status'), 'orders', ['status'], unique=False)
    op.create_index(op.f('ix_orders_is_frozen'), 'orders', ['is_frozen'], unique=False)
    op.create_index('ix_orders_product_status', 'orders', ['product_id', 'status'], unique=False)

    op.create_table(
        'idempotency_records',
        *_timestamps(),
        sa.Column('user_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('scope', sa.String(length=50), nullable=False),
        sa.Column('idempotency_key', sa.String(length=255), nullable=False),
        sa.Column('request_fingerprint', sa.String(length=64), nullable=False),
        sa.Column('response_status', sa.Integer(), nullable=False),
        sa.Column('response_payload', sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'scope', 'idempotency_key', name='uq_idempotency_records_user_scope_key'),
    )
    op.create_index(op.f('ix_idempotency_records_id'), 'idempotency_records', ['id'], unique=False)
    op.create_index(op.f('ix_idempotency_records_user_id'), 'idempotency_records', ['user_id'], unique=False)


def downgrade() -> None:
    # Reverse dependency order (indexes go with their tables)
    op.drop_table('idempotency_records')
    op.drop_table('orders')
    op.drop_index('uq_bids_one_winning_per_product', table_name='bids')
    op.drop_table('bids')
    op.drop_table('products')
    op.drop_table('wallet_transaction_status_events')
    op.drop_table('wallet_transactions')
    op.drop_table('holds')
    op.drop_table('wallets')
    op.drop_table('users')

    if op.get_bind().dialect.name == 'postgresql':
        for enum_name in NATIVE_ENUMS:
            op.execute(f'DROP TYPE IF EXISTS {enum_name}')
