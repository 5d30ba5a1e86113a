"""Add settlement_mode to orders table

Revision ID: add_order_settlement_mode
Revises: create_wallet_engine_20260105
Create Date: 2026-01-12 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = 'add_order_settlement_mode'
down_revision = 'create_wallet_engine_20260105'
branch_labels = None
depends_on = None


settlement_mode = sa.Enum('IMMEDIATE', 'ESCROW', name='settlement_mode', create_constraint=True)


def upgrade() -> None:
    bind = op.get_bind()
    if bind.dialect.name == 'postgresql':
        settlement_mode.create(bind, checkfirst=True)

    # Existing orders were all paid out on confirmation
    with op.batch_alter_table('orders') as batch_op:
        batch_op.add_column(
            sa.Column('settlement_mode', settlement_mode, nullable=False, server_default='IMMEDIATE')
        )


def downgrade() -> None:
    with op.batch_alter_table('orders') as batch_op:
        batch_op.drop_column('settlement_mode')

    bind = op.get_bind()
    if bind.dialect.name == 'postgresql':
        settlement_mode.drop(bind, checkfirst=True)
