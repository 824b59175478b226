"""Initial bridge ledger schema.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Transfers table (uint256 values are stored as decimal text)
    op.create_table(
        'bridge_transfers',
        sa.Column('id', sa.LargeBinary(32), nullable=False),
        sa.Column('amount', sa.String(78), nullable=False),
        sa.Column('originator', sa.LargeBinary(20), nullable=False),
        sa.Column('recipient', sa.LargeBinary(32), nullable=False),
        sa.Column('hash_lock', sa.LargeBinary(32), nullable=False),
        sa.Column('time_lock', sa.String(78), nullable=False),
        sa.Column('state', sa.String(20), nullable=False),
        sa.Column('created_height', sa.String(78), nullable=False),
        sa.Column('finalized_height', sa.String(78), nullable=True),
        sa.Column('pre_image', sa.LargeBinary(32), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('finalized_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_bridge_transfers_originator', 'bridge_transfers', ['originator'])
    op.create_index(
        'ix_bridge_transfers_originator_state', 'bridge_transfers', ['originator', 'state']
    )

    # Per-originator balances
    op.create_table(
        'account_balances',
        sa.Column('account', sa.LargeBinary(20), nullable=False),
        sa.Column('amount', sa.String(78), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('account')
    )

    # Singleton registry row
    op.create_table(
        'bridge_state',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('initialized', sa.Boolean(), nullable=False),
        sa.Column('owner', sa.LargeBinary(20), nullable=True),
        sa.Column('counterparty', sa.LargeBinary(20), nullable=True),
        sa.Column('token_address', sa.LargeBinary(20), nullable=True),
        sa.Column('nonce', sa.BigInteger(), nullable=False),
        sa.Column('total_initiated', sa.String(78), nullable=False),
        sa.Column('total_refunded', sa.String(78), nullable=False),
        sa.Column('total_withdrawn', sa.String(78), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    # Notifications
    op.create_table(
        'bridge_events',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('event_type', sa.String(20), nullable=False),
        sa.Column('transfer_id', sa.LargeBinary(32), nullable=False),
        sa.Column('height', sa.String(78), nullable=False),
        sa.Column('payload_json', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_bridge_events_transfer_id', 'bridge_events', ['transfer_id'])

    # Wrapped native token
    op.create_table(
        'token_balances',
        sa.Column('token', sa.LargeBinary(20), nullable=False),
        sa.Column('account', sa.LargeBinary(20), nullable=False),
        sa.Column('amount', sa.String(78), nullable=False),
        sa.PrimaryKeyConstraint('token', 'account')
    )
    op.create_table(
        'token_allowances',
        sa.Column('token', sa.LargeBinary(20), nullable=False),
        sa.Column('owner', sa.LargeBinary(20), nullable=False),
        sa.Column('spender', sa.LargeBinary(20), nullable=False),
        sa.Column('amount', sa.String(78), nullable=False),
        sa.PrimaryKeyConstraint('token', 'owner', 'spender')
    )


def downgrade() -> None:
    op.drop_table('token_allowances')
    op.drop_table('token_balances')
    op.drop_index('ix_bridge_events_transfer_id', table_name='bridge_events')
    op.drop_table('bridge_events')
    op.drop_table('bridge_state')
    op.drop_table('account_balances')
    op.drop_index('ix_bridge_transfers_originator_state', table_name='bridge_transfers')
    op.drop_index('ix_bridge_transfers_originator', table_name='bridge_transfers')
    op.drop_table('bridge_transfers')
