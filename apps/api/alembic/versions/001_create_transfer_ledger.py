"""Create wallet registry, transfer ledger, webhook log and credit balances.

Revision ID: 001
Revises: 
Create Date: 2026-10-17
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'wallets',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('provider_wallet_id', sa.String(length=255), nullable=False),
        sa.Column('wallet_set_id', sa.String(length=255), nullable=True),
        sa.Column('label', sa.String(length=255), nullable=True),
        sa.Column('address', sa.String(length=255), nullable=False),
        sa.Column('chain_id', sa.Integer(), nullable=True),
        sa.Column('account_type', sa.String(length=8), nullable=False),
        sa.Column('role', sa.String(length=32), nullable=False),
        sa.Column('owner_id', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('label', name='uq_wallets_label'),
    )
    op.create_index('ix_wallets_provider_wallet_id', 'wallets', ['provider_wallet_id'], unique=True)
    op.create_index('ix_wallets_address', 'wallets', ['address'])
    op.create_index('ix_wallets_role', 'wallets', ['role'])
    op.create_index('ix_wallets_owner_id', 'wallets', ['owner_id'])

    op.create_table(
        'transactions',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('kind', sa.String(length=32), nullable=False),
        sa.Column('provider_transaction_id', sa.String(length=255), nullable=True),
        sa.Column('idempotency_key', sa.String(length=255), nullable=False),
        sa.Column('owner_id', sa.String(length=255), nullable=True),
        sa.Column('source_wallet_id', sa.String(length=255), sa.ForeignKey('wallets.provider_wallet_id'), nullable=True),
        sa.Column('source_account', sa.String(length=255), nullable=True),
        sa.Column('destination_address', sa.String(length=255), nullable=True),
        sa.Column('chain', sa.Integer(), nullable=False),
        sa.Column('destination_chain', sa.Integer(), nullable=True),
        sa.Column('tx_hash', sa.String(length=255), nullable=True),
        sa.Column('asset', sa.String(length=16), nullable=False, server_default='USDC'),
        sa.Column('amount_atomic', sa.BigInteger(), nullable=False),
        sa.Column('fee_atomic', sa.BigInteger(), nullable=True),
        sa.Column('credit_amount', sa.Numeric(20, 6), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('linked_step_id', sa.String(length=36), sa.ForeignKey('transactions.id'), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('error_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('chain', 'tx_hash', name='uq_transactions_chain_tx_hash'),
        sa.UniqueConstraint('linked_step_id', name='uq_transactions_linked_step_id'),
    )
    op.create_index('ix_transactions_kind', 'transactions', ['kind'])
    op.create_index('ix_transactions_provider_transaction_id', 'transactions', ['provider_transaction_id'], unique=True)
    op.create_index('ix_transactions_idempotency_key', 'transactions', ['idempotency_key'], unique=True)
    op.create_index('ix_transactions_owner_id', 'transactions', ['owner_id'])
    op.create_index('ix_transactions_chain', 'transactions', ['chain'])
    op.create_index('ix_transactions_tx_hash', 'transactions', ['tx_hash'])
    op.create_index('ix_transactions_status', 'transactions', ['status'])

    op.create_table(
        'transaction_events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('transaction_id', sa.String(length=36), sa.ForeignKey('transactions.id'), nullable=False),
        sa.Column('old_status', sa.String(length=16), nullable=True),
        sa.Column('new_status', sa.String(length=16), nullable=False),
        sa.Column('changed_by', sa.String(length=32), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_transaction_events_transaction_id', 'transaction_events', ['transaction_id'])
    op.create_index('ix_transaction_events_created_at', 'transaction_events', ['created_at'])

    op.create_table(
        'transaction_webhook_events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('dedupe_hash', sa.String(length=64), nullable=False),
        sa.Column('provider_event_id', sa.String(length=255), nullable=True),
        sa.Column('notification_type', sa.String(length=100), nullable=True),
        sa.Column('provider_transaction_id', sa.String(length=255), nullable=True),
        sa.Column('mapped_status', sa.String(length=16), nullable=True),
        sa.Column('signature_valid', sa.Boolean(), nullable=False),
        sa.Column('payload_json', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('provider_event_id', name='uq_webhook_events_provider_event_id'),
    )
    op.create_index('ix_transaction_webhook_events_dedupe_hash', 'transaction_webhook_events', ['dedupe_hash'], unique=True)
    op.create_index('ix_transaction_webhook_events_provider_transaction_id', 'transaction_webhook_events', ['provider_transaction_id'])
    op.create_index('ix_transaction_webhook_events_created_at', 'transaction_webhook_events', ['created_at'])

    op.create_table(
        'credit_balances',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('owner_id', sa.String(length=255), nullable=False),
        sa.Column('balance', sa.Numeric(20, 6), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_credit_balances_owner_id', 'credit_balances', ['owner_id'], unique=True)


def downgrade() -> None:
    op.drop_index('ix_credit_balances_owner_id', table_name='credit_balances')
    op.drop_table('credit_balances')
    op.drop_index('ix_transaction_webhook_events_created_at', table_name='transaction_webhook_events')
    op.drop_index('ix_transaction_webhook_events_provider_transaction_id', table_name='transaction_webhook_events')
    op.drop_index('ix_transaction_webhook_events_dedupe_hash', table_name='transaction_webhook_events')
    op.drop_table('transaction_webhook_events')
    op.drop_index('ix_transaction_events_created_at', table_name='transaction_events')
    op.drop_index('ix_transaction_events_transaction_id', table_name='transaction_events')
    op.drop_table('transaction_events')
    op.drop_index('ix_transactions_status', table_name='transactions')
    op.drop_index('ix_transactions_tx_hash', table_name='transactions')
    op.drop_index('ix_transactions_chain', table_name='transactions')
    op.drop_index('ix_transactions_owner_id', table_name='transactions')
    op.drop_index('ix_transactions_idempotency_key', table_name='transactions')
    op.drop_index('ix_transactions_provider_transaction_id', table_name='transactions')
    op.drop_index('ix_transactions_kind', table_name='transactions')
    op.drop_table('transactions')
    op.drop_index('ix_wallets_owner_id', table_name='wallets')
    op.drop_index('ix_wallets_role', table_name='wallets')
    op.drop_index('ix_wallets_address', table_name='wallets')
    op.drop_index('ix_wallets_provider_wallet_id', table_name='wallets')
    op.drop_table('wallets')
