"""Store the on-chain hash of each logged provider notification.

Revision ID: 002
Revises: 001
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '002'
down_revision = '001'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column('transaction_webhook_events', sa.Column('tx_hash', sa.String(length=255), nullable=True))
    op.create_index('ix_transaction_webhook_events_tx_hash', 'transaction_webhook_events', ['tx_hash'])


def downgrade() -> None:
    op.drop_index('ix_transaction_webhook_events_tx_hash', table_name='transaction_webhook_events')
    op.drop_column('transaction_webhook_events', 'tx_hash')
