"""Transfer ledger models."""

import uuid
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from bridge_api.chains import from_atomic
from bridge_api.db.base import Base


class TransferKind:
    """Step kinds stored in ``transactions.kind``."""

    USER_TOPUP = "USER_TOPUP"
    ADMIN_TRANSFER = "ADMIN_TRANSFER"
    BRIDGE_APPROVAL = "BRIDGE_APPROVAL"
    BRIDGE_BURN = "BRIDGE_BURN"
    BRIDGE_MINT = "BRIDGE_MINT"
    GATEWAY_TRANSFER = "GATEWAY_TRANSFER"

    SIMPLE = (USER_TOPUP, ADMIN_TRANSFER)
    BRIDGE = (BRIDGE_APPROVAL, BRIDGE_BURN, BRIDGE_MINT)
    ALL = SIMPLE + BRIDGE + (GATEWAY_TRANSFER,)


class TransferRecord(Base):
    """One row per on-chain step; bridged transfers chain several rows."""

    __tablename__ = "transactions"
    __table_args__ = (UniqueConstraint("chain", "tx_hash", name="uq_transactions_chain_tx_hash"),)

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    kind = Column(String(32), nullable=False, index=True)
    provider_transaction_id = Column(String(255), nullable=True, unique=True, index=True)
    idempotency_key = Column(String(255), nullable=False, unique=True, index=True)
    owner_id = Column(String(255), nullable=True, index=True)
    source_wallet_id = Column(String(255), ForeignKey("wallets.provider_wallet_id"), nullable=True)
    source_account = Column(String(255), nullable=True)
    destination_address = Column(String(255), nullable=True)
    chain = Column(Integer, nullable=False, index=True)
    destination_chain = Column(Integer, nullable=True)
    tx_hash = Column(String(255), nullable=True, index=True)
    asset = Column(String(16), default="USDC", nullable=False)
    amount_atomic = Column(BigInteger, nullable=False)
    fee_atomic = Column(BigInteger, nullable=True)
    credit_amount = Column(Numeric(20, 6), nullable=True)
    status = Column(String(16), nullable=False, index=True)
    linked_step_id = Column(String(36), ForeignKey("transactions.id"), nullable=True, unique=True)
    metadata_json = Column("metadata", JSON, nullable=True)
    error_reason = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    events = relationship(
        "StatusEvent",
        back_populates="transfer",
        order_by="StatusEvent.id",
    )

    @property
    def amount(self):
        """Human decimal amount (6 decimals)."""
        return from_atomic(self.amount_atomic)


class StatusEvent(Base):
    """Append-only status change log."""

    __tablename__ = "transaction_events"

    id = Column(Integer, primary_key=True, index=True)
    transaction_id = Column(String(36), ForeignKey("transactions.id"), nullable=False, index=True)
    old_status = Column(String(16), nullable=True)  # NULL for the initial transition
    new_status = Column(String(16), nullable=False)
    changed_by = Column(String(32), nullable=False)  # webhook, orchestrator, client
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    # Relationships
    transfer = relationship("TransferRecord", back_populates="events")
