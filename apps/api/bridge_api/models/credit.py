"""Off-chain credit balances."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Column, DateTime, Integer, Numeric, String

from bridge_api.db.base import Base


class CreditBalance(Base):
    """Per-owner credit balance, incremented when a top-up succeeds."""

    __tablename__ = "credit_balances"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(String(255), nullable=False, unique=True, index=True)
    balance = Column(Numeric(20, 6), nullable=False, default=Decimal("0"))
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
