"""Wallet registry models."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String

from bridge_api.db.base import Base


class WalletRole:
    ADMIN = "ADMIN"
    CUSTODIAL = "CUSTODIAL"
    GATEWAY_SIGNER = "GATEWAY_SIGNER"


class Wallet(Base):
    """Provider-custodied wallet known to this service."""

    __tablename__ = "wallets"

    id = Column(Integer, primary_key=True, index=True)
    provider_wallet_id = Column(String(255), nullable=False, unique=True, index=True)
    wallet_set_id = Column(String(255), nullable=True)
    label = Column(String(255), nullable=True, unique=True)
    address = Column(String(255), nullable=False, index=True)
    chain_id = Column(Integer, nullable=True)  # NULL for multichain wallets
    account_type = Column(String(8), nullable=False, default="SCA")  # SCA, EOA
    role = Column(String(32), nullable=False, index=True)
    owner_id = Column(String(255), nullable=True, index=True)
    status = Column(String(32), nullable=False, default="LIVE")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def usable_on(self, chain_id: int) -> bool:
        return self.chain_id is None or self.chain_id == int(chain_id)
