"""Inbound provider notification log."""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, String

from bridge_api.db.base import Base


class WebhookEvent(Base):
    """Append-only record of every accepted provider notification."""

    __tablename__ = "transaction_webhook_events"

    id = Column(Integer, primary_key=True, index=True)
    dedupe_hash = Column(String(64), nullable=False, unique=True, index=True)  # sha256 of raw body
    provider_event_id = Column(String(255), nullable=True, unique=True)
    notification_type = Column(String(100), nullable=True)
    provider_transaction_id = Column(String(255), nullable=True, index=True)
    tx_hash = Column(String(255), nullable=True, index=True)  # lowercased
    mapped_status = Column(String(16), nullable=True)
    signature_valid = Column(Boolean, nullable=False, default=False)
    payload_json = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
