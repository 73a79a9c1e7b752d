"""Database models - import all models here for Alembic discovery."""

from bridge_api.models.credit import CreditBalance
from bridge_api.models.transfer import StatusEvent, TransferKind, TransferRecord
from bridge_api.models.wallet import Wallet, WalletRole
from bridge_api.models.webhook import WebhookEvent

__all__ = [
    "TransferRecord",
    "TransferKind",
    "StatusEvent",
    "WebhookEvent",
    "Wallet",
    "WalletRole",
    "CreditBalance",
]
