"""Admin routes for platform wallets and transfers."""

from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from bridge_api.auth.admin import require_admin
from bridge_api.db.session import get_db
from bridge_api.dependencies import get_orchestrator, get_wallet_provider
from bridge_api.orchestrator.service import TransferOrchestrator
from bridge_api.providers.wallets import WalletProviderClient
from bridge_api.registry import WalletRegistry
from bridge_api.routes.transfers import TransferResponse, serialize_transfer
from bridge_api.routes.wallets import WalletResponse, serialize_wallet

router = APIRouter(prefix="/v1/admin", tags=["admin"], dependencies=[Depends(require_admin)])


class AdminTransferRequest(BaseModel):
    """Same-chain USDC transfer from an admin wallet."""

    model_config = ConfigDict(populate_by_name=True)

    wallet_id: str = Field(alias="walletId")
    destination_address: str = Field(alias="destinationAddress")
    amount: str


class BridgeTransferRequest(BaseModel):
    """Cross-chain transfer between two admin wallets."""

    model_config = ConfigDict(populate_by_name=True)

    source_wallet_id: str = Field(alias="sourceWalletId")
    destination_wallet_id: str = Field(alias="destinationWalletId")
    amount: str


@router.get("/wallets", response_model=list[WalletResponse])
def list_wallets(role: Optional[str] = None, db: Session = Depends(get_db)):
    """List registered wallets."""
    return [serialize_wallet(wallet) for wallet in WalletRegistry(db).list_wallets(role)]


@router.get("/wallets/{wallet_id}/balances")
def wallet_balances(
    wallet_id: str,
    db: Session = Depends(get_db),
    provider: WalletProviderClient = Depends(get_wallet_provider),
):
    """Token balances of a registered wallet, as reported by the provider."""
    wallet = WalletRegistry(db).get(wallet_id)
    return {
        "walletId": wallet.provider_wallet_id,
        "address": wallet.address,
        "balances": provider.get_wallet_balances(wallet.provider_wallet_id),
    }


@router.post("/transfers", response_model=TransferResponse, status_code=status.HTTP_201_CREATED)
def create_admin_transfer(
    transfer: AdminTransferRequest,
    orchestrator: TransferOrchestrator = Depends(get_orchestrator),
):
    """Send USDC from an admin wallet."""
    record = orchestrator.start_admin_transfer(
        transfer.wallet_id, transfer.destination_address, transfer.amount
    )
    return serialize_transfer(record, orchestrator.ledger)


@router.post("/bridge-transfers", response_model=TransferResponse, status_code=status.HTTP_201_CREATED)
def create_bridge_transfer(
    transfer: BridgeTransferRequest,
    orchestrator: TransferOrchestrator = Depends(get_orchestrator),
):
    """Start an approve, burn and mint bridge transfer between admin wallets."""
    record = orchestrator.start_bridge_transfer(
        transfer.source_wallet_id, transfer.destination_wallet_id, transfer.amount
    )
    return serialize_transfer(record, orchestrator.ledger)
