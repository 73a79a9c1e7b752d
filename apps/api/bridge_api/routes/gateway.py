"""Gateway balance and signer routes."""

from typing import Optional

from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from bridge_api.chains import from_client_key
from bridge_api.db.session import get_db
from bridge_api.dependencies import get_current_user_id, get_gateway_service, get_wallet_provider
from bridge_api.orchestrator.gateway import GatewayTransferService
from bridge_api.providers.wallets import WalletProviderClient
from bridge_api.registry import ensure_gateway_signer
from bridge_api.routes.wallets import provisioned

router = APIRouter(prefix="/v1/gateway", tags=["gateway"])


class GatewayTransferRequest(BaseModel):
    """Transfer out of the Gateway balance."""

    model_config = ConfigDict(populate_by_name=True)

    source_chain: str = Field(alias="sourceChain")
    destination_chain: str = Field(alias="destinationChain")
    amount: str
    recipient_address: Optional[str] = Field(default=None, alias="recipientAddress")


class GatewayDepositRequest(BaseModel):
    chain: str
    amount: str
    delegate: Optional[str] = None


class GatewayWithdrawRequest(BaseModel):
    chain: str
    amount: str


@router.post("/transfer")
def gateway_transfer(
    transfer: GatewayTransferRequest,
    user_id: str = Depends(get_current_user_id),
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    service: GatewayTransferService = Depends(get_gateway_service),
):
    """Burn from the Gateway balance and mint on the destination chain."""
    result = service.transfer(
        owner_id=user_id,
        source_chain=from_client_key(transfer.source_chain),
        destination_chain=from_client_key(transfer.destination_chain),
        amount=transfer.amount,
        recipient=transfer.recipient_address,
        idempotency_key=idempotency_key,
    )
    return {"success": True, **result}


@router.post("/deposit")
def gateway_deposit(
    deposit: GatewayDepositRequest,
    user_id: str = Depends(get_current_user_id),
    service: GatewayTransferService = Depends(get_gateway_service),
):
    """Deposit USDC into the Gateway wallet."""
    result = service.deposit(user_id, from_client_key(deposit.chain), deposit.amount, deposit.delegate)
    return {"success": True, **result}


@router.post("/withdraw")
def gateway_withdraw(
    withdrawal: GatewayWithdrawRequest,
    user_id: str = Depends(get_current_user_id),
    service: GatewayTransferService = Depends(get_gateway_service),
):
    """Withdraw USDC from the Gateway wallet on the same chain."""
    result = service.withdraw(user_id, from_client_key(withdrawal.chain), withdrawal.amount)
    return {"success": True, **result}


@router.get("/balances")
def gateway_balances(
    user_id: str = Depends(get_current_user_id),
    service: GatewayTransferService = Depends(get_gateway_service),
):
    """Gateway balances of the caller's depositor across supported domains."""
    return service.balances(user_id)


@router.post("/eoa-wallets")
def init_gateway_signer(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    provider: WalletProviderClient = Depends(get_wallet_provider),
):
    """Create the caller's multichain EOA signer for burn intents."""
    wallet, created = ensure_gateway_signer(db, provider, user_id)
    return provisioned(wallet, created, "Gateway EOA wallet")
