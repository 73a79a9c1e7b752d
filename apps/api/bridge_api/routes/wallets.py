"""User wallet provisioning routes."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from bridge_api.chains import display_name
from bridge_api.db.session import get_db
from bridge_api.dependencies import get_current_user_id, get_wallet_provider
from bridge_api.models import Wallet
from bridge_api.providers.wallets import WalletProviderClient
from bridge_api.registry import ensure_custodial_wallet

router = APIRouter(prefix="/v1", tags=["wallets"])


class WalletResponse(BaseModel):
    """Registered wallet."""

    provider_wallet_id: str
    label: Optional[str]
    address: str
    chain_id: Optional[int]
    network: Optional[str] = None
    account_type: str
    role: str
    owner_id: Optional[str]
    status: str
    created_at: datetime

    class Config:
        from_attributes = True


class CreateWalletRequest(BaseModel):
    blockchain: Optional[str] = None


def serialize_wallet(wallet: Wallet) -> WalletResponse:
    response = WalletResponse.model_validate(wallet)
    if wallet.chain_id is not None:
        response.network = display_name(wallet.chain_id)
    return response


def provisioned(wallet: Wallet, created: bool, noun: str) -> JSONResponse:
    body = {
        "success": True,
        "message": f"{noun} created successfully" if created else f"{noun} already exists for this user",
        "wallet": serialize_wallet(wallet).model_dump(),
    }
    return JSONResponse(content=jsonable_encoder(body), status_code=201 if created else 200)


@router.post("/wallets")
def create_custodial_wallet(
    payload: Optional[CreateWalletRequest] = None,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    provider: WalletProviderClient = Depends(get_wallet_provider),
):
    """Create the caller's custodial wallet; repeated calls return the stored one."""
    blockchain = payload.blockchain if payload else None
    wallet, created = ensure_custodial_wallet(db, provider, user_id, blockchain)
    return provisioned(wallet, created, "Wallet")
