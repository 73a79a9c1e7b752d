"""Top-up recording and ledger query routes."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from bridge_api.chains import display_name, explorer_url
from bridge_api.db.session import get_db
from bridge_api.dependencies import get_current_user_id, get_orchestrator
from bridge_api.ledger.service import LedgerStore
from bridge_api.models import TransferRecord
from bridge_api.orchestrator.service import TransferOrchestrator

router = APIRouter(prefix="/v1", tags=["transactions"])


class TopUpRequest(BaseModel):
    """Top-up already broadcast from the user's wallet."""

    model_config = ConfigDict(populate_by_name=True)

    credits: Decimal = Field(gt=0)
    usdc_amount: Decimal = Field(alias="usdcAmount", gt=0)
    tx_hash: str = Field(alias="txHash")
    chain_id: int = Field(alias="chainId")
    wallet_address: str = Field(alias="walletAddress")
    destination_address: Optional[str] = Field(default=None, alias="destinationAddress")


class StatusEventResponse(BaseModel):
    """Status change entry."""

    old_status: Optional[str]
    new_status: str
    changed_by: str
    created_at: datetime

    class Config:
        from_attributes = True


class TransferResponse(BaseModel):
    """Transfer record with its timeline."""

    id: str
    kind: str
    status: str
    chain: int
    network: str
    destination_chain: Optional[int] = None
    amount: Decimal
    asset: str
    credit_amount: Optional[Decimal] = None
    tx_hash: Optional[str] = None
    explorer_url: Optional[str] = None
    provider_transaction_id: Optional[str] = None
    linked_step_id: Optional[str] = None
    source_account: Optional[str] = None
    destination_address: Optional[str] = None
    error_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    history: list[StatusEventResponse] = []


def serialize_transfer(record: TransferRecord, ledger: LedgerStore) -> TransferResponse:
    return TransferResponse(
        id=record.id,
        kind=record.kind,
        status=record.status,
        chain=record.chain,
        network=display_name(record.chain),
        destination_chain=record.destination_chain,
        amount=record.amount,
        asset=record.asset,
        credit_amount=record.credit_amount,
        tx_hash=record.tx_hash,
        explorer_url=explorer_url(record.chain, tx_hash=record.tx_hash) if record.tx_hash else None,
        provider_transaction_id=record.provider_transaction_id,
        linked_step_id=record.linked_step_id,
        source_account=record.source_account,
        destination_address=record.destination_address,
        error_reason=record.error_reason,
        created_at=record.created_at,
        updated_at=record.updated_at,
        history=[StatusEventResponse.model_validate(event) for event in ledger.history(record.id)],
    )


@router.post("/transactions", status_code=status.HTTP_201_CREATED)
def record_topup(
    topup: TopUpRequest,
    user_id: str = Depends(get_current_user_id),
    orchestrator: TransferOrchestrator = Depends(get_orchestrator),
):
    """Record a credit top-up; replays of the same chain and hash return the original."""
    record, created = orchestrator.record_topup(
        owner_id=user_id,
        chain_id=topup.chain_id,
        tx_hash=topup.tx_hash,
        amount=topup.usdc_amount,
        credits=topup.credits,
        wallet_address=topup.wallet_address,
        destination_address=topup.destination_address,
    )
    body = {
        "ok": True,
        "transactionId": record.id,
        "message": "Transaction recorded successfully" if created else "Transaction already exists",
        "transaction": serialize_transfer(record, orchestrator.ledger).model_dump(),
    }
    return JSONResponse(
        content=jsonable_encoder(body),
        status_code=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
    )


@router.get("/transactions", response_model=list[TransferResponse])
def list_transactions(
    owner_id: Optional[str] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """List the caller's transfers, newest first."""
    if owner_id and owner_id != user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    ledger = LedgerStore(db)
    return [serialize_transfer(record, ledger) for record in ledger.list_for_owner(user_id, limit)]


@router.get("/transactions/{transfer_id}", response_model=TransferResponse)
def get_transaction(
    transfer_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Fetch one transfer and its status history."""
    ledger = LedgerStore(db)
    record = ledger.get(transfer_id)
    if record is None or (record.owner_id and record.owner_id != user_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Transaction not found")
    return serialize_transfer(record, ledger)
