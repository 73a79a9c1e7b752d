"""FastAPI dependency providers for services and external clients."""

from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from bridge_api.db.session import get_db
from bridge_api.orchestrator.attestation import AttestationPoller, GatewayAttestationPoller
from bridge_api.orchestrator.dispatch import CeleryBurnDispatcher
from bridge_api.orchestrator.gateway import GatewayTransferService
from bridge_api.orchestrator.preflight import GasPreflight
from bridge_api.orchestrator.service import TransferOrchestrator
from bridge_api.providers.chain import ChainReader
from bridge_api.providers.gateway import GatewayClient
from bridge_api.providers.iris import IrisClient
from bridge_api.providers.wallets import WalletProviderClient
from bridge_api.settings import get_settings
from bridge_api.webhooks.service import WebhookIngestService
from bridge_api.webhooks.verifier import SignatureVerifier


@lru_cache()
def get_wallet_provider() -> WalletProviderClient:
    return WalletProviderClient()


@lru_cache()
def get_chain_reader() -> ChainReader:
    return ChainReader()


@lru_cache()
def get_gateway_client() -> GatewayClient:
    return GatewayClient()


@lru_cache()
def get_attestation_poller() -> AttestationPoller:
    return AttestationPoller(IrisClient(), interval=get_settings().attestation_poll_interval_seconds)


@lru_cache()
def get_signature_verifier() -> SignatureVerifier:
    """Verifier with a process-wide public key cache."""
    provider = get_wallet_provider()
    return SignatureVerifier(
        provider.get_notification_public_key,
        ttl_seconds=get_settings().notifications_public_key_ttl_seconds,
    )


def get_burn_dispatcher():
    """Celery dispatcher in worker mode; ``None`` lets the orchestrator run inline."""
    if get_settings().burn_completion_mode == "worker":
        return CeleryBurnDispatcher()
    return None


def get_orchestrator(
    db: Session = Depends(get_db),
    provider: WalletProviderClient = Depends(get_wallet_provider),
    poller: AttestationPoller = Depends(get_attestation_poller),
    dispatcher=Depends(get_burn_dispatcher),
) -> TransferOrchestrator:
    return TransferOrchestrator(db, provider, poller, dispatcher=dispatcher)


def get_gateway_service(
    db: Session = Depends(get_db),
    provider: WalletProviderClient = Depends(get_wallet_provider),
    gateway: GatewayClient = Depends(get_gateway_client),
    chain_reader: ChainReader = Depends(get_chain_reader),
) -> GatewayTransferService:
    settings = get_settings()
    return GatewayTransferService(
        db,
        provider,
        gateway,
        GasPreflight(provider, chain_reader),
        GatewayAttestationPoller(
            gateway,
            interval=settings.gateway_poll_interval_seconds,
            max_polls=settings.gateway_max_polls,
        ),
    )


def get_webhook_ingest_service(
    db: Session = Depends(get_db),
    verifier: SignatureVerifier = Depends(get_signature_verifier),
    orchestrator: TransferOrchestrator = Depends(get_orchestrator),
) -> WebhookIngestService:
    return WebhookIngestService(db, verifier, orchestrator)


async def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """Caller identity, set by the upstream authentication layer."""
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return x_user_id
