"""Celery tasks for burn completion."""

import logging
from typing import Optional

from celery import Task
from sqlalchemy.orm import Session

from bridge_worker.celery_app import celery_app
from bridge_worker.db import get_db
from bridge_worker.settings import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()


class DatabaseTask(Task):
    """Task with database session."""

    _db: Optional[Session] = None

    @property
    def db(self) -> Session:
        """Get database session."""
        if self._db is None:
            self._db = next(get_db())
        return self._db

    def after_return(self, *args, **kwargs):
        """Close database session after task."""
        if self._db:
            self._db.close()
            self._db = None


def build_orchestrator(db: Session):
    """Orchestrator that completes burns inline inside the worker."""
    from bridge_api.orchestrator.attestation import AttestationPoller
    from bridge_api.orchestrator.service import TransferOrchestrator
    from bridge_api.providers.iris import IrisClient
    from bridge_api.providers.wallets import WalletProviderClient
    from bridge_api.settings import get_settings as get_api_settings

    api_settings = get_api_settings()
    poller = AttestationPoller(IrisClient(api_settings), interval=api_settings.attestation_poll_interval_seconds)
    return TransferOrchestrator(db, WalletProviderClient(api_settings), poller, settings=api_settings)


@celery_app.task(
    base=DatabaseTask,
    bind=True,
    name="bridge_worker.tasks.complete_bridge_burn",
    max_retries=settings.burn_max_retries,
)
def complete_bridge_burn(self, burn_id: str):
    """Wait for a confirmed burn's attestation and relay its mint."""
    from bridge_api.exceptions import (
        BridgeError,
        InsufficientGasError,
        TransportError,
        UpstreamResponseError,
    )

    orchestrator = build_orchestrator(self.db)
    try:
        mint = orchestrator.complete_burn(burn_id)
    except InsufficientGasError as e:
        # Needs funding by an operator; resume-burns picks it up afterwards.
        logger.warning(f"Burn {burn_id} blocked on gas: wallet {e.wallet_id} ({e.address}) chain {e.chain_id}")
        return {"burn_id": burn_id, "status": "insufficient_gas", "wallet_id": e.wallet_id}
    except (TransportError, UpstreamResponseError) as e:
        if isinstance(e, UpstreamResponseError) and not e.is_retryable:
            logger.error(f"Burn {burn_id} rejected by provider: {e}")
            return {"burn_id": burn_id, "status": "error", "error": e.message}
        logger.warning(f"Transient failure completing burn {burn_id}, retrying: {e}")
        raise self.retry(exc=e, countdown=settings.burn_retry_countdown_seconds)
    except BridgeError as e:
        logger.error(f"Burn {burn_id} could not be completed: {e}")
        return {"burn_id": burn_id, "status": "error", "error": e.message}

    if mint is None:
        return {"burn_id": burn_id, "status": "skipped"}
    logger.info(f"Burn {burn_id} completed with mint {mint.id}")
    return {"burn_id": burn_id, "status": "minted", "mint_id": mint.id}
