"""Tests for the burn completion task."""

from unittest.mock import MagicMock, patch

import pytest

from bridge_api.exceptions import ChainExecutionError, InsufficientGasError, TransportError
from bridge_worker.settings import Settings as WorkerSettings
from bridge_worker.tasks import complete_bridge_burn


@pytest.fixture
def orchestrator():
    orchestrator = MagicMock()
    with patch("bridge_worker.tasks.build_orchestrator", return_value=orchestrator):
        yield orchestrator


def test_minted(orchestrator):
    orchestrator.complete_burn.return_value = MagicMock(id="mint-1")

    result = complete_bridge_burn("burn-1")

    assert result == {"burn_id": "burn-1", "status": "minted", "mint_id": "mint-1"}
    orchestrator.complete_burn.assert_called_once_with("burn-1")


def test_insufficient_gas_is_not_retried(orchestrator):
    orchestrator.complete_burn.side_effect = InsufficientGasError("admin-fuji", 43113, address="0x2")

    result = complete_bridge_burn("burn-1")

    assert result["status"] == "insufficient_gas"
    assert result["wallet_id"] == "admin-fuji"


def test_chain_failure_is_reported(orchestrator):
    orchestrator.complete_burn.side_effect = ChainExecutionError("reverted", transfer_id="burn-1")

    result = complete_bridge_burn("burn-1")

    assert result == {"burn_id": "burn-1", "status": "error", "error": "reverted"}


def test_transient_failure_is_retried(orchestrator):
    orchestrator.complete_burn.side_effect = TransportError("iris down")

    # Called directly, Celery's retry re-raises the original error.
    with pytest.raises(TransportError):
        complete_bridge_burn("burn-1")


def test_worker_settings_cover_broker_database_and_retries():
    settings = WorkerSettings(database_url="sqlite://", burn_max_retries=2)

    assert settings.database_url_computed == "sqlite://"
    assert settings.burn_max_retries == 2
    assert set(WorkerSettings.model_fields) == {
        "database_url",
        "postgres_user",
        "postgres_password",
        "postgres_db",
        "postgres_port",
        "redis_url",
        "burn_retry_countdown_seconds",
        "burn_max_retries",
    }
