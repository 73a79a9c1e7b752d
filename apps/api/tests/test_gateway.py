"""Tests for Gateway transfers, deposits and withdrawals."""

import json

import pytest

from bridge_api.chains import GATEWAY_MINTER_ADDRESS, GATEWAY_WALLET_ADDRESS, ChainId, address_to_bytes32
from bridge_api.exceptions import (
    AttestationTimeoutError,
    InsufficientGasError,
    TransportError,
    ValidationError,
    WalletNotFoundError,
)
from bridge_api.models import TransferKind, TransferRecord
from bridge_api.orchestrator.attestation import GatewayAttestationPoller
from bridge_api.orchestrator.gateway import GATEWAY_MAX_FEE, MAX_UINT256, GatewayTransferService, build_burn_intent
from bridge_api.orchestrator.preflight import GasPreflight

from conftest import EXTERNAL_ADDRESS, SIGNER_ADDRESS, USER_ADDRESS, gas_error


class FakeChainReader:
    def __init__(self, balance=10**18):
        self.balance = balance
        self.calls = []

    def native_balance(self, chain_id, address):
        self.calls.append((chain_id, address))
        if isinstance(self.balance, Exception):
            raise self.balance
        return self.balance


class FakeGatewayApi:
    def __init__(self, submit_response=None, transfer_responses=None):
        self.submit_response = submit_response or {
            "transferId": "gw-1",
            "attestation": "0xatt",
            "signature": "0xsig",
        }
        self.transfer_responses = transfer_responses or [{"status": "PENDING"}]
        self.submitted = []
        self.lookups = []

    def submit_burn_intent(self, burn_intent, signature):
        self.submitted.append((burn_intent, signature))
        return self.submit_response

    def get_transfer(self, transfer_id):
        self.lookups.append(transfer_id)
        if len(self.transfer_responses) > 1:
            return self.transfer_responses.pop(0)
        return self.transfer_responses[0]

    def get_balances(self, depositor, domains, token="USDC"):
        return {"token": token, "balances": [{"domain": domain, "balance": "1.0"} for domain in domains]}


@pytest.fixture
def chain_reader():
    return FakeChainReader()


@pytest.fixture
def gateway_api():
    return FakeGatewayApi()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def service(db, provider, gateway_api, chain_reader, user_wallets, sleeps):
    provider.wallet_addresses.update({"user-sca": USER_ADDRESS, "user-eoa": SIGNER_ADDRESS})
    poller = GatewayAttestationPoller(gateway_api, interval=3, max_polls=4, sleep=sleeps.append)
    return GatewayTransferService(db, provider, gateway_api, GasPreflight(provider, chain_reader), poller)


def gateway_rows(db):
    return db.query(TransferRecord).filter(TransferRecord.kind == TransferKind.GATEWAY_TRANSFER).all()


def test_build_burn_intent_pads_addresses():
    intent = build_burn_intent(
        source_chain=ChainId.BASE_SEPOLIA,
        destination_chain=ChainId.AVAX_FUJI,
        amount=5_000_000,
        depositor=USER_ADDRESS,
        recipient=EXTERNAL_ADDRESS,
        signer=SIGNER_ADDRESS,
        salt="0x" + "11" * 32,
    )

    assert intent["maxBlockHeight"] == str(MAX_UINT256)
    assert intent["maxFee"] == str(GATEWAY_MAX_FEE)
    spec = intent["spec"]
    assert spec["sourceDomain"] == 6
    assert spec["destinationDomain"] == 1
    assert spec["sourceContract"] == address_to_bytes32(GATEWAY_WALLET_ADDRESS)
    assert spec["destinationContract"] == address_to_bytes32(GATEWAY_MINTER_ADDRESS)
    assert spec["sourceDepositor"] == address_to_bytes32(USER_ADDRESS)
    assert spec["destinationRecipient"] == address_to_bytes32(EXTERNAL_ADDRESS)
    assert spec["sourceSigner"] == address_to_bytes32(SIGNER_ADDRESS)
    assert spec["value"] == "5000000"


class TestGatewayTransfer:
    """Burn intent, attestation and mint with a ledger row per request."""

    def test_transfer_to_own_wallet(self, service, provider, gateway_api, db):
        result = service.transfer("user-1", ChainId.BASE_SEPOLIA, ChainId.AVAX_FUJI, "5")

        assert result["attestation"] == "0xatt"
        assert result["sourceChain"] == "baseSepolia"
        assert result["destinationChain"] == "avalancheFuji"
        assert result["recipient"] == USER_ADDRESS
        assert result["amount"] == "5.000000"

        signed = provider.signatures[0]
        assert signed["wallet_id"] == "user-eoa"
        typed_data = json.loads(signed["data"])
        assert typed_data["primaryType"] == "BurnIntent"
        assert typed_data["domain"] == {"name": "GatewayWallet", "version": "1"}

        mint = provider.calls_to("gatewayMint(bytes,bytes)")[0]
        assert mint["wallet_id"] == "user-sca"
        assert mint["contract_address"] == GATEWAY_MINTER_ADDRESS
        assert mint["params"] == ["0xatt", "0xsig"]

        rows = gateway_rows(db)
        assert len(rows) == 1
        assert rows[0].status == "COMPLETE"
        assert rows[0].tx_hash == result["mintTxHash"]

    def test_external_recipient_minted_by_signer(self, service, provider, chain_reader):
        result = service.transfer(
            "user-1", ChainId.BASE_SEPOLIA, ChainId.ARC_TESTNET, "5", recipient=EXTERNAL_ADDRESS
        )

        assert result["recipient"] == EXTERNAL_ADDRESS
        assert provider.calls_to("gatewayMint(bytes,bytes)")[0]["wallet_id"] == "user-eoa"
        assert chain_reader.calls == [(ChainId.ARC_TESTNET, SIGNER_ADDRESS)]

    def test_no_gas_stops_before_signing(self, service, provider, chain_reader, gateway_api, db):
        chain_reader.balance = 0

        with pytest.raises(InsufficientGasError) as exc_info:
            service.transfer("user-1", ChainId.BASE_SEPOLIA, ChainId.AVAX_FUJI, "5")

        assert exc_info.value.wallet_id == "user-sca"
        assert exc_info.value.address == USER_ADDRESS
        assert exc_info.value.chain_id == int(ChainId.AVAX_FUJI)
        assert provider.signatures == []
        assert gateway_api.submitted == []
        assert gateway_rows(db) == []

    def test_preflight_read_failure_is_ignored(self, service, chain_reader, gateway_api):
        chain_reader.balance = TransportError("rpc down")

        service.transfer("user-1", ChainId.BASE_SEPOLIA, ChainId.AVAX_FUJI, "5")

        assert len(gateway_api.submitted) == 1

    def test_idempotency_key_replays_stored_result(self, service, provider, gateway_api, db):
        first = service.transfer("user-1", ChainId.BASE_SEPOLIA, ChainId.AVAX_FUJI, "5", idempotency_key="req-1")
        second = service.transfer("user-1", ChainId.BASE_SEPOLIA, ChainId.AVAX_FUJI, "5", idempotency_key="req-1")

        assert second["mintTxHash"] == first["mintTxHash"]
        assert second["status"] == "COMPLETE"
        assert len(gateway_api.submitted) == 1
        assert len(provider.signatures) == 1
        assert len(gateway_rows(db)) == 1

    def test_polls_for_attestation_when_not_returned(self, service, gateway_api, sleeps):
        gateway_api.submit_response = {"transferId": "gw-2"}
        gateway_api.transfer_responses = [
            {"status": "PENDING"},
            {"status": "ATTESTED", "attestation": "0xlate", "signature": "0xlatesig"},
        ]

        result = service.transfer("user-1", ChainId.BASE_SEPOLIA, ChainId.AVAX_FUJI, "5")

        assert result["attestation"] == "0xlate"
        assert gateway_api.lookups == ["gw-2", "gw-2"]
        assert sleeps == [3, 3]

    def test_attestation_wait_is_bounded(self, service, gateway_api, provider, sleeps, db):
        gateway_api.submit_response = {"transferId": "gw-3"}

        with pytest.raises(AttestationTimeoutError) as exc_info:
            service.transfer("user-1", ChainId.BASE_SEPOLIA, ChainId.AVAX_FUJI, "5")

        assert exc_info.value.attempts == 4
        assert len(sleeps) == 4
        assert provider.calls_to("gatewayMint(bytes,bytes)") == []
        rows = gateway_rows(db)
        assert rows[0].status == "FAILED"
        assert rows[0].metadata_json["gateway_transfer_id"] == "gw-3"

    def test_gas_error_on_mint_fails_row(self, service, provider, db):
        provider.failures["gatewayMint(bytes,bytes)"] = gas_error()

        with pytest.raises(InsufficientGasError):
            service.transfer("user-1", ChainId.BASE_SEPOLIA, ChainId.AVAX_FUJI, "5")

        assert gateway_rows(db)[0].status == "FAILED"

    def test_unsupported_chain_rejected(self, service):
        with pytest.raises(ValidationError):
            service.transfer("user-1", ChainId.ETH_SEPOLIA, ChainId.AVAX_FUJI, "5")

    def test_missing_signer_wallet(self, db, provider, gateway_api, chain_reader):
        service = GatewayTransferService(
            db, provider, gateway_api, GasPreflight(provider, chain_reader), GatewayAttestationPoller(gateway_api)
        )

        with pytest.raises(WalletNotFoundError):
            service.transfer("nobody", ChainId.BASE_SEPOLIA, ChainId.AVAX_FUJI, "5")


class TestGatewayBalance:
    def test_deposit_with_delegate(self, service, provider):
        result = service.deposit("user-1", ChainId.AVAX_FUJI, "2.5", delegate=SIGNER_ADDRESS)

        signatures = [call["signature"] for call in provider.executions]
        assert signatures == [
            "addDelegate(address,address)",
            "approve(address,uint256)",
            "deposit(address,uint256)",
        ]
        assert provider.executions[1]["params"] == [GATEWAY_WALLET_ADDRESS, 2_500_000]
        assert set(result["txHashes"]) == {"addDelegate", "approve", "deposit"}

    def test_withdraw(self, service, provider):
        result = service.withdraw("user-1", ChainId.ARC_TESTNET, "1")

        signatures = [call["signature"] for call in provider.executions]
        assert signatures == ["initiateWithdrawal(address,uint256)", "withdraw(address)"]
        assert result["depositor"] == USER_ADDRESS

    def test_balances_across_supported_domains(self, service):
        result = service.balances("user-1")

        assert result["depositor"] == USER_ADDRESS
        assert [entry["domain"] for entry in result["balances"]] == [1, 6, 26]
