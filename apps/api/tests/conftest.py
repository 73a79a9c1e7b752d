"""Pytest configuration and fixtures."""

import hashlib
import os

# Settings are cached on first import; point every engine at SQLite first.
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("BURN_COMPLETION_MODE", "inline")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from bridge_api.chains import ChainId
from bridge_api.db.base import Base
from bridge_api.exceptions import UpstreamResponseError
from bridge_api.models import Wallet, WalletRole
from bridge_api.orchestrator.attestation import AttestationPoller
from bridge_api.orchestrator.service import TransferOrchestrator

# Use test database URL from environment or default to SQLite in-memory
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")

SOURCE_ADDRESS = "0x1111111111111111111111111111111111111111"
DESTINATION_ADDRESS = "0x2222222222222222222222222222222222222222"
USER_ADDRESS = "0x3333333333333333333333333333333333333333"
SIGNER_ADDRESS = "0x4444444444444444444444444444444444444444"
EXTERNAL_ADDRESS = "0x5555555555555555555555555555555555555555"


def fake_tx_hash(seed: str) -> str:
    return "0x" + hashlib.sha256(seed.encode()).hexdigest()


class FakeWalletProvider:
    """In-memory wallet provider recording every call.

    Contract executions with the same idempotency key return the same
    transaction, as the real provider does.
    """

    def __init__(self):
        self.executions = []
        self.signatures = []
        self.transactions = {}
        self.wallet_addresses = {}
        self.failures = {}
        self.created_wallet_sets = []
        self.created_wallets = []
        self.balances = {}
        self._by_key = {}
        self._counter = 0

    def create_contract_execution(
        self,
        wallet_id,
        contract_address,
        abi_function_signature,
        abi_parameters,
        *,
        fee_level=None,
        idempotency_key=None,
    ):
        if abi_function_signature in self.failures:
            raise self.failures[abi_function_signature]
        if idempotency_key and idempotency_key in self._by_key:
            return self._by_key[idempotency_key]
        self._counter += 1
        transaction = {"id": f"provider-tx-{self._counter}", "state": "INITIATED"}
        self.executions.append(
            {
                "wallet_id": wallet_id,
                "contract_address": contract_address,
                "signature": abi_function_signature,
                "params": list(abi_parameters),
                "fee_level": fee_level,
                "idempotency_key": idempotency_key,
                "id": transaction["id"],
            }
        )
        if idempotency_key:
            self._by_key[idempotency_key] = transaction
        return transaction

    def calls_to(self, abi_function_signature):
        return [call for call in self.executions if call["signature"] == abi_function_signature]

    def get_transaction(self, transaction_id):
        return self.transactions.get(
            transaction_id,
            {"id": transaction_id, "state": "CONFIRMED", "txHash": fake_tx_hash(transaction_id)},
        )

    def wait_for_transaction(self, transaction_id, **kwargs):
        return {"id": transaction_id, "state": "CONFIRMED", "txHash": fake_tx_hash(transaction_id)}

    def sign_typed_data(self, wallet_id, data, memo=None):
        self.signatures.append({"wallet_id": wallet_id, "data": data})
        return "0x" + "ab" * 65

    def get_wallet(self, wallet_id):
        return {"id": wallet_id, "address": self.wallet_addresses[wallet_id]}

    def create_wallet_set(self, name):
        self.created_wallet_sets.append(name)
        return {"id": f"wallet-set-{len(self.created_wallet_sets)}"}

    def create_wallets(self, wallet_set_id, blockchains, account_type="SCA", count=1):
        self.created_wallets.append((wallet_set_id, account_type, list(blockchains)))
        wallet_id = f"{wallet_set_id}-{account_type.lower()}-{len(self.created_wallets)}"
        return [
            {
                "id": wallet_id,
                "address": "0x" + hashlib.sha256(wallet_id.encode()).hexdigest()[:40],
                "blockchain": blockchains[0],
                "accountType": account_type,
                "state": "LIVE",
            }
        ]

    def get_wallet_balances(self, wallet_id):
        return self.balances.get(wallet_id, [])


class FakeIris:
    """Returns queued message lookups; the last entry repeats."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def get_messages(self, domain, tx_hash):
        self.calls.append((domain, tx_hash))
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


class RecordingDispatcher:
    def __init__(self):
        self.dispatched = []

    def dispatch(self, burn_id):
        self.dispatched.append(burn_id)


def complete_message(message="0xmessage", attestation="0xattestation"):
    return [{"status": "complete", "message": message, "attestation": attestation}]


def gas_error():
    return UpstreamResponseError(
        "POST contractExecution returned 400",
        status_code=400,
        body={"code": 155258, "message": "asset amount owned by the wallet is insufficient for the transaction"},
    )


@pytest.fixture(scope="function")
def engine():
    """Engine shared by every session of one test."""
    if TEST_DATABASE_URL.startswith("sqlite"):
        # SQLite in-memory for fast unit tests
        engine = create_engine(
            TEST_DATABASE_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        # PostgreSQL for integration tests
        engine = create_engine(TEST_DATABASE_URL)

    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db(session_factory):
    """Create a test database session."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def provider() -> FakeWalletProvider:
    return FakeWalletProvider()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def admin_wallets(db: Session):
    """Admin wallets on Base Sepolia (source) and Avalanche Fuji (destination)."""
    source = Wallet(
        provider_wallet_id="admin-base",
        label="Base admin",
        address=SOURCE_ADDRESS,
        chain_id=int(ChainId.BASE_SEPOLIA),
        account_type="SCA",
        role=WalletRole.ADMIN,
        status="LIVE",
    )
    destination = Wallet(
        provider_wallet_id="admin-fuji",
        label="Fuji admin",
        address=DESTINATION_ADDRESS,
        chain_id=int(ChainId.AVAX_FUJI),
        account_type="SCA",
        role=WalletRole.ADMIN,
        status="LIVE",
    )
    db.add_all([source, destination])
    db.commit()
    return source, destination


@pytest.fixture
def user_wallets(db: Session):
    """Custodial SCA and gateway signer EOA for ``user-1``."""
    custodial = Wallet(
        provider_wallet_id="user-sca",
        address=USER_ADDRESS,
        chain_id=None,
        account_type="SCA",
        role=WalletRole.CUSTODIAL,
        owner_id="user-1",
        status="LIVE",
    )
    signer = Wallet(
        provider_wallet_id="user-eoa",
        address=SIGNER_ADDRESS,
        chain_id=None,
        account_type="EOA",
        role=WalletRole.GATEWAY_SIGNER,
        owner_id="user-1",
        status="LIVE",
    )
    db.add_all([custodial, signer])
    db.commit()
    return custodial, signer


def make_orchestrator(db, provider, iris, dispatcher=None) -> TransferOrchestrator:
    poller = AttestationPoller(iris, interval=0, sleep=lambda seconds: None)
    return TransferOrchestrator(db, provider, poller, dispatcher=dispatcher)
