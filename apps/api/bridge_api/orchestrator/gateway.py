"""Client-initiated transfers out of the Gateway balance."""

import json
import logging
import secrets
import uuid
from typing import Optional

from sqlalchemy.orm import Session

from bridge_api.chains import (
    CHAINS,
    GATEWAY_MINTER_ADDRESS,
    GATEWAY_WALLET_ADDRESS,
    ZERO_ADDRESS,
    address_to_bytes32,
    from_atomic,
    get_chain,
    to_atomic,
    to_client_key,
)
from bridge_api.exceptions import (
    BridgeError,
    InsufficientGasError,
    TransportError,
    UpstreamResponseError,
    ValidationError,
)
from bridge_api.ledger.service import LedgerStore
from bridge_api.ledger.status import TransferStatus
from bridge_api.models import TransferKind, TransferRecord
from bridge_api.orchestrator.service import execute_contract_call, validate_address
from bridge_api.orchestrator.signers import SignerResolver
from bridge_api.registry import WalletRegistry
from bridge_api.settings import Settings, get_settings
from bridge_api.utils.metrics import insufficient_gas_failures

logger = logging.getLogger(__name__)

MAX_UINT256 = 2**256 - 1
# Gateway requires a fee allowance of at least 2.000005 USDC.
GATEWAY_MAX_FEE = 2_010_000

EIP712_DOMAIN = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
]

TRANSFER_SPEC = [
    {"name": "version", "type": "uint32"},
    {"name": "sourceDomain", "type": "uint32"},
    {"name": "destinationDomain", "type": "uint32"},
    {"name": "sourceContract", "type": "bytes32"},
    {"name": "destinationContract", "type": "bytes32"},
    {"name": "sourceToken", "type": "bytes32"},
    {"name": "destinationToken", "type": "bytes32"},
    {"name": "sourceDepositor", "type": "bytes32"},
    {"name": "destinationRecipient", "type": "bytes32"},
    {"name": "sourceSigner", "type": "bytes32"},
    {"name": "destinationCaller", "type": "bytes32"},
    {"name": "value", "type": "uint256"},
    {"name": "salt", "type": "bytes32"},
    {"name": "hookData", "type": "bytes"},
]

BURN_INTENT = [
    {"name": "maxBlockHeight", "type": "uint256"},
    {"name": "maxFee", "type": "uint256"},
    {"name": "spec", "type": "TransferSpec"},
]


def build_burn_intent(
    *,
    source_chain: int,
    destination_chain: int,
    amount: int,
    depositor: str,
    recipient: str,
    signer: str,
    salt: Optional[str] = None,
) -> dict:
    """Burn intent message with every address padded to bytes32.

    Large integers are rendered as decimal strings, which both the signing
    endpoint and the Gateway API accept.
    """
    source = get_chain(source_chain)
    destination = get_chain(destination_chain)
    return {
        "maxBlockHeight": str(MAX_UINT256),
        "maxFee": str(GATEWAY_MAX_FEE),
        "spec": {
            "version": 1,
            "sourceDomain": source.domain,
            "destinationDomain": destination.domain,
            "sourceContract": address_to_bytes32(GATEWAY_WALLET_ADDRESS),
            "destinationContract": address_to_bytes32(GATEWAY_MINTER_ADDRESS),
            "sourceToken": address_to_bytes32(source.usdc_address),
            "destinationToken": address_to_bytes32(destination.usdc_address),
            "sourceDepositor": address_to_bytes32(depositor),
            "destinationRecipient": address_to_bytes32(recipient),
            "sourceSigner": address_to_bytes32(signer),
            "destinationCaller": address_to_bytes32(ZERO_ADDRESS),
            "value": str(amount),
            "salt": salt or "0x" + secrets.token_hex(32),
            "hookData": "0x",
        },
    }


def burn_intent_typed_data(burn_intent: dict) -> dict:
    return {
        "types": {
            "EIP712Domain": EIP712_DOMAIN,
            "TransferSpec": TRANSFER_SPEC,
            "BurnIntent": BURN_INTENT,
        },
        "domain": {"name": "GatewayWallet", "version": "1"},
        "primaryType": "BurnIntent",
        "message": burn_intent,
    }


class GatewayTransferService:
    """Burn-intent transfers plus deposits and withdrawals on the Gateway."""

    def __init__(
        self,
        db: Session,
        provider,
        gateway,
        preflight,
        attestation_poller,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.ledger = LedgerStore(db)
        self.registry = WalletRegistry(db)
        self.signers = SignerResolver(self.registry)
        self.provider = provider
        self.gateway = gateway
        self.preflight = preflight
        self.attestation_poller = attestation_poller
        self.settings = settings or get_settings()

    def _gateway_chain(self, chain_id: int):
        config = get_chain(chain_id)
        if not config.gateway_supported:
            supported = ", ".join(c.client_key for c in CHAINS.values() if c.gateway_supported)
            raise ValidationError(
                f"Invalid chain. Must be one of: {supported}", field="chain", value=config.client_key
            )
        return config

    def transfer(
        self,
        owner_id: str,
        source_chain: int,
        destination_chain: int,
        amount,
        recipient: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> dict:
        """Move ``amount`` of the owner's Gateway balance to ``destination_chain``."""
        source = self._gateway_chain(source_chain)
        destination = self._gateway_chain(destination_chain)
        atomic = to_atomic(amount)
        if recipient:
            validate_address(recipient, "recipientAddress")

        ledger_key = f"gateway:{owner_id}:{idempotency_key}" if idempotency_key else f"gateway:{uuid.uuid4()}"
        if idempotency_key:
            existing = self.ledger.find_by_idempotency_key(ledger_key)
            if existing is not None:
                logger.info(f"Replaying Gateway transfer {existing.id} for key {idempotency_key}")
                return self.result_for(existing)

        signers = self.signers.resolve(owner_id, source.chain_id, destination.chain_id, recipient)
        self._preflight(signers.minter, destination.chain_id)

        record, created = self.ledger.create_transfer(
            changed_by="client",
            kind=TransferKind.GATEWAY_TRANSFER,
            idempotency_key=ledger_key,
            owner_id=owner_id,
            source_wallet_id=signers.depositor.provider_wallet_id,
            source_account=signers.depositor.address,
            destination_address=signers.recipient,
            chain=int(source.chain_id),
            destination_chain=int(destination.chain_id),
            amount_atomic=atomic,
            fee_atomic=GATEWAY_MAX_FEE,
            metadata_json={
                "burn_signer": signers.burn_signer.address,
                "minter_wallet_id": signers.minter.provider_wallet_id,
                "external_recipient": signers.external_recipient,
            },
        )
        if not created:
            return self.result_for(record)

        try:
            return self._execute_transfer(record, signers, source, destination, atomic)
        except BridgeError as exc:
            reason = getattr(exc, "message", None) or str(exc)
            self.ledger.transition(
                record, TransferStatus.FAILED, changed_by="orchestrator", error_reason=reason
            )
            logger.error(f"Gateway transfer {record.id} failed: {reason}")
            raise

    def _preflight(self, minter, chain_id: int):
        try:
            check = self.preflight.check_gas(minter.provider_wallet_id, chain_id)
        except (TransportError, UpstreamResponseError) as e:
            logger.error(f"Gas pre-flight check failed: {e}")
            return
        if not check.has_gas:
            insufficient_gas_failures.labels(chain=str(int(chain_id))).inc()
            raise InsufficientGasError(
                minter.provider_wallet_id,
                int(chain_id),
                address=check.address,
                details={"balance": str(check.balance)},
            )
        logger.info(f"Gas check passed for {check.address} on chain {chain_id} (balance: {check.balance})")

    def _execute_transfer(self, record: TransferRecord, signers, source, destination, atomic: int) -> dict:
        burn_intent = build_burn_intent(
            source_chain=source.chain_id,
            destination_chain=destination.chain_id,
            amount=atomic,
            depositor=signers.depositor.address,
            recipient=signers.recipient,
            signer=signers.burn_signer.address,
        )
        logger.info(
            f"Transferring {from_atomic(atomic)} USDC from Gateway "
            f"(depositor={signers.depositor.address}, signer={signers.burn_signer.address})"
        )
        signature = self.provider.sign_typed_data(
            signers.burn_signer.provider_wallet_id,
            json.dumps(burn_intent_typed_data(burn_intent)),
        )

        submitted = self.gateway.submit_burn_intent(burn_intent, signature)
        transfer_id = submitted.get("transferId") or submitted.get("id")
        attestation = submitted.get("attestation")
        attestation_signature = submitted.get("signature")
        self.ledger.annotate(record, {"gateway_transfer_id": transfer_id})
        logger.info(f"Gateway transfer submitted. ID: {transfer_id}")

        if not attestation or not attestation_signature:
            attestation, attestation_signature = self.attestation_poller.await_attestation(transfer_id)

        mint = execute_contract_call(
            self.provider,
            signers.minter,
            destination.chain_id,
            GATEWAY_MINTER_ADDRESS,
            "gatewayMint(bytes,bytes)",
            [attestation, attestation_signature],
            fee_level="MEDIUM",
        )
        confirmed = self.provider.wait_for_transaction(mint["id"])
        mint_tx_hash = confirmed["txHash"]

        result = {
            "attestation": attestation,
            "mintTxHash": mint_tx_hash,
            "sourceChain": source.client_key,
            "destinationChain": destination.client_key,
            "amount": str(from_atomic(atomic)),
            "recipient": signers.recipient,
        }
        self.ledger.annotate(record, {"mint_transaction_id": mint["id"], "result": result})
        self.ledger.transition(
            record, TransferStatus.COMPLETE, changed_by="orchestrator", tx_hash=mint_tx_hash
        )
        return result

    def result_for(self, record: TransferRecord) -> dict:
        """Stored response for an earlier request with the same key."""
        stored = (record.metadata_json or {}).get("result")
        if stored:
            return {**stored, "transferId": record.id, "status": record.status}
        return {
            "transferId": record.id,
            "status": record.status,
            "attestation": None,
            "mintTxHash": record.tx_hash,
            "sourceChain": to_client_key(record.chain),
            "destinationChain": to_client_key(record.destination_chain),
            "amount": str(record.amount),
            "recipient": record.destination_address,
        }

    # Balance management

    def _confirm(self, wallet, chain_id: int, contract: str, signature: str, params: list) -> str:
        transaction = execute_contract_call(
            self.provider, wallet, chain_id, contract, signature, params, fee_level="HIGH"
        )
        return self.provider.wait_for_transaction(transaction["id"])["txHash"]

    def deposit(self, owner_id: str, chain_id: int, amount, delegate: Optional[str] = None) -> dict:
        """Deposit USDC from the custodial wallet into the Gateway wallet."""
        config = self._gateway_chain(chain_id)
        atomic = to_atomic(amount)
        depositor = self.registry.custodial_wallet(owner_id)
        tx_hashes = {}

        if delegate:
            validate_address(delegate, "delegate")
            logger.info(f"Adding delegate {delegate} for wallet {depositor.provider_wallet_id}")
            tx_hashes["addDelegate"] = self._confirm(
                depositor,
                config.chain_id,
                GATEWAY_WALLET_ADDRESS,
                "addDelegate(address,address)",
                [config.usdc_address, delegate],
            )

        tx_hashes["approve"] = self._confirm(
            depositor,
            config.chain_id,
            config.usdc_address,
            "approve(address,uint256)",
            [GATEWAY_WALLET_ADDRESS, atomic],
        )
        tx_hashes["deposit"] = self._confirm(
            depositor,
            config.chain_id,
            GATEWAY_WALLET_ADDRESS,
            "deposit(address,uint256)",
            [config.usdc_address, atomic],
        )
        logger.info(f"Deposited {from_atomic(atomic)} USDC to Gateway on {config.display_name}")
        return {
            "chain": config.client_key,
            "amount": str(from_atomic(atomic)),
            "depositor": depositor.address,
            "txHashes": tx_hashes,
        }

    def withdraw(self, owner_id: str, chain_id: int, amount) -> dict:
        """Same-chain withdrawal from the Gateway wallet back to the custodial wallet."""
        config = self._gateway_chain(chain_id)
        atomic = to_atomic(amount)
        depositor = self.registry.custodial_wallet(owner_id)
        tx_hashes = {
            "initiateWithdrawal": self._confirm(
                depositor,
                config.chain_id,
                GATEWAY_WALLET_ADDRESS,
                "initiateWithdrawal(address,uint256)",
                [config.usdc_address, atomic],
            ),
        }
        tx_hashes["withdraw"] = self._confirm(
            depositor,
            config.chain_id,
            GATEWAY_WALLET_ADDRESS,
            "withdraw(address)",
            [config.usdc_address],
        )
        return {
            "chain": config.client_key,
            "amount": str(from_atomic(atomic)),
            "depositor": depositor.address,
            "txHashes": tx_hashes,
        }

    def balances(self, owner_id: str) -> dict:
        depositor = self.registry.custodial_wallet(owner_id)
        domains = [config.domain for config in CHAINS.values() if config.gateway_supported]
        data = self.gateway.get_balances(depositor.address, domains)
        return {"depositor": depositor.address, **(data or {})}
