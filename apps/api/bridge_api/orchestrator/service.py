"""Transfer orchestrator: drives single-step and bridged transfers.

Each on-chain step is its own ledger row. The next step of a bridged
transfer is only ever created as a direct consequence of the previous
step's confirmation being applied by the ledger, so a duplicate or late
notification can never create a second approval, burn or mint.
"""

import logging
import re
import uuid
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from bridge_api.chains import (
    CCTP_FINALITY_THRESHOLD,
    address_to_bytes32,
    domain_of,
    from_provider_name,
    get_chain,
    to_atomic,
)
from bridge_api.exceptions import (
    AttestationFailedError,
    BridgeError,
    ChainExecutionError,
    InsufficientGasError,
    UpstreamResponseError,
    ValidationError,
)
from bridge_api.ledger.service import LedgerStore, TransitionResult
from bridge_api.ledger.status import TransferStatus, map_provider_state
from bridge_api.models import TransferKind, TransferRecord, Wallet, WalletRole
from bridge_api.orchestrator.dispatch import InlineBurnDispatcher
from bridge_api.providers.wallets import is_gas_error
from bridge_api.registry import WalletRegistry
from bridge_api.settings import Settings, get_settings
from bridge_api.utils.metrics import chain_execution_failures, insufficient_gas_failures

logger = logging.getLogger(__name__)

EXCHANGE_RATE_USDC_PER_CREDIT = Decimal("0.01")

TX_HASH_PATTERN = re.compile(r"^0x[0-9a-fA-F]{64}$")
ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")

ZERO_BYTES32 = "0x" + "0" * 64

DEPOSIT_FOR_BURN = "depositForBurn(uint256,uint32,bytes32,address,bytes32,uint256,uint32)"
RECEIVE_MESSAGE = "receiveMessage(bytes,bytes)"


def validate_address(value: Optional[str], field: str) -> str:
    if not isinstance(value, str) or not ADDRESS_PATTERN.match(value):
        raise ValidationError(f"Invalid {field}", field=field, value=value)
    return value


def step_idempotency_key(step: str, record_id: str) -> str:
    """Deterministic provider idempotency key for the follow-up of a step."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"bridge:{step}:{record_id}"))


def execute_contract_call(
    provider,
    wallet: Wallet,
    chain_id: int,
    contract_address: str,
    abi_function_signature: str,
    abi_parameters: list,
    *,
    fee_level: Optional[str] = None,
    idempotency_key: Optional[str] = None,
) -> dict:
    """Submit a contract call through the provider for ``wallet``.

    Gas-shaped provider rejections become ``InsufficientGasError`` carrying
    the signer and chain; any other provider error propagates unchanged.
    """
    try:
        return provider.create_contract_execution(
            wallet.provider_wallet_id,
            contract_address,
            abi_function_signature,
            abi_parameters,
            fee_level=fee_level,
            idempotency_key=idempotency_key,
        )
    except UpstreamResponseError as exc:
        if is_gas_error(exc):
            insufficient_gas_failures.labels(chain=str(int(chain_id))).inc()
            logger.warning(
                f"Insufficient gas for wallet {wallet.provider_wallet_id} ({wallet.address}) on chain {chain_id}"
            )
            raise InsufficientGasError(
                wallet.provider_wallet_id,
                int(chain_id),
                address=wallet.address,
                details={"provider_error": exc.body},
            ) from exc
        raise


class TransferOrchestrator:
    """Owns the per-kind step graphs and reconciles provider notifications."""

    def __init__(
        self,
        db: Session,
        provider,
        poller,
        *,
        dispatcher=None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.ledger = LedgerStore(db)
        self.registry = WalletRegistry(db)
        self.provider = provider
        self.poller = poller
        self.settings = settings or get_settings()
        self.dispatcher = dispatcher or InlineBurnDispatcher(self.complete_burn)

    # Client and admin initiated steps

    def record_topup(
        self,
        owner_id: str,
        chain_id: int,
        tx_hash: str,
        amount,
        credits,
        wallet_address: str,
        destination_address: Optional[str] = None,
    ) -> tuple[TransferRecord, bool]:
        """Record a user top-up already broadcast from the user's own wallet."""
        config = get_chain(chain_id)
        if not isinstance(tx_hash, str) or not TX_HASH_PATTERN.match(tx_hash):
            raise ValidationError("Invalid txHash", field="txHash", value=tx_hash)
        validate_address(wallet_address, "walletAddress")
        if destination_address:
            validate_address(destination_address, "destinationAddress")
        credit_amount = Decimal(str(credits))
        if credit_amount <= 0:
            raise ValidationError("Credits must be positive", field="credits", value=credits)

        record, created = self.ledger.create_transfer(
            changed_by="client",
            kind=TransferKind.USER_TOPUP,
            idempotency_key=f"{int(config.chain_id)}:{tx_hash}",
            owner_id=owner_id,
            source_account=wallet_address,
            destination_address=destination_address,
            chain=int(config.chain_id),
            tx_hash=tx_hash,
            amount_atomic=to_atomic(amount),
            fee_atomic=0,
            credit_amount=credit_amount,
            metadata_json={"exchange_rate": str(EXCHANGE_RATE_USDC_PER_CREDIT)},
        )
        if created:
            self._apply_logged_notifications(record)
        return record, created

    def _apply_logged_notifications(self, topup: TransferRecord) -> None:
        """Replay notifications for the top-up's hash that arrived before the record."""
        provider_name = get_chain(topup.chain).provider_name
        for event in self.ledger.webhook_events_for_tx_hash(topup.tx_hash):
            notification = (event.payload_json or {}).get("notification") or {}
            blockchain = notification.get("blockchain")
            if blockchain and blockchain != provider_name:
                continue
            new_status = map_provider_state(notification.get("state"))
            if new_status is None:
                continue
            logger.info(f"Applying earlier notification {event.provider_event_id} to top-up {topup.id}")
            self.ledger.attach_provider_transaction(topup, notification.get("id"))
            self.ledger.transition(
                topup,
                new_status,
                changed_by="webhook",
                credit=topup.credit_amount,
                error_reason=notification.get("errorReason"),
            )

    def start_admin_transfer(self, source_wallet_id: str, destination_address: str, amount) -> TransferRecord:
        """Send USDC from an admin wallet to any address on the same chain."""
        source = self._admin_wallet(source_wallet_id)
        validate_address(destination_address, "destinationAddress")
        config = get_chain(source.chain_id)
        atomic = to_atomic(amount)

        transaction = execute_contract_call(
            self.provider,
            source,
            config.chain_id,
            config.usdc_address,
            "transfer(address,uint256)",
            [destination_address, atomic],
            fee_level="HIGH",
        )
        record, _ = self.ledger.create_transfer(
            kind=TransferKind.ADMIN_TRANSFER,
            idempotency_key=f"admin:{transaction['id']}",
            provider_transaction_id=transaction["id"],
            source_wallet_id=source.provider_wallet_id,
            source_account=source.address,
            destination_address=destination_address,
            chain=int(config.chain_id),
            amount_atomic=atomic,
        )
        return record

    def start_bridge_transfer(self, source_wallet_id: str, destination_wallet_id: str, amount) -> TransferRecord:
        """Begin approve -> burn -> mint between two internal admin wallets."""
        source = self._admin_wallet(source_wallet_id)
        destination = self._admin_wallet(destination_wallet_id)
        if source.chain_id == destination.chain_id:
            raise ValidationError(
                "Bridge transfers need different source and destination chains",
                field="destinationWalletId",
                value=destination_wallet_id,
            )
        config = get_chain(source.chain_id)
        get_chain(destination.chain_id)
        atomic = to_atomic(amount)

        transaction = execute_contract_call(
            self.provider,
            source,
            config.chain_id,
            config.usdc_address,
            "approve(address,uint256)",
            [config.token_messenger, atomic],
            fee_level="MEDIUM",
        )
        record, _ = self.ledger.create_transfer(
            kind=TransferKind.BRIDGE_APPROVAL,
            idempotency_key=f"admin:{transaction['id']}",
            provider_transaction_id=transaction["id"],
            source_wallet_id=source.provider_wallet_id,
            source_account=source.address,
            destination_address=destination.address,
            chain=int(config.chain_id),
            destination_chain=int(destination.chain_id),
            amount_atomic=atomic,
            metadata_json={"destination_wallet_id": destination.provider_wallet_id},
        )
        return record

    def _admin_wallet(self, provider_wallet_id: str) -> Wallet:
        wallet = self.registry.get(provider_wallet_id)
        if wallet.role != WalletRole.ADMIN or wallet.chain_id is None:
            raise ValidationError(
                "Wallet is not a single-chain admin wallet", field="walletId", value=provider_wallet_id
            )
        return wallet

    # Notification handling

    def apply_notification(self, notification: dict) -> list[TransitionResult]:
        """Advance both ledgers for one provider transaction notification."""
        provider_transaction_id = notification.get("id")
        new_status = map_provider_state(notification.get("state"))
        if new_status is None:
            logger.info(
                f"Unknown provider state {notification.get('state')!r} for {provider_transaction_id}; ignoring"
            )
            return []

        results = self._apply_simple(notification, new_status)
        results.extend(self._apply_bridge(notification, new_status))
        return results

    def _apply_simple(self, notification: dict, new_status: TransferStatus) -> list[TransitionResult]:
        results = []
        provider_transaction_id = notification.get("id")
        tx_hash = notification.get("txHash")

        for topup in self.ledger.find_topups_by_tx_hash(tx_hash):
            self.ledger.attach_provider_transaction(topup, provider_transaction_id)
            results.append(
                self.ledger.transition(
                    topup,
                    new_status,
                    changed_by="webhook",
                    credit=topup.credit_amount,
                    error_reason=notification.get("errorReason"),
                )
            )

        record = self.ledger.get_by_provider_transaction_id(provider_transaction_id)
        if record is not None and record.kind == TransferKind.ADMIN_TRANSFER:
            results.append(
                self.ledger.transition(
                    record,
                    new_status,
                    changed_by="webhook",
                    tx_hash=tx_hash,
                    error_reason=notification.get("errorReason"),
                )
            )
        return results

    def _apply_bridge(self, notification: dict, new_status: TransferStatus) -> list[TransitionResult]:
        record = self.ledger.get_by_provider_transaction_id(notification.get("id"))
        if record is None or record.kind not in TransferKind.BRIDGE:
            return []

        result = self.ledger.transition(
            record,
            new_status,
            changed_by="webhook",
            tx_hash=notification.get("txHash"),
            error_reason=notification.get("errorReason"),
        )
        reached_success = (
            result.applied and result.new_status.is_success and not result.old_status.is_success
        )
        if reached_success:
            if record.kind == TransferKind.BRIDGE_APPROVAL:
                self.on_approval_confirmed(record)
            elif record.kind == TransferKind.BRIDGE_BURN:
                self.dispatcher.dispatch(record.id)
            else:
                logger.info(f"Bridge transfer completed with mint {record.id}")
        return [result]

    # Bridge steps

    def on_approval_confirmed(self, approval: TransferRecord) -> TransferRecord:
        """Issue the burn for a confirmed approval and record the burn step."""
        source = self.registry.get(approval.source_wallet_id)
        config = get_chain(approval.chain)
        amount = approval.amount_atomic
        max_fee = max(amount - 1, 0)
        params = [
            amount,
            domain_of(approval.destination_chain),
            address_to_bytes32(approval.destination_address),
            config.usdc_address,
            ZERO_BYTES32,
            max_fee,
            CCTP_FINALITY_THRESHOLD,
        ]

        try:
            transaction = execute_contract_call(
                self.provider,
                source,
                config.chain_id,
                config.token_messenger,
                DEPOSIT_FOR_BURN,
                params,
                fee_level="MEDIUM",
                idempotency_key=step_idempotency_key("burn", approval.id),
            )
        except UpstreamResponseError as exc:
            if exc.is_retryable:
                raise
            self._fail(approval, exc)

        burn, created = self.ledger.create_transfer(
            kind=TransferKind.BRIDGE_BURN,
            idempotency_key=f"{TransferKind.BRIDGE_BURN}:{approval.id}",
            provider_transaction_id=transaction["id"],
            owner_id=approval.owner_id,
            source_wallet_id=approval.source_wallet_id,
            source_account=approval.source_account,
            destination_address=approval.destination_address,
            chain=approval.chain,
            destination_chain=approval.destination_chain,
            amount_atomic=amount,
            fee_atomic=max_fee,
            metadata_json={
                "approval_id": approval.id,
                "destination_wallet_id": (approval.metadata_json or {}).get("destination_wallet_id"),
            },
        )
        if created:
            logger.info(f"Burn {burn.id} submitted for approval {approval.id}")
        return burn

    def complete_burn(self, burn_id: str, max_polls: Optional[int] = None) -> Optional[TransferRecord]:
        """Wait for the burn's attestation and relay the mint, at most once."""
        burn = self.ledger.get(burn_id)
        if burn is None or burn.kind != TransferKind.BRIDGE_BURN:
            raise ValidationError("Unknown burn", field="burn_id", value=burn_id)

        existing = self.ledger.find_mint_for_burn(burn.id)
        if existing is not None:
            logger.info(f"Burn {burn.id} already minted by {existing.id}")
            return existing
        if not TransferStatus(burn.status).is_success:
            logger.info(f"Burn {burn.id} is {burn.status}; not completing")
            return None
        if burn.error_reason:
            logger.info(f"Burn {burn.id} was halted ({burn.error_reason}); not completing")
            return None

        transaction = self.provider.get_transaction(burn.provider_transaction_id)
        tx_hash = transaction.get("txHash") or burn.tx_hash
        if not tx_hash:
            raise ChainExecutionError("Burn transaction has no hash yet", transfer_id=burn.id)
        blockchain = transaction.get("blockchain")
        source_chain = from_provider_name(blockchain) if blockchain else burn.chain
        self.ledger.attach_tx_hash(burn, tx_hash)

        try:
            bundle = self.poller.await_attestation(domain_of(source_chain), tx_hash, max_polls=max_polls)
        except AttestationFailedError as exc:
            self._fail(burn, exc)

        destination = self._destination_wallet(burn)
        destination_config = get_chain(burn.destination_chain)
        try:
            relay = execute_contract_call(
                self.provider,
                destination,
                destination_config.chain_id,
                destination_config.message_transmitter,
                RECEIVE_MESSAGE,
                [bundle.message, bundle.attestation],
                fee_level="MEDIUM",
                idempotency_key=step_idempotency_key("mint", burn.id),
            )
        except UpstreamResponseError as exc:
            if exc.is_retryable:
                raise
            self._fail(burn, exc)

        mint, created = self.ledger.record_mint(
            burn,
            relay["id"],
            source_wallet_id=destination.provider_wallet_id,
            source_account=destination.address,
            destination_address=burn.destination_address,
            chain=int(destination_config.chain_id),
            amount_atomic=burn.amount_atomic,
            metadata={"burn_tx_hash": tx_hash, "source_chain": int(source_chain)},
        )
        if created:
            logger.info(f"Mint {mint.id} relayed for burn {burn.id}")
        return mint

    def _destination_wallet(self, burn: TransferRecord) -> Wallet:
        wallet = self.registry.internal_wallet_for(burn.destination_address, burn.destination_chain)
        if wallet is None:
            self._fail(
                burn,
                BridgeError(f"Destination {burn.destination_address} is not an internal wallet"),
            )
        return wallet

    def _fail(self, record: TransferRecord, exc: Exception):
        """Mark ``record`` FAILED and stop the chain."""
        reason = getattr(exc, "message", None) or str(exc)
        result = self.ledger.transition(
            record,
            TransferStatus.FAILED,
            changed_by="orchestrator",
            error_reason=reason,
        )
        if not result.applied:
            # FAILED cannot overwrite a success status; keep the reason instead.
            self.ledger.halt(record, reason)
        chain_execution_failures.labels(kind=record.kind).inc()
        logger.error(f"{record.kind} {record.id} failed: {reason}")
        raise ChainExecutionError(reason, transfer_id=record.id) from exc

    # Recovery

    def resume_stalled_burns(self) -> list[str]:
        """Re-dispatch confirmed burns that never got a mint row."""
        burn_ids = [burn.id for burn in self.ledger.confirmed_burns_without_mint()]
        for burn_id in burn_ids:
            logger.info(f"Resuming burn completion for {burn_id}")
            self.dispatcher.dispatch(burn_id)
        return burn_ids

    def resume_stalled_approvals(self) -> list[str]:
        """Issue burns for confirmed approvals whose burn was never recorded."""
        resumed = []
        for approval in self.ledger.confirmed_records(TransferKind.BRIDGE_APPROVAL):
            if self.ledger.find_by_idempotency_key(f"{TransferKind.BRIDGE_BURN}:{approval.id}"):
                continue
            try:
                self.on_approval_confirmed(approval)
            except BridgeError as e:
                logger.error(f"Could not resume approval {approval.id}: {e}")
                continue
            resumed.append(approval.id)
        return resumed
