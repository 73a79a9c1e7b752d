"""Transactional ledger of transfer steps, status events and webhook events."""

import hashlib
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, aliased

from bridge_api.ledger.status import TransferStatus, allowed_predecessors
from bridge_api.models import CreditBalance, StatusEvent, TransferKind, TransferRecord, WebhookEvent
from bridge_api.utils.metrics import credits_granted, status_transitions

logger = logging.getLogger(__name__)

# Bounded compare-and-set retries when a concurrent writer moves the row first.
_MAX_CAS_ATTEMPTS = 5


@dataclass
class TransitionResult:
    """Outcome of a conditional status write."""

    applied: bool
    old_status: Optional[TransferStatus]
    new_status: TransferStatus
    credited: bool = False


def dedupe_hash(raw_body: bytes) -> str:
    """SHA-256 hex digest of the exact raw request body."""
    return hashlib.sha256(raw_body).hexdigest()


class LedgerStore:
    """Single arbiter of transfer state.

    Every public method commits its own transaction. Uniqueness races are
    resolved by the database constraints: an ``IntegrityError`` is rolled
    back and the winning row is returned instead.
    """

    def __init__(self, db: Session):
        """Initialize ledger store."""
        self.db = db

    # Reads

    def get(self, transfer_id: str) -> Optional[TransferRecord]:
        return self.db.query(TransferRecord).filter(TransferRecord.id == transfer_id).first()

    def get_by_provider_transaction_id(self, provider_transaction_id: str) -> Optional[TransferRecord]:
        if not provider_transaction_id:
            return None
        return (
            self.db.query(TransferRecord)
            .filter(TransferRecord.provider_transaction_id == provider_transaction_id)
            .first()
        )

    def find_by_idempotency_key(self, key: str) -> Optional[TransferRecord]:
        return self.db.query(TransferRecord).filter(TransferRecord.idempotency_key == key).first()

    def find_topups_by_tx_hash(self, tx_hash: str) -> list[TransferRecord]:
        """USER_TOPUP rows for an on-chain hash (case-insensitive)."""
        if not tx_hash:
            return []
        return (
            self.db.query(TransferRecord)
            .filter(
                TransferRecord.kind == TransferKind.USER_TOPUP,
                func.lower(TransferRecord.tx_hash) == tx_hash.lower(),
            )
            .all()
        )

    def find_mint_for_burn(self, burn_id: str) -> Optional[TransferRecord]:
        return (
            self.db.query(TransferRecord)
            .filter(
                TransferRecord.kind == TransferKind.BRIDGE_MINT,
                TransferRecord.linked_step_id == burn_id,
            )
            .first()
        )

    def list_for_owner(self, owner_id: str, limit: int = 50) -> list[TransferRecord]:
        return (
            self.db.query(TransferRecord)
            .filter(TransferRecord.owner_id == owner_id)
            .order_by(TransferRecord.created_at.desc())
            .limit(limit)
            .all()
        )

    def history(self, transfer_id: str) -> list[StatusEvent]:
        """Status events for a record, oldest first."""
        return (
            self.db.query(StatusEvent)
            .filter(StatusEvent.transaction_id == transfer_id)
            .order_by(StatusEvent.id.asc())
            .all()
        )

    def confirmed_burns_without_mint(self) -> list[TransferRecord]:
        """Burns that reached success but never got a mint row.

        Burns halted by a fatal follow-up failure are left out.
        """
        mint = aliased(TransferRecord)
        return (
            self.db.query(TransferRecord)
            .outerjoin(mint, mint.linked_step_id == TransferRecord.id)
            .filter(
                TransferRecord.kind == TransferKind.BRIDGE_BURN,
                TransferRecord.status.in_([TransferStatus.CONFIRMED.value, TransferStatus.COMPLETE.value]),
                TransferRecord.error_reason.is_(None),
                mint.id.is_(None),
            )
            .order_by(TransferRecord.created_at.asc())
            .all()
        )

    def confirmed_records(self, kind: str) -> list[TransferRecord]:
        return (
            self.db.query(TransferRecord)
            .filter(
                TransferRecord.kind == kind,
                TransferRecord.status.in_([TransferStatus.CONFIRMED.value, TransferStatus.COMPLETE.value]),
                TransferRecord.error_reason.is_(None),
            )
            .order_by(TransferRecord.created_at.asc())
            .all()
        )

    # Writes

    def annotate(self, record: TransferRecord, values: dict) -> TransferRecord:
        """Merge ``values`` into the record's metadata."""
        record.metadata_json = {**(record.metadata_json or {}), **values}
        self.db.commit()
        self.db.refresh(record)
        return record

    def create_transfer(self, changed_by: str = "orchestrator", **fields) -> tuple[TransferRecord, bool]:
        """Insert a PENDING record and its initial status event.

        Returns ``(record, created)``. On a uniqueness conflict the existing
        row is returned with ``created=False``.
        """
        record = TransferRecord(status=TransferStatus.PENDING.value, **fields)
        self.db.add(record)
        try:
            self.db.flush()
            self.db.add(
                StatusEvent(
                    transaction_id=record.id,
                    old_status=None,
                    new_status=TransferStatus.PENDING.value,
                    changed_by=changed_by,
                )
            )
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            existing = self._find_conflicting(fields)
            if existing is None:
                raise
            logger.info(
                f"Transfer already exists for key {fields.get('idempotency_key')}: {existing.id}"
            )
            return existing, False

        self.db.refresh(record)
        status_transitions.labels(kind=record.kind, status=record.status).inc()
        logger.info(f"Created {record.kind} transfer {record.id} (key={record.idempotency_key})")
        return record, True

    def _find_conflicting(self, fields: dict) -> Optional[TransferRecord]:
        if fields.get("idempotency_key"):
            existing = self.find_by_idempotency_key(fields["idempotency_key"])
            if existing:
                return existing
        if fields.get("provider_transaction_id"):
            existing = self.get_by_provider_transaction_id(fields["provider_transaction_id"])
            if existing:
                return existing
        if fields.get("linked_step_id"):
            existing = self.find_mint_for_burn(fields["linked_step_id"])
            if existing:
                return existing
        if fields.get("tx_hash") and fields.get("chain") is not None:
            return (
                self.db.query(TransferRecord)
                .filter(
                    TransferRecord.chain == fields["chain"],
                    TransferRecord.tx_hash == fields["tx_hash"],
                )
                .first()
            )
        return None

    def transition(
        self,
        record: TransferRecord,
        new_status: TransferStatus,
        *,
        changed_by: str,
        credit: Optional[Decimal] = None,
        tx_hash: Optional[str] = None,
        error_reason: Optional[str] = None,
    ) -> TransitionResult:
        """Conditionally move ``record`` to ``new_status``.

        The write is a compare-and-set on the stored status, so concurrent
        webhook and poller paths cannot both apply the same move. When the
        record leaves a non-success status for a success status and
        ``credit`` is given, the owner's balance is incremented in the same
        transaction.
        """
        new_status = TransferStatus(new_status)
        allowed = allowed_predecessors(new_status)
        if credit is not None and record.owner_id:
            self._ensure_credit_account(record.owner_id)

        for _ in range(_MAX_CAS_ATTEMPTS):
            current = self.db.query(TransferRecord.status).filter(TransferRecord.id == record.id).scalar()
            if current is None:
                return TransitionResult(applied=False, old_status=None, new_status=new_status)
            current = TransferStatus(current)
            if current not in allowed:
                logger.info(
                    f"Ignoring {current.value} -> {new_status.value} for {record.kind} {record.id}"
                )
                return TransitionResult(applied=False, old_status=current, new_status=new_status)

            values = {"status": new_status.value}
            if error_reason:
                values["error_reason"] = error_reason

            updated = (
                self.db.query(TransferRecord)
                .filter(TransferRecord.id == record.id, TransferRecord.status == current.value)
                .update(values, synchronize_session=False)
            )
            if updated != 1:
                # Lost the race; re-read and decide again.
                self.db.rollback()
                continue

            self.db.add(
                StatusEvent(
                    transaction_id=record.id,
                    old_status=current.value,
                    new_status=new_status.value,
                    changed_by=changed_by,
                )
            )

            credited = False
            if credit is not None and record.owner_id and not current.is_success and new_status.is_success:
                (
                    self.db.query(CreditBalance)
                    .filter(CreditBalance.owner_id == record.owner_id)
                    .update(
                        {"balance": CreditBalance.balance + credit},
                        synchronize_session=False,
                    )
                )
                credited = True

            self.db.commit()
            self.db.refresh(record)

            status_transitions.labels(kind=record.kind, status=new_status.value).inc()
            if credited:
                credits_granted.inc()
                logger.info(f"Credited {credit} to {record.owner_id} for transfer {record.id}")
            logger.info(
                f"Transfer {record.id} ({record.kind}) {current.value} -> {new_status.value} by {changed_by}"
            )

            if tx_hash:
                self.attach_tx_hash(record, tx_hash)
            return TransitionResult(
                applied=True, old_status=current, new_status=new_status, credited=credited
            )

        logger.warning(f"Gave up transitioning {record.id} to {new_status.value} after contention")
        return TransitionResult(applied=False, old_status=None, new_status=new_status)

    def _ensure_credit_account(self, owner_id: str) -> None:
        exists = self.db.query(CreditBalance.id).filter(CreditBalance.owner_id == owner_id).first()
        if exists:
            return
        self.db.add(CreditBalance(owner_id=owner_id, balance=Decimal("0")))
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()

    def credit_balance(self, owner_id: str) -> Decimal:
        balance = (
            self.db.query(CreditBalance.balance).filter(CreditBalance.owner_id == owner_id).scalar()
        )
        return Decimal(balance) if balance is not None else Decimal("0")

    def attach_provider_transaction(self, record: TransferRecord, provider_transaction_id: str) -> bool:
        """Fill ``provider_transaction_id`` once; returns True when written."""
        return self._fill_once(record, "provider_transaction_id", provider_transaction_id)

    def attach_tx_hash(self, record: TransferRecord, tx_hash: str) -> bool:
        """Fill ``tx_hash`` once; returns True when written."""
        return self._fill_once(record, "tx_hash", tx_hash)

    def halt(self, record: TransferRecord, reason: str) -> bool:
        """Record a fatal follow-up failure on a step that already succeeded.

        The status stays as the provider reported it; the stored reason
        keeps the step out of the recovery queries.
        """
        written = self._fill_once(record, "error_reason", reason)
        if written:
            logger.warning(f"Halted {record.kind} {record.id} at {record.status}: {reason}")
        return written

    def _fill_once(self, record: TransferRecord, column: str, value: Optional[str]) -> bool:
        if not value:
            return False
        attribute = getattr(TransferRecord, column)
        try:
            updated = (
                self.db.query(TransferRecord)
                .filter(TransferRecord.id == record.id, attribute.is_(None))
                .update({column: value}, synchronize_session=False)
            )
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.warning(f"Cannot set {column}={value} on {record.id}: already used by another record")
            return False
        self.db.refresh(record)
        return updated == 1

    def log_webhook_event(
        self,
        raw_body: bytes,
        payload: dict,
        *,
        provider_event_id: Optional[str],
        provider_transaction_id: Optional[str],
        notification_type: Optional[str],
        mapped_status: Optional[TransferStatus],
        signature_valid: bool,
        tx_hash: Optional[str] = None,
    ) -> tuple[WebhookEvent, bool]:
        """Append a webhook event; a replay returns the existing row."""
        digest = dedupe_hash(raw_body)
        existing = self._find_webhook_event(digest, provider_event_id)
        if existing:
            return existing, False

        event = WebhookEvent(
            dedupe_hash=digest,
            provider_event_id=provider_event_id,
            notification_type=notification_type,
            provider_transaction_id=provider_transaction_id,
            tx_hash=tx_hash.lower() if tx_hash else None,
            mapped_status=mapped_status.value if mapped_status else None,
            signature_valid=signature_valid,
            payload_json=payload,
        )
        self.db.add(event)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            existing = self._find_webhook_event(digest, provider_event_id)
            if existing is None:
                raise
            return existing, False
        self.db.refresh(event)
        return event, True

    def webhook_events_for_tx_hash(self, tx_hash: str) -> list[WebhookEvent]:
        """Logged notifications for an on-chain hash, oldest first."""
        if not tx_hash:
            return []
        return (
            self.db.query(WebhookEvent)
            .filter(WebhookEvent.tx_hash == tx_hash.lower())
            .order_by(WebhookEvent.id.asc())
            .all()
        )

    def _find_webhook_event(self, digest: str, provider_event_id: Optional[str]) -> Optional[WebhookEvent]:
        query = self.db.query(WebhookEvent)
        if provider_event_id:
            query = query.filter(
                (WebhookEvent.dedupe_hash == digest) | (WebhookEvent.provider_event_id == provider_event_id)
            )
        else:
            query = query.filter(WebhookEvent.dedupe_hash == digest)
        return query.first()

    def record_mint(
        self,
        burn: TransferRecord,
        provider_transaction_id: str,
        *,
        source_wallet_id: Optional[str],
        source_account: Optional[str],
        destination_address: Optional[str],
        chain: int,
        amount_atomic: int,
        metadata: Optional[dict] = None,
    ) -> tuple[TransferRecord, bool]:
        """Insert the BRIDGE_MINT row for ``burn`` at most once."""
        existing = self.get_by_provider_transaction_id(provider_transaction_id)
        if existing:
            logger.info(f"Mint {provider_transaction_id} already recorded as {existing.id}")
            return existing, False

        existing = self.find_mint_for_burn(burn.id)
        if existing:
            logger.info(f"Burn {burn.id} already has mint {existing.id}")
            return existing, False

        return self.create_transfer(
            kind=TransferKind.BRIDGE_MINT,
            idempotency_key=f"{TransferKind.BRIDGE_MINT}:{provider_transaction_id}",
            provider_transaction_id=provider_transaction_id,
            linked_step_id=burn.id,
            owner_id=burn.owner_id,
            source_wallet_id=source_wallet_id,
            source_account=source_account,
            destination_address=destination_address,
            chain=chain,
            amount_atomic=amount_atomic,
            metadata_json=metadata,
        )
