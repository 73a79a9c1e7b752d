"""Tests for the transactional ledger."""

from decimal import Decimal

from bridge_api.ledger.service import LedgerStore, dedupe_hash
from bridge_api.ledger.status import TransferStatus
from bridge_api.models import StatusEvent, TransferKind

from conftest import fake_tx_hash


def create_topup(ledger, tx_hash=None, owner_id="user-1", credits="5"):
    tx_hash = tx_hash or fake_tx_hash("topup")
    return ledger.create_transfer(
        changed_by="client",
        kind=TransferKind.USER_TOPUP,
        idempotency_key=f"84532:{tx_hash}",
        owner_id=owner_id,
        chain=84532,
        tx_hash=tx_hash,
        amount_atomic=50_000,
        credit_amount=Decimal(credits),
    )


class TestCreateTransfer:
    """Rows start PENDING with one initial event and are deduplicated by key."""

    def test_creates_pending_row_with_initial_event(self, db):
        ledger = LedgerStore(db)
        record, created = create_topup(ledger)

        assert created is True
        assert record.status == TransferStatus.PENDING.value
        history = ledger.history(record.id)
        assert len(history) == 1
        assert history[0].old_status is None
        assert history[0].new_status == "PENDING"
        assert history[0].changed_by == "client"

    def test_duplicate_key_returns_existing(self, db):
        ledger = LedgerStore(db)
        first, _ = create_topup(ledger)
        second, created = create_topup(ledger)

        assert created is False
        assert second.id == first.id
        assert db.query(StatusEvent).count() == 1

    def test_mint_unique_per_burn(self, db):
        ledger = LedgerStore(db)
        burn, _ = ledger.create_transfer(
            kind=TransferKind.BRIDGE_BURN,
            idempotency_key="BRIDGE_BURN:approval-1",
            provider_transaction_id="burn-tx",
            chain=84532,
            amount_atomic=1_000_000,
        )
        first, _ = ledger.create_transfer(
            kind=TransferKind.BRIDGE_MINT,
            idempotency_key="BRIDGE_MINT:mint-a",
            provider_transaction_id="mint-a",
            linked_step_id=burn.id,
            chain=43113,
            amount_atomic=1_000_000,
        )
        # A different relay for the same burn hits the linked_step_id constraint.
        second, created = ledger.create_transfer(
            kind=TransferKind.BRIDGE_MINT,
            idempotency_key="BRIDGE_MINT:mint-b",
            provider_transaction_id="mint-b",
            linked_step_id=burn.id,
            chain=43113,
            amount_atomic=1_000_000,
        )

        assert created is False
        assert second.id == first.id


class TestTransition:
    """Conditional status writes with same-transaction credits."""

    def test_forward_transition_appends_event(self, db):
        ledger = LedgerStore(db)
        record, _ = create_topup(ledger)

        result = ledger.transition(record, TransferStatus.CONFIRMED, changed_by="webhook")

        assert result.applied is True
        assert result.old_status == TransferStatus.PENDING
        assert record.status == "CONFIRMED"
        assert [event.new_status for event in ledger.history(record.id)] == ["PENDING", "CONFIRMED"]

    def test_regression_is_a_no_op(self, db):
        ledger = LedgerStore(db)
        record, _ = create_topup(ledger)
        ledger.transition(record, TransferStatus.COMPLETE, changed_by="webhook")

        result = ledger.transition(record, TransferStatus.CONFIRMED, changed_by="webhook")

        assert result.applied is False
        assert record.status == "COMPLETE"
        assert len(ledger.history(record.id)) == 2

    def test_failed_is_terminal(self, db):
        ledger = LedgerStore(db)
        record, _ = create_topup(ledger)
        ledger.transition(record, TransferStatus.FAILED, changed_by="webhook", error_reason="reverted")

        result = ledger.transition(record, TransferStatus.COMPLETE, changed_by="webhook")

        assert result.applied is False
        assert record.status == "FAILED"
        assert record.error_reason == "reverted"

    def test_credit_granted_once(self, db):
        ledger = LedgerStore(db)
        record, _ = create_topup(ledger, credits="5")

        first = ledger.transition(record, TransferStatus.CONFIRMED, changed_by="webhook", credit=Decimal("5"))
        second = ledger.transition(record, TransferStatus.COMPLETE, changed_by="webhook", credit=Decimal("5"))
        third = ledger.transition(record, TransferStatus.COMPLETE, changed_by="webhook", credit=Decimal("5"))

        assert first.credited is True
        assert second.applied is True and second.credited is False
        assert third.applied is False
        assert ledger.credit_balance("user-1") == Decimal("5")

    def test_no_credit_on_failure(self, db):
        ledger = LedgerStore(db)
        record, _ = create_topup(ledger)

        ledger.transition(record, TransferStatus.FAILED, changed_by="webhook", credit=Decimal("5"))

        assert ledger.credit_balance("user-1") == Decimal("0")

    def test_stale_record_object_still_guarded(self, db, session_factory):
        ledger = LedgerStore(db)
        record, _ = create_topup(ledger)

        other_session = session_factory()
        try:
            other = LedgerStore(other_session)
            other.transition(other.get(record.id), TransferStatus.COMPLETE, changed_by="webhook")
        finally:
            other_session.close()

        # ``record`` still says PENDING in this session; the stored status decides.
        result = ledger.transition(record, TransferStatus.CONFIRMED, changed_by="webhook")

        assert result.applied is False
        assert result.old_status == TransferStatus.COMPLETE

    def test_transition_attaches_tx_hash(self, db):
        ledger = LedgerStore(db)
        record, _ = ledger.create_transfer(
            kind=TransferKind.ADMIN_TRANSFER,
            idempotency_key="admin:tx-1",
            provider_transaction_id="tx-1",
            chain=84532,
            amount_atomic=1,
        )
        tx_hash = fake_tx_hash("admin")

        ledger.transition(record, TransferStatus.CONFIRMED, changed_by="webhook", tx_hash=tx_hash)

        assert record.tx_hash == tx_hash


class TestIdentifiers:
    def test_attach_provider_transaction_only_once(self, db):
        ledger = LedgerStore(db)
        record, _ = create_topup(ledger)

        assert ledger.attach_provider_transaction(record, "provider-1") is True
        assert ledger.attach_provider_transaction(record, "provider-2") is False
        assert record.provider_transaction_id == "provider-1"

    def test_find_topups_by_tx_hash_ignores_case(self, db):
        ledger = LedgerStore(db)
        tx_hash = "0x" + "AB" * 32
        record, _ = create_topup(ledger, tx_hash=tx_hash)

        assert [r.id for r in ledger.find_topups_by_tx_hash(tx_hash.lower())] == [record.id]
        assert ledger.find_topups_by_tx_hash(None) == []


class TestWebhookEvents:
    """The event log deduplicates by raw body hash and provider event id."""

    def test_replay_of_identical_body(self, db):
        ledger = LedgerStore(db)
        raw = b'{"notificationId": "n-1"}'
        kwargs = dict(
            provider_event_id="n-1",
            provider_transaction_id="tx-1",
            notification_type="transactions.outbound",
            mapped_status=TransferStatus.CONFIRMED,
            signature_valid=True,
        )

        event, created = ledger.log_webhook_event(raw, {"notificationId": "n-1"}, **kwargs)
        again, created_again = ledger.log_webhook_event(raw, {"notificationId": "n-1"}, **kwargs)

        assert created is True
        assert created_again is False
        assert again.id == event.id
        assert event.dedupe_hash == dedupe_hash(raw)
        assert event.mapped_status == "CONFIRMED"

    def test_same_notification_id_with_different_bytes(self, db):
        ledger = LedgerStore(db)
        kwargs = dict(
            provider_event_id="n-1",
            provider_transaction_id="tx-1",
            notification_type="transactions.outbound",
            mapped_status=None,
            signature_valid=True,
        )

        ledger.log_webhook_event(b'{"notificationId":"n-1"}', {}, **kwargs)
        _, created = ledger.log_webhook_event(b'{"notificationId": "n-1"}', {}, **kwargs)

        assert created is False


def test_confirmed_burns_without_mint(db):
    ledger = LedgerStore(db)
    burn, _ = ledger.create_transfer(
        kind=TransferKind.BRIDGE_BURN,
        idempotency_key="BRIDGE_BURN:a",
        provider_transaction_id="burn-a",
        chain=84532,
        amount_atomic=1,
    )
    minted, _ = ledger.create_transfer(
        kind=TransferKind.BRIDGE_BURN,
        idempotency_key="BRIDGE_BURN:b",
        provider_transaction_id="burn-b",
        chain=84532,
        amount_atomic=1,
    )
    pending, _ = ledger.create_transfer(
        kind=TransferKind.BRIDGE_BURN,
        idempotency_key="BRIDGE_BURN:c",
        provider_transaction_id="burn-c",
        chain=84532,
        amount_atomic=1,
    )
    ledger.transition(burn, TransferStatus.CONFIRMED, changed_by="webhook")
    ledger.transition(minted, TransferStatus.CONFIRMED, changed_by="webhook")
    ledger.record_mint(
        minted,
        "mint-b",
        source_wallet_id=None,
        source_account=None,
        destination_address=None,
        chain=43113,
        amount_atomic=1,
    )

    stalled = ledger.confirmed_burns_without_mint()

    assert [record.id for record in stalled] == [burn.id]
    assert pending.id not in [record.id for record in stalled]
