"""Inbound provider notification ingest."""

import json
import logging
from dataclasses import dataclass, field
from typing import Mapping

from sqlalchemy.orm import Session

from bridge_api.exceptions import BridgeError
from bridge_api.ledger.service import LedgerStore
from bridge_api.ledger.status import map_provider_state
from bridge_api.utils.metrics import webhook_deliveries

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-circle-signature"
KEY_ID_HEADER = "x-circle-key-id"
TEST_NOTIFICATION_TYPE = "webhooks.test"
REQUIRED_FIELDS = ("notificationType", "notificationId", "notification")


@dataclass
class IngestResult:
    status_code: int
    body: dict = field(default_factory=dict)


class WebhookIngestService:
    """Verify, deduplicate, log and hand notifications to the orchestrator.

    Key-fetch transport failures raised by the verifier propagate so the
    HTTP layer can answer 5xx and the provider re-delivers later.
    """

    def __init__(self, db: Session, verifier, orchestrator):
        self.ledger = LedgerStore(db)
        self.verifier = verifier
        self.orchestrator = orchestrator

    def handle(self, raw_body: bytes, headers: Mapping[str, str]) -> IngestResult:
        signature = headers.get(SIGNATURE_HEADER)
        key_id = headers.get(KEY_ID_HEADER)
        if not signature or not key_id:
            webhook_deliveries.labels(outcome="malformed").inc()
            return IngestResult(400, {"error": "Missing signature or key id header"})

        try:
            payload = json.loads(raw_body)
        except ValueError:
            webhook_deliveries.labels(outcome="malformed").inc()
            return IngestResult(400, {"error": "Invalid JSON"})
        if not isinstance(payload, dict):
            webhook_deliveries.labels(outcome="malformed").inc()
            return IngestResult(400, {"error": "Invalid JSON"})

        if not self.verifier.verify(raw_body, signature, key_id):
            logger.warning(f"Rejected webhook with invalid signature (key {key_id})")
            webhook_deliveries.labels(outcome="invalid_signature").inc()
            return IngestResult(403, {"error": "Invalid signature"})

        missing = [name for name in REQUIRED_FIELDS if not payload.get(name)]
        notification = payload.get("notification")
        if missing or not isinstance(notification, dict):
            webhook_deliveries.labels(outcome="malformed").inc()
            return IngestResult(400, {"error": "Missing required fields", "fields": missing})

        notification_type = payload["notificationType"]
        provider_transaction_id = notification.get("id")
        event, created = self.ledger.log_webhook_event(
            raw_body,
            payload,
            provider_event_id=str(payload["notificationId"]),
            provider_transaction_id=provider_transaction_id,
            notification_type=notification_type,
            mapped_status=map_provider_state(notification.get("state")),
            signature_valid=True,
            tx_hash=notification.get("txHash"),
        )
        if not created:
            # Re-applied: an earlier delivery may have failed after logging.
            logger.info(f"Duplicate webhook {payload['notificationId']} (event {event.id}); re-applying")
            webhook_deliveries.labels(outcome="duplicate").inc()

        if notification_type == TEST_NOTIFICATION_TYPE:
            logger.info("Received webhook test notification")
            webhook_deliveries.labels(outcome="test").inc()
            return IngestResult(200, {"received": True})

        if provider_transaction_id:
            try:
                self.orchestrator.apply_notification(notification)
            except BridgeError as e:
                # History is intact; recovery runs through resume-burns.
                logger.error(
                    f"Orchestration failed for provider transaction {provider_transaction_id}: {e}",
                    exc_info=True,
                )
                webhook_deliveries.labels(outcome="orchestration_error").inc()
                return IngestResult(200, {"received": True})

        if created:
            webhook_deliveries.labels(outcome="processed").inc()
        return IngestResult(200, {"received": True})
