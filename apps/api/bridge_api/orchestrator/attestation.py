"""Attestation pollers for the bridge protocol and the Gateway API."""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional

from bridge_api.exceptions import (
    AttestationFailedError,
    AttestationTimeoutError,
    TransportError,
    UpstreamResponseError,
)
from bridge_api.utils.metrics import attestation_poll_attempts, attestation_wait_duration

logger = logging.getLogger(__name__)

FAILED_MESSAGE_STATUSES = ("failed",)


@dataclass(frozen=True)
class AttestationBundle:
    """A completed attestation and the message it authorizes."""

    message: str
    attestation: str
    raw: Mapping[str, Any] = field(default_factory=dict)


def _is_transient(exc: Exception) -> bool:
    if isinstance(exc, TransportError):
        return True
    return isinstance(exc, UpstreamResponseError) and exc.is_retryable


class AttestationPoller:
    """Poll the message lookup API until a burn is attested.

    ``max_polls=None`` waits indefinitely (webhook-driven completion); a
    number bounds the wait and raises ``AttestationTimeoutError``.
    """

    def __init__(self, iris, interval: float = 5.0, sleep: Callable[[float], None] = time.sleep):
        self.iris = iris
        self.interval = interval
        self._sleep = sleep

    def await_attestation(self, domain: int, tx_hash: str, max_polls: Optional[int] = None) -> AttestationBundle:
        started = time.monotonic()
        attempt = 0
        try:
            while max_polls is None or attempt < max_polls:
                if attempt:
                    self._sleep(self.interval)
                attempt += 1
                attestation_poll_attempts.labels(source="iris").inc()

                try:
                    messages = self.iris.get_messages(domain, tx_hash)
                except (TransportError, UpstreamResponseError) as exc:
                    if not _is_transient(exc):
                        raise
                    logger.warning(f"Attestation lookup error for {tx_hash} (attempt {attempt}): {exc}")
                    continue

                bundle = self._complete_message(messages, tx_hash, attempt)
                if bundle is not None:
                    logger.info(f"Attestation for {tx_hash} on domain {domain} ready after {attempt} polls")
                    return bundle
        finally:
            attestation_wait_duration.labels(source="iris").observe(time.monotonic() - started)

        raise AttestationTimeoutError(
            f"Attestation for {tx_hash} not available after {attempt} polls",
            attempts=attempt,
            details={"domain": domain, "tx_hash": tx_hash},
        )

    def _complete_message(self, messages, tx_hash: str, attempt: int) -> Optional[AttestationBundle]:
        if not messages:
            logger.debug(f"No message indexed yet for {tx_hash} (attempt {attempt})")
            return None
        for record in messages:
            status = str(record.get("status", "")).lower()
            if status in FAILED_MESSAGE_STATUSES:
                raise AttestationFailedError(
                    f"Attestation failed for {tx_hash}", details={"message": dict(record)}
                )
            if status != "complete":
                logger.debug(f"Attestation still {status or 'unknown'} for {tx_hash} (attempt {attempt})")
                continue
            message = record.get("message")
            attestation = record.get("attestation")
            if isinstance(message, str) and isinstance(attestation, str) and attestation != "PENDING":
                return AttestationBundle(message=message, attestation=attestation, raw=dict(record))
        return None


class GatewayAttestationPoller:
    """Bounded wait for a Gateway transfer attestation (client path)."""

    def __init__(
        self,
        gateway,
        interval: float = 3.0,
        max_polls: int = 60,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.gateway = gateway
        self.interval = interval
        self.max_polls = max_polls
        self._sleep = sleep

    def await_attestation(self, transfer_id: str) -> tuple[str, str]:
        """Return ``(attestation, signature)`` for ``transfer_id``."""
        started = time.monotonic()
        try:
            for attempt in range(1, self.max_polls + 1):
                self._sleep(self.interval)
                attestation_poll_attempts.labels(source="gateway").inc()
                try:
                    body = self.gateway.get_transfer(transfer_id)
                except (TransportError, UpstreamResponseError) as exc:
                    if isinstance(exc, UpstreamResponseError) and exc.status_code != 404 and not exc.is_retryable:
                        raise
                    logger.warning(f"Gateway transfer lookup error for {transfer_id}: {exc}")
                    continue

                body = body or {}
                status = body.get("status") or body.get("state")
                logger.info(f"Transfer status: {status} (attempt {attempt}/{self.max_polls})")
                if body.get("attestation") and body.get("signature"):
                    return body["attestation"], body["signature"]
                if status == "FAILED":
                    raise AttestationFailedError(
                        f"Gateway transfer {transfer_id} failed", details={"response": body}
                    )
        finally:
            attestation_wait_duration.labels(source="gateway").observe(time.monotonic() - started)

        raise AttestationTimeoutError(
            f"Attestation not received after {self.max_polls} attempts. Transfer ID: {transfer_id}",
            attempts=self.max_polls,
            details={"transfer_id": transfer_id},
        )
