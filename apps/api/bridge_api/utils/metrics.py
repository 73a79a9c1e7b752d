"""Prometheus metrics."""

from prometheus_client import Counter, Histogram

# Webhook metrics
webhook_deliveries = Counter(
    "bridge_webhook_deliveries_total",
    "Inbound provider notifications by outcome",
    ["outcome"],
)

# Ledger metrics
status_transitions = Counter(
    "bridge_status_transitions_total",
    "Applied transfer status transitions",
    ["kind", "status"],
)

credits_granted = Counter(
    "bridge_credits_granted_total",
    "Off-chain credit grants triggered by successful top-ups",
)

# Orchestrator metrics
insufficient_gas_failures = Counter(
    "bridge_insufficient_gas_total",
    "On-chain steps rejected for missing native gas",
    ["chain"],
)

chain_execution_failures = Counter(
    "bridge_chain_execution_failures_total",
    "On-chain steps that failed for reasons other than gas",
    ["kind"],
)

# Attestation metrics
attestation_poll_attempts = Counter(
    "bridge_attestation_poll_attempts_total",
    "Attestation lookups by source",
    ["source"],
)

attestation_wait_duration = Histogram(
    "bridge_attestation_wait_seconds",
    "Time spent waiting for an attestation",
    ["source"],
)
