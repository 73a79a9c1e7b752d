"""Internal transfer statuses and the provider state table."""

from enum import Enum
from typing import Optional


class TransferStatus(str, Enum):
    """Internal status with a priority order used for anti-regression."""

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    COMPLETE = "COMPLETE"
    FAILED = "FAILED"

    @property
    def priority(self) -> int:
        return _PRIORITY[self]

    @property
    def is_success(self) -> bool:
        return self in (TransferStatus.CONFIRMED, TransferStatus.COMPLETE)

    @property
    def is_terminal(self) -> bool:
        return self in (TransferStatus.COMPLETE, TransferStatus.FAILED)


_PRIORITY = {
    TransferStatus.FAILED: 0,
    TransferStatus.PENDING: 1,
    TransferStatus.CONFIRMED: 2,
    TransferStatus.COMPLETE: 3,
}

PROVIDER_STATE_MAP = {
    "INITIATED": TransferStatus.PENDING,
    "QUEUED": TransferStatus.PENDING,
    "SENT": TransferStatus.PENDING,
    "PENDING": TransferStatus.PENDING,
    "CONFIRMED": TransferStatus.CONFIRMED,
    "COMPLETE": TransferStatus.COMPLETE,
    "FAILED": TransferStatus.FAILED,
    "CANCELLED": TransferStatus.FAILED,
    "DENIED": TransferStatus.FAILED,
}


def map_provider_state(state: Optional[str]) -> Optional[TransferStatus]:
    """Map a provider lifecycle state to an internal status.

    Unknown states (and ``None``) map to ``None``; callers must treat that
    as a no-op and never advance the record.
    """
    if not isinstance(state, str):
        return None
    return PROVIDER_STATE_MAP.get(state)


def allowed_predecessors(new_status: TransferStatus) -> frozenset:
    """Stored statuses from which ``new_status`` may be written.

    Forward moves require strictly lower priority. FAILED wins over any
    non-terminal status; COMPLETE and FAILED accept nothing further.
    """
    if new_status == TransferStatus.FAILED:
        return frozenset({TransferStatus.PENDING, TransferStatus.CONFIRMED})
    return frozenset(
        status
        for status in TransferStatus
        if status != TransferStatus.FAILED and status.priority < new_status.priority
    )


def can_transition(current: TransferStatus, new_status: TransferStatus) -> bool:
    return TransferStatus(current) in allowed_predecessors(new_status)
