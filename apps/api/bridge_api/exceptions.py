"""Exception hierarchy for the transfer orchestrator."""

from typing import Any, Optional


class BridgeError(Exception):
    """Base exception for all orchestrator errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(BridgeError):
    """Raised when input validation fails."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details)
        self.field = field
        self.value = value


class UpstreamError(BridgeError):
    """Raised when an outbound HTTP call fails."""

    def __init__(self, message: str, endpoint: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message, details)
        self.endpoint = endpoint


class TransportError(UpstreamError):
    """Connection, DNS or timeout failure; the call never produced a response."""


class UpstreamResponseError(UpstreamError):
    """Upstream answered with a 4xx/5xx status."""

    def __init__(
        self,
        message: str,
        status_code: int,
        body: Optional[Any] = None,
        endpoint: Optional[str] = None,
    ):
        super().__init__(message, endpoint=endpoint, details={"body": body})
        self.status_code = status_code
        self.body = body

    @property
    def code(self) -> Optional[int]:
        """Provider error code from the structured body, if any."""
        if isinstance(self.body, dict):
            code = self.body.get("code")
            if isinstance(code, int):
                return code
        return None

    @property
    def is_retryable(self) -> bool:
        return self.status_code >= 500 or self.status_code == 429


class InsufficientGasError(BridgeError):
    """The signing wallet holds no native gas on the chain it must execute on."""

    error_code = "INSUFFICIENT_GAS"

    def __init__(
        self,
        wallet_id: str,
        chain_id: int,
        address: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(f"{self.error_code}:{wallet_id}:{chain_id}", details)
        self.wallet_id = wallet_id
        self.chain_id = chain_id
        self.address = address


class ChainExecutionError(BridgeError):
    """An on-chain step failed for a reason other than gas."""

    def __init__(self, message: str, transfer_id: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message, details)
        self.transfer_id = transfer_id


class AttestationFailedError(BridgeError):
    """The attestation service reported an explicit failure."""


class AttestationTimeoutError(BridgeError):
    """A bounded attestation wait ran out of attempts."""

    def __init__(self, message: str, attempts: int, details: Optional[dict] = None):
        super().__init__(message, details)
        self.attempts = attempts


class WalletNotFoundError(BridgeError):
    """No registry wallet matches the requested signer."""
