"""USDC transfer orchestrator Python SDK."""

__version__ = "0.1.0"

from bridge_sdk.client import BridgeClient, InsufficientGasError

__all__ = ["BridgeClient", "InsufficientGasError"]
