"""Canonical chain identifiers and the adapters used at the system's edges.

Inside the service a chain is always a ``ChainId`` (the numeric EVM chain id).
Provider blockchain names (``BASE-SEPOLIA``), client keys (``baseSepolia``),
bridge domains and display names only appear at the boundaries and are
converted here.
"""

import logging
from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal, InvalidOperation
from enum import IntEnum
from typing import Optional, Union

from bridge_api.exceptions import ValidationError

logger = logging.getLogger(__name__)

USDC_DECIMALS = 6
USDC_SCALING = Decimal(10) ** USDC_DECIMALS

GATEWAY_WALLET_ADDRESS = "0x0077777d7EBA4688BDeF3E311b846F25870A19B9"
GATEWAY_MINTER_ADDRESS = "0x0022222ABE238Cc2C7Bb1f21003F0a260052475B"
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

CCTP_FINALITY_THRESHOLD = 1000


class ChainId(IntEnum):
    """Supported chains, keyed by native chain id."""

    ETH_SEPOLIA = 11155111
    AVAX_FUJI = 43113
    BASE_SEPOLIA = 84532
    ARC_TESTNET = 5042002


@dataclass(frozen=True)
class ChainConfig:
    """Static per-chain contract and naming data."""

    chain_id: ChainId
    domain: int
    provider_name: str
    client_key: str
    display_name: str
    explorer_url: str
    usdc_address: str
    token_messenger: str
    message_transmitter: str
    gateway_supported: bool = True


_TOKEN_MESSENGER = "0x8fe6b999dc680ccfdd5bf7eb0974218be2542daa"
_MESSAGE_TRANSMITTER = "0xe737e5cebeeba77efe34d4aa090756590b1ce275"

CHAINS: dict[ChainId, ChainConfig] = {
    ChainId.ETH_SEPOLIA: ChainConfig(
        chain_id=ChainId.ETH_SEPOLIA,
        domain=0,
        provider_name="ETH-SEPOLIA",
        client_key="ethSepolia",
        display_name="Ethereum Sepolia",
        explorer_url="https://sepolia.etherscan.io",
        usdc_address="0x1c7d4b196cb0c7b01d743fbc6116a902379c7238",
        token_messenger=_TOKEN_MESSENGER,
        message_transmitter=_MESSAGE_TRANSMITTER,
        gateway_supported=False,
    ),
    ChainId.AVAX_FUJI: ChainConfig(
        chain_id=ChainId.AVAX_FUJI,
        domain=1,
        provider_name="AVAX-FUJI",
        client_key="avalancheFuji",
        display_name="Avalanche Fuji",
        explorer_url="https://testnet.snowtrace.io",
        usdc_address="0x5425890298aed601595a70AB815c96711a31Bc65",
        token_messenger=_TOKEN_MESSENGER,
        message_transmitter=_MESSAGE_TRANSMITTER,
    ),
    ChainId.BASE_SEPOLIA: ChainConfig(
        chain_id=ChainId.BASE_SEPOLIA,
        domain=6,
        provider_name="BASE-SEPOLIA",
        client_key="baseSepolia",
        display_name="Base Sepolia",
        explorer_url="https://sepolia.basescan.org",
        usdc_address="0x036CbD53842c5426634e7929541eC2318f3dCF7e",
        token_messenger=_TOKEN_MESSENGER,
        message_transmitter=_MESSAGE_TRANSMITTER,
    ),
    ChainId.ARC_TESTNET: ChainConfig(
        chain_id=ChainId.ARC_TESTNET,
        domain=26,
        provider_name="ARC-TESTNET",
        client_key="arcTestnet",
        display_name="Arc Testnet",
        explorer_url="https://testnet.arcscan.app",
        usdc_address="0x3600000000000000000000000000000000000000",
        token_messenger=_TOKEN_MESSENGER,
        message_transmitter=_MESSAGE_TRANSMITTER,
    ),
}

_BY_PROVIDER_NAME = {config.provider_name: config for config in CHAINS.values()}
_BY_CLIENT_KEY = {config.client_key: config for config in CHAINS.values()}
_BY_DOMAIN = {config.domain: config for config in CHAINS.values()}


def get_chain(chain_id: Union[int, ChainId]) -> ChainConfig:
    """Return static config for a chain id."""
    try:
        return CHAINS[ChainId(int(chain_id))]
    except (ValueError, KeyError) as exc:
        raise ValidationError("Unsupported chain", field="chain", value=chain_id) from exc


def from_provider_name(name: Optional[str]) -> ChainId:
    """Convert a provider blockchain name (``ARC-TESTNET`` or ``ARC_TESTNET``)."""
    normalised = (name or "").strip().upper().replace("_", "-")
    config = _BY_PROVIDER_NAME.get(normalised)
    if config is None:
        raise ValidationError("Unknown provider blockchain", field="blockchain", value=name)
    return config.chain_id


def to_provider_name(chain_id: Union[int, ChainId]) -> str:
    return get_chain(chain_id).provider_name


def from_client_key(key: Optional[str]) -> ChainId:
    """Convert a client chain key such as ``baseSepolia``."""
    config = _BY_CLIENT_KEY.get(key or "")
    if config is None:
        raise ValidationError(
            f"Invalid chain. Must be one of: {', '.join(sorted(_BY_CLIENT_KEY))}",
            field="chain",
            value=key,
        )
    return config.chain_id


def to_client_key(chain_id: Union[int, ChainId]) -> str:
    return get_chain(chain_id).client_key


def domain_of(chain_id: Union[int, ChainId]) -> int:
    return get_chain(chain_id).domain


def from_domain(domain: int) -> ChainId:
    config = _BY_DOMAIN.get(domain)
    if config is None:
        raise ValidationError("Unknown bridge domain", field="domain", value=domain)
    return config.chain_id


def display_name(chain_id: Union[int, str]) -> str:
    """Human-readable network name; falls back to ``Chain <id>``."""
    try:
        return get_chain(int(chain_id)).display_name
    except (ValueError, ValidationError):
        return f"Chain {chain_id}"


def explorer_url(
    chain_id: Union[int, str],
    tx_hash: Optional[str] = None,
    address: Optional[str] = None,
) -> Optional[str]:
    """Explorer link for a transaction or address, or the explorer root."""
    try:
        base_url = get_chain(int(chain_id)).explorer_url
    except (ValueError, ValidationError):
        return None
    if tx_hash:
        return f"{base_url}/tx/{tx_hash}"
    if address:
        return f"{base_url}/address/{address}"
    return base_url


def address_to_bytes32(address: str) -> str:
    """Left-pad a 20-byte hex address to a 0x-prefixed bytes32."""
    body = address.lower().removeprefix("0x")
    if len(body) != 40:
        raise ValidationError("Invalid address", field="address", value=address)
    return "0x" + body.rjust(64, "0")


def to_atomic(amount: Union[str, int, Decimal]) -> int:
    """Convert a human USDC amount to integer atomic units (6 decimals)."""
    if isinstance(amount, Decimal):
        quantity = amount
    else:
        try:
            quantity = Decimal(str(amount).strip())
        except (ValueError, InvalidOperation) as exc:
            raise ValidationError(
                "Invalid USDC amount", field="amount", value=amount, details={"error": str(exc)}
            ) from exc

    if not quantity.is_finite() or quantity <= 0:
        raise ValidationError("Amount must be positive", field="amount", value=str(amount))

    scaled = quantity * USDC_SCALING
    integral = scaled.to_integral_value(rounding=ROUND_DOWN)
    if integral != scaled:
        logger.warning("Truncating USDC amount %s to 6 decimals", amount)
    if integral <= 0:
        raise ValidationError("Amount must be positive", field="amount", value=str(amount))
    return int(integral)


def from_atomic(units: int) -> Decimal:
    """Convert atomic units back to a 6-decimal ``Decimal``."""
    return (Decimal(units) / USDC_SCALING).quantize(Decimal(1) / USDC_SCALING)
