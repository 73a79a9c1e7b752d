"""Signer resolution for Gateway transfers."""

from dataclasses import dataclass
from typing import Optional

from bridge_api.models import Wallet
from bridge_api.registry import WalletRegistry


@dataclass(frozen=True)
class GatewaySigners:
    """Accounts taking part in one Gateway transfer.

    ``depositor`` holds the Gateway balance, ``burn_signer`` signs the burn
    intent and ``minter`` executes the mint on the destination chain.
    """

    depositor: Wallet
    burn_signer: Wallet
    minter: Wallet
    recipient: str
    external_recipient: bool


class SignerResolver:
    def __init__(self, registry: WalletRegistry):
        self.registry = registry

    def resolve(
        self,
        owner_id: str,
        source_chain: int,
        destination_chain: int,
        recipient: Optional[str] = None,
    ) -> GatewaySigners:
        depositor = self.registry.custodial_wallet(owner_id)
        burn_signer = self.registry.gateway_signer(owner_id, source_chain)

        external = bool(recipient) and recipient.lower() != depositor.address.lower()
        if external:
            minter = self.registry.gateway_signer(owner_id, destination_chain)
        else:
            minter = depositor

        return GatewaySigners(
            depositor=depositor,
            burn_signer=burn_signer,
            minter=minter,
            recipient=recipient if external else depositor.address,
            external_recipient=external,
        )
