"""Native gas preflight for the signer that will execute a mint."""

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GasCheck:
    has_gas: bool
    address: str
    balance: int


class GasPreflight:
    """Best-effort check that a wallet can pay for gas on a chain.

    Balances can change before execution, so the provider's gas error on
    the actual call stays authoritative.
    """

    def __init__(self, provider, chain_reader):
        self.provider = provider
        self.chain_reader = chain_reader

    def check_gas(self, wallet_id: str, chain_id: int) -> GasCheck:
        address = self.provider.get_wallet(wallet_id)["address"]
        balance = self.chain_reader.native_balance(chain_id, address)
        logger.debug(f"Native balance of {address} on chain {chain_id}: {balance}")
        return GasCheck(has_gas=balance > 0, address=address, balance=balance)
