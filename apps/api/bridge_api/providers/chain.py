"""Read-only chain access (native balances)."""

import logging
from typing import Optional

from web3 import HTTPProvider, Web3

from bridge_api.chains import ChainId, get_chain
from bridge_api.exceptions import TransportError
from bridge_api.settings import Settings, get_settings

logger = logging.getLogger(__name__)


class ChainReader:
    """Native balance reads over JSON-RPC, one lazily-built client per chain."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._clients: dict[ChainId, Web3] = {}

    def _web3(self, chain_id: int) -> Web3:
        config = get_chain(chain_id)
        client = self._clients.get(config.chain_id)
        if client is None:
            provider = HTTPProvider(
                self.settings.rpc_url_for(config.chain_id),
                request_kwargs={"timeout": self.settings.request_timeout_seconds},
            )
            client = Web3(provider)
            self._clients[config.chain_id] = client
        return client

    def native_balance(self, chain_id: int, address: str) -> int:
        """Native token balance in wei."""
        web3 = self._web3(chain_id)
        try:
            return int(web3.eth.get_balance(Web3.to_checksum_address(address)))
        except (OSError, ValueError) as exc:
            logger.warning(f"Balance read failed for {address} on chain {chain_id}: {exc}")
            raise TransportError(f"Balance read failed: {exc}", endpoint=f"eth_getBalance {chain_id}") from exc
