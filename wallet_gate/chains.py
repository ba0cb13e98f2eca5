"""
Read-only blockchain access.

One Web3 client per configured chain id, built once at startup and passed to
the services that need it.
"""

import logging
from typing import Dict, Iterable, Mapping

from web3 import Web3

from wallet_gate.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

ERC20_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "_owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "balance", "type": "uint256"}],
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [],
        "name": "name",
        "outputs": [{"name": "", "type": "string"}],
        "type": "function",
    },
]


class UnknownChain(UpstreamUnavailable):
    default_message = "Chain is not configured."


class ChainRegistry:
    """Maps chain ids to Web3 clients."""

    def __init__(self, clients: Mapping[int, Web3]):
        self._clients: Dict[int, Web3] = dict(clients)

    @classmethod
    def from_urls(cls, urls: Mapping[int, str], timeout: int = 10) -> "ChainRegistry":
        """
        Build HTTP clients for every ``chain_id -> RPC URL`` entry.

        Args:
            urls: Chain id to JSON-RPC endpoint
            timeout: Per-request timeout in seconds
        """
        clients = {
            chain_id: Web3(Web3.HTTPProvider(url, request_kwargs={"timeout": timeout}))
            for chain_id, url in urls.items()
        }
        logger.info(f"Chain registry initialized: chains={sorted(clients)}")
        return cls(clients)

    @property
    def chain_ids(self) -> Iterable[int]:
        return sorted(self._clients)

    def client(self, chain_id: int) -> Web3:
        try:
            return self._clients[int(chain_id)]
        except KeyError:
            raise UnknownChain(f"Chain {chain_id} is not configured.") from None

    def _contract(self, chain_id: int, token_address: str):
        w3 = self.client(chain_id)
        return w3.eth.contract(address=Web3.to_checksum_address(token_address), abi=ERC20_ABI)

    def balance_of(self, chain_id: int, token_address: str, owner: str) -> int:
        """
        Read ``balanceOf(owner)`` on an ERC-20/ERC-721 contract.

        Raises:
            UpstreamUnavailable: On unknown chain, RPC error or timeout
        """
        contract = self._contract(chain_id, token_address)
        try:
            return int(contract.functions.balanceOf(Web3.to_checksum_address(owner)).call())
        except Exception as e:
            logger.warning(f"balanceOf failed on chain {chain_id} for {token_address}: {e}")
            raise UpstreamUnavailable() from e

    def token_name(self, chain_id: int, token_address: str) -> str:
        contract = self._contract(chain_id, token_address)
        try:
            return str(contract.functions.name().call())
        except Exception as e:
            logger.warning(f"name() failed on chain {chain_id} for {token_address}: {e}")
            raise UpstreamUnavailable() from e

    def is_connected(self, chain_id: int) -> bool:
        try:
            return bool(self.client(chain_id).is_connected())
        except Exception as e:
            logger.info(f"Chain {chain_id} health check failed: {e}")
            return False
