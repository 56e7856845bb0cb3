"""
Chain Registry

Resolves a chain id to the endpoint and parameters needed to relay a
transaction on it.
"""

import logging
from types import MappingProxyType
from typing import List, Mapping

from .evm.constants import get_chain_params
from .evm.schemas import ChainConfig
from ..engine.exceptions import ChainUnsupportedError

logger = logging.getLogger(__name__)


class ChainRegistry:
    """
    Read-only lookup of chain id → ChainConfig.

    A chain resolves only when both the configured endpoint map and the
    built-in chain-parameter table know it. The registry is built once at
    startup and never mutated.
    """

    def __init__(self, rpc_urls: Mapping[int, str]):
        """
        Args:
            rpc_urls: Chain id → JSON-RPC endpoint URL.
        """
        self._rpc_urls: Mapping[int, str] = MappingProxyType(dict(rpc_urls))

        unknown = [chain_id for chain_id in self._rpc_urls if get_chain_params(chain_id) is None]
        if unknown:
            logger.warning("Ignoring endpoints for chains without parameters: %s", unknown)

    def resolve(self, chain_id: int) -> ChainConfig:
        """
        Resolve a chain id.

        Args:
            chain_id: EIP-155 chain id.

        Returns:
            ChainConfig: Endpoint and static parameters.

        Raises:
            ChainUnsupportedError: If either the endpoint or the parameters are missing.
        """
        rpc_url = self._rpc_urls.get(chain_id)
        params = get_chain_params(chain_id)
        if not rpc_url or params is None:
            raise ChainUnsupportedError("Chain id not supported")
        return ChainConfig(chain_id=chain_id, rpc_url=rpc_url, params=params)

    def supported_chain_ids(self) -> List[int]:
        """Chain ids that resolve successfully, sorted."""
        return sorted(
            chain_id for chain_id, url in self._rpc_urls.items()
            if url and get_chain_params(chain_id) is not None
        )
