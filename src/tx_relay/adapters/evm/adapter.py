"""
EVM Blockchain Node Adapter

Provides the node-facing EVM operations the relay pipeline needs: sequence
number lookup and raw transaction submission.

Key Features:
    - ``eth_getTransactionCount`` lookup (pending block) for nonce fallback
    - Single-shot ``eth_sendRawTransaction`` broadcast, never retried
    - All failures normalized to ``UpstreamError``

Dependencies:
    - httpx (via NodeRpcClient): For JSON-RPC transport with bounded timeouts
    - web3.py: For address normalization
"""

import logging
import re
from typing import Any

from web3 import Web3

from ..bases import AdapterFactory
from .schemas import EVMSignedTransaction
from ...clients.http_client import NodeRpcClient
from ...engine.exceptions import UpstreamError

logger = logging.getLogger(__name__)

_TX_HASH_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")
_QUANTITY_RE = re.compile(r"^0x[0-9a-fA-F]+$")

#: Public mempool submission method.
SEND_RAW_TRANSACTION: str = "eth_sendRawTransaction"


class EVMAdapter(AdapterFactory):
    """
    EVM node adapter implementation.

    The broadcast method is a constructor parameter so an alternative
    submission channel speaking the same ``[raw_tx] -> tx_hash`` shape can be
    used without a second pipeline.

    Attributes:
        client: Shared JSON-RPC client (owns connection pool and timeout).
        broadcast_method: JSON-RPC method used for submission.

    Example:
        async with NodeRpcClient() as client:
            adapter = EVMAdapter(client)
            count = await adapter.get_transaction_count(address, rpc_url)
            tx_hash = await adapter.send(signed, rpc_url)
    """

    def __init__(self, client: NodeRpcClient, broadcast_method: str = SEND_RAW_TRANSACTION):
        self.client = client
        self.broadcast_method = broadcast_method

    async def get_transaction_count(self, address: str, rpc_url: str) -> int:
        """
        Query the pending transaction count of ``address``.

        Args:
            address: Account address (any case).
            rpc_url: Node endpoint of the target chain.

        Returns:
            int: Next on-chain sequence number.

        Raises:
            UpstreamError: If the call fails or the result is not a hex quantity.
        """
        checksum = Web3.to_checksum_address(address)
        result = await self.client.call(rpc_url, "eth_getTransactionCount", [checksum, "pending"])
        return self._parse_quantity(result, "eth_getTransactionCount")

    async def send(self, signed: EVMSignedTransaction, rpc_url: str) -> str:
        """
        Broadcast a signed transaction exactly once.

        Args:
            signed: Signed transaction from ``TransactionSigner.sign``.
            rpc_url: Node endpoint of the target chain.

        Returns:
            str: Transaction hash reported by the node (0x-prefixed, 32 bytes).

        Raises:
            UpstreamError: On any non-success outcome, including a reply that
                is not a well-formed transaction hash.
        """
        result = await self.client.call(rpc_url, self.broadcast_method, [signed.raw_transaction])

        if not isinstance(result, str) or not _TX_HASH_RE.match(result):
            logger.warning("Node returned malformed transaction hash for chain %s", signed.chain_id)
            raise UpstreamError("Malformed upstream response", rpc_method=self.broadcast_method)

        if result.lower() != signed.tx_hash.lower():
            logger.warning(
                "Node reported hash %s differs from locally computed %s", result, signed.tx_hash
            )

        logger.info(
            "Broadcast tx %s on chain %s (nonce %s)", result, signed.chain_id, signed.nonce
        )
        return result

    @staticmethod
    def _parse_quantity(result: Any, rpc_method: str) -> int:
        if isinstance(result, str) and _QUANTITY_RE.match(result):
            return int(result, 16)
        raise UpstreamError("Malformed upstream response", rpc_method=rpc_method)

