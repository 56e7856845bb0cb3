"""
Abstract Base Classes for Blockchain Adapters

Defines the interfaces the relay pipeline depends on. Concrete implementations
live beside this module (``evm.adapter.EVMAdapter``, ``stores.InMemoryKeyValueStore``).

Core Classes:
    - AdapterFactory: Node-facing operations (sequence lookup, broadcast)
    - KeyValueStore: Persisted key-value store used for nonce bookkeeping
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from ..schemas.bases import BaseSignedTransaction


class AdapterFactory(ABC):
    """
    Abstract Base Class for node-facing blockchain adapters.

    Key Responsibilities:
    1. get_transaction_count: Query the on-chain sequence number of an address
    2. send: Submit a signed transaction and return its identifier

    Implementations must not retry submissions: a retry after a partially
    successful call can resubmit under an already consumed sequence number.
    """

    @abstractmethod
    async def get_transaction_count(self, address: str, rpc_url: str) -> int:
        """
        Query the number of transactions sent from ``address`` (pending included).

        Args:
            address: Account address.
            rpc_url: JSON-RPC endpoint of the target chain.

        Returns:
            int: Next on-chain sequence number for the address.

        Raises:
            UpstreamError: If the node call fails or returns a malformed result.
        """
        pass

    @abstractmethod
    async def send(self, signed: BaseSignedTransaction, rpc_url: str) -> str:
        """
        Submit a signed transaction.

        Args:
            signed: Signed transaction produced by the signer.
            rpc_url: JSON-RPC endpoint of the target chain.

        Returns:
            str: Transaction identifier reported by the node.

        Raises:
            UpstreamError: On timeout, transport failure, malformed response,
                or rejection by the node.
        """
        pass


class KeyValueStore(ABC):
    """
    Minimal async key-value store.

    Values are JSON-compatible objects. The store gives no transactional
    guarantees: a ``get`` followed by a ``put`` is not atomic.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the value stored under ``key``, or None."""
        pass

    @abstractmethod
    async def put(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""
        pass
