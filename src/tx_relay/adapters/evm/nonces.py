"""
Nonce allocation for the gateway's signing identity.

- Reads a persisted ``{chain_id: next_nonce}`` map from the key-value store
- Falls back to the node's pending transaction count
- ``serialized`` mode serializes allocation per (address, chain) with an
  asyncio lock and writes the next value back before releasing it
- ``advisory`` mode reads without locking and never writes back
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple

from web3 import Web3

from ..bases import AdapterFactory, KeyValueStore
from .constants import NONCE_MAP_KEY

logger = logging.getLogger(__name__)

#: Seconds after which an open reservation is treated as abandoned.
DEFAULT_RESERVATION_TIMEOUT: float = 30.0


class NonceMode(str, Enum):
    """
    Consistency mode of the allocator.

    Attributes:
        SERIALIZED: One allocation at a time per (address, chain); reserved
            values are written back, so concurrent requests get distinct nonces.
        ADVISORY: Unsynchronized read-then-use; concurrent requests may get
            the same nonce and the node's duplicate rejection is the backstop.
    """
    SERIALIZED = "serialized"
    ADVISORY = "advisory"


class NonceAllocator:
    """
    Resolves the next nonce for (signing address, chain).

    In ``serialized`` mode every ``get_nonce`` opens a reservation that the
    caller must close with ``release`` (nothing was sent) or ``settle`` (the
    transaction was sent, or its fate is unknown). While no reservation is
    open, a stored counter ahead of the node's pending count is treated as
    stale and reset to the pending count, so a lost broadcast never leaves a
    permanent gap. A reservation still open after ``reservation_timeout``
    seconds is treated as abandoned (its pipeline was cancelled before it
    could be closed).

    The stored map is keyed by chain only, as a single signing identity owns
    it. After a key rotation the new identity has nothing in flight, so an
    inherited counter is reset by the same rule.

    Example:
        allocator = NonceAllocator(store, adapter)
        nonce = await allocator.get_nonce(signer.address, chain.chain_id, chain.rpc_url)
        try:
            await adapter.send(signed, chain.rpc_url)
        except UpstreamError as e:
            if e.rejected:
                await allocator.release(signer.address, chain.chain_id, nonce)
            raise
        finally:
            allocator.settle(signer.address, chain.chain_id, nonce)
    """

    def __init__(
        self,
        store: KeyValueStore,
        adapter: AdapterFactory,
        mode: NonceMode = NonceMode.SERIALIZED,
        reservation_timeout: float = DEFAULT_RESERVATION_TIMEOUT,
    ) -> None:
        self._store = store
        self._adapter = adapter
        self.mode = NonceMode(mode)
        self.reservation_timeout = reservation_timeout
        self._locks: Dict[Tuple[str, int], asyncio.Lock] = {}
        self._in_flight: Dict[Tuple[str, int], Dict[int, float]] = {}
        # guards read-modify-write of the shared nonce map across chains
        self._map_lock = asyncio.Lock()

    @staticmethod
    def _key(address: str, chain_id: int) -> Tuple[str, int]:
        return Web3.to_checksum_address(address), chain_id

    def _lock_for(self, key: Tuple[str, int]) -> asyncio.Lock:
        return self._locks.setdefault(key, asyncio.Lock())

    def in_flight(self, address: str, chain_id: int) -> FrozenSet[int]:
        """Nonces reserved and not yet released or settled."""
        return frozenset(self._in_flight.get(self._key(address, chain_id), ()))

    def _open_reservations(self, key: Tuple[str, int]) -> Dict[int, float]:
        reserved = self._in_flight.get(key, {})
        deadline = time.monotonic() - self.reservation_timeout
        for nonce in [n for n, reserved_at in reserved.items() if reserved_at < deadline]:
            logger.warning("Dropping abandoned reservation of nonce %s on chain %s", nonce, key[1])
            del reserved[nonce]
        if not reserved:
            self._in_flight.pop(key, None)
        return reserved

    async def _read_map(self) -> Dict[str, Any]:
        nonce_map = await self._store.get(NONCE_MAP_KEY)
        if nonce_map is None:
            return {}
        if not isinstance(nonce_map, dict):
            logger.warning("Ignoring malformed stored nonce map of type %s", type(nonce_map).__name__)
            return {}
        return nonce_map

    async def _read_stored(self, chain_id: int) -> int:
        raw = (await self._read_map()).get(str(chain_id))
        if raw is None:
            return 0
        try:
            return int(raw)
        except (TypeError, ValueError):
            logger.warning("Ignoring malformed stored nonce for chain %s", chain_id)
            return 0

    async def _write_stored(self, chain_id: int, value: int) -> None:
        async with self._map_lock:
            nonce_map = dict(await self._read_map())
            nonce_map[str(chain_id)] = value
            await self._store.put(NONCE_MAP_KEY, nonce_map)

    async def get_nonce(self, address: str, chain_id: int, rpc_url: str) -> int:
        """
        Resolve the nonce for the next transaction.

        Args:
            address: Signing address.
            chain_id: Target chain.
            rpc_url: Node endpoint used for the on-chain fallback.

        Returns:
            int: Nonce to sign with.

        Raises:
            UpstreamError: If the on-chain lookup is needed and fails.
        """
        if self.mode is NonceMode.ADVISORY:
            stored = await self._read_stored(chain_id)
            if stored:
                return stored
            return await self._adapter.get_transaction_count(address, rpc_url)

        key = self._key(address, chain_id)
        async with self._lock_for(key):
            stored = await self._read_stored(chain_id)
            onchain = await self._adapter.get_transaction_count(address, rpc_url)
            if stored > onchain and not self._open_reservations(key):
                logger.warning(
                    "Stored nonce %s on chain %s is ahead of pending count %s with nothing in flight, resetting",
                    stored, chain_id, onchain,
                )
                stored = onchain
            nonce = max(stored, onchain)
            await self._write_stored(chain_id, nonce + 1)
            self._in_flight.setdefault(key, {})[nonce] = time.monotonic()
            logger.debug(
                "Reserved nonce %s on chain %s (stored=%s, onchain=%s)", nonce, chain_id, stored, onchain
            )
            return nonce

    def settle(self, address: str, chain_id: int, nonce: int) -> None:
        """
        Close a reservation without touching the stored counter.

        Called once the transaction has been handed to the node, or when the
        outcome is unknown. Settling an unknown nonce is a no-op.
        """
        key = self._key(address, chain_id)
        reserved = self._in_flight.get(key)
        if reserved is None:
            return
        reserved.pop(nonce, None)
        if not reserved:
            del self._in_flight[key]

    async def release(self, address: str, chain_id: int, nonce: int) -> Optional[int]:
        """
        Return an unused nonce after a failed broadcast.

        Closes the reservation. The stored counter is rolled back only when
        nothing was reserved after ``nonce``; otherwise it is left alone.

        Args:
            address: Signing address.
            chain_id: Target chain.
            nonce: Value previously returned by ``get_nonce``.

        Returns:
            The restored counter value, or None if nothing was changed.
        """
        if self.mode is NonceMode.ADVISORY:
            return None

        key = self._key(address, chain_id)
        async with self._lock_for(key):
            self.settle(address, chain_id, nonce)
            stored = await self._read_stored(chain_id)
            if stored != nonce + 1:
                return None
            await self._write_stored(chain_id, nonce)
            logger.info("Released nonce %s on chain %s", nonce, chain_id)
            return nonce
