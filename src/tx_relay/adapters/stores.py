"""
Key-value store implementations for nonce bookkeeping.
"""

import copy
from typing import Any, Dict, Optional

from .bases import KeyValueStore


class InMemoryKeyValueStore(KeyValueStore):
    """
    Process-local store.

    Values are deep-copied on the way in and out so callers never share
    mutable state with the store, mirroring a store that serializes values.
    """

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._data: Dict[str, Any] = copy.deepcopy(initial) if initial else {}

    async def get(self, key: str) -> Optional[Any]:
        return copy.deepcopy(self._data.get(key))

    async def put(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)
