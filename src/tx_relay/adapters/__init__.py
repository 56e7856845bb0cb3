from .bases import AdapterFactory, KeyValueStore
from .registry import ChainRegistry
from .stores import InMemoryKeyValueStore
from .evm import (
    EVMAdapter,
    EVMTransactionRequest,
    EVMSignedTransaction,
    ChainConfig,
    NonceAllocator,
    NonceMode,
    TransactionSigner,
)

__all__ = [
    "AdapterFactory",
    "KeyValueStore",
    "ChainRegistry",
    "InMemoryKeyValueStore",
    "EVMAdapter",
    "EVMTransactionRequest",
    "EVMSignedTransaction",
    "ChainConfig",
    "NonceAllocator",
    "NonceMode",
    "TransactionSigner",
]
