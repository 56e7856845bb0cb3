from .adapter import EVMAdapter, SEND_RAW_TRANSACTION
from .constants import EvmChainParams, get_chain_params, list_chain_ids
from .schemas import (
    EVMTransactionRequest,
    EVMSignedTransaction,
    ChainConfig,
    parse_quantity,
)
from .nonces import NonceAllocator, NonceMode
from .signatures import TransactionSigner, build_transaction

__all__ = [
    "EVMAdapter",
    "SEND_RAW_TRANSACTION",
    "EvmChainParams",
    "get_chain_params",
    "list_chain_ids",
    "EVMTransactionRequest",
    "EVMSignedTransaction",
    "ChainConfig",
    "parse_quantity",
    "NonceAllocator",
    "NonceMode",
    "TransactionSigner",
    "build_transaction",
]
