"""
Client module for outbound calls to ledger nodes.

Provides the JSON-RPC client used for sequence lookups and transaction
submission.
"""

from .http_client import NodeRpcClient, next_request_id, DEFAULT_RPC_TIMEOUT

__all__ = ["NodeRpcClient", "next_request_id", "DEFAULT_RPC_TIMEOUT"]
