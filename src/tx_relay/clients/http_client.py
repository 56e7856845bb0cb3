"""
JSON-RPC Node Client

Provides an httpx-based client for the JSON-RPC calls the gateway itself makes
against ledger nodes (sequence lookup and raw transaction submission).
"""

import itertools
import logging
from typing import Any, List, Optional

import httpx

from ..engine.exceptions import UpstreamError
from ..schemas.versions import JsonRpcVersion

logger = logging.getLogger(__name__)

# Request ids are unique for the life of the process, shared by all clients.
_request_ids = itertools.count(1)

_MAX_UPSTREAM_MESSAGE = 200

#: Default per-call timeout for outbound node requests, in seconds.
DEFAULT_RPC_TIMEOUT: float = 10.0


def next_request_id() -> int:
    """Return a fresh outbound JSON-RPC request id."""
    return next(_request_ids)


class NodeRpcClient(httpx.AsyncClient):
    """
    Extended httpx.AsyncClient that speaks JSON-RPC 2.0 to ledger nodes.

    Every call is a single POST with a bounded timeout; nothing is retried.
    Any non-success outcome is raised as ``UpstreamError``. Cancelling the
    awaiting task cancels the in-flight HTTP request.

    Fully compatible with httpx.AsyncClient - supports all methods, properties,
    and can be used as an async context manager.

    Usage:
        ```python
        async with NodeRpcClient(timeout=5.0) as client:
            count = await client.call(url, "eth_getTransactionCount", [address, "pending"])
        ```
    """

    def __init__(self, timeout: float = DEFAULT_RPC_TIMEOUT, **kwargs):
        """
        Initialize client.

        Args:
            timeout: Per-call timeout in seconds (default: 10).
            **kwargs: All standard httpx.AsyncClient arguments (transport, headers, etc.)
        """
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        headers.update(kwargs.pop("headers", None) or {})
        super().__init__(timeout=timeout, headers=headers, **kwargs)

    async def call(self, url: str, method: str, params: Optional[List[Any]] = None) -> Any:
        """
        Issue one JSON-RPC call and return its ``result``.

        Args:
            url: Node endpoint.
            method: JSON-RPC method name.
            params: Positional parameters.

        Returns:
            The ``result`` member of the node's reply.

        Raises:
            UpstreamError: On timeout, transport failure, non-JSON reply,
                node-reported error, or a reply without ``result``.
        """
        body = {
            "jsonrpc": JsonRpcVersion.Version2_0.value,
            "id": next_request_id(),
            "method": method,
            "params": params or [],
        }

        try:
            response = await self.post(url, json=body)
        except httpx.TimeoutException as e:
            logger.warning("Node call %s timed out", method)
            raise UpstreamError("Upstream request timed out", rpc_method=method) from e
        except httpx.HTTPError as e:
            logger.warning("Node call %s failed: %s", method, type(e).__name__)
            raise UpstreamError("Upstream request failed", rpc_method=method) from e

        try:
            data = response.json()
        except ValueError as e:
            logger.warning("Node call %s returned non-JSON body (HTTP %s)", method, response.status_code)
            raise UpstreamError("Malformed upstream response", rpc_method=method) from e

        if not isinstance(data, dict):
            raise UpstreamError("Malformed upstream response", rpc_method=method)

        error = data.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else None
            message = str(message or "unknown error")[:_MAX_UPSTREAM_MESSAGE]
            logger.warning("Node rejected %s: %s", method, message)
            raise UpstreamError(f"Upstream error: {message}", rpc_method=method, rejected=True)

        if response.is_error:
            logger.warning("Node call %s returned HTTP %s", method, response.status_code)
            raise UpstreamError(f"Upstream HTTP error {response.status_code}", rpc_method=method)

        if "result" not in data:
            raise UpstreamError("Malformed upstream response", rpc_method=method)

        return data["result"]
