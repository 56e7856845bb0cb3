"""
JSON-RPC Envelope Schema Models for the tx-relay gateway

This module defines the Pydantic models used for the JSON-RPC 2.0 envelope
exchanged between the caller and the gateway, and the formatter that shapes
pipeline outcomes back into that envelope.

The request flow consists of:
1. Caller POSTs a JSON-RPC request to ``/{api_key}/{chain_id}``
2. The envelope is parsed and validated (``parse_envelope``)
3. The pipeline produces either a result or an ``ErrorObject``
4. ``format_response`` builds the reply envelope

All models inherit from CanonicalModel for automatic validation and serialization.
"""

import json
from typing import Optional, Any, Dict

from pydantic import ConfigDict, Field, StrictInt, StrictStr, ValidationError

from ..engine.exceptions import ProtocolError
from .bases import CanonicalModel
from .versions import JsonRpcVersion


# ============================================================================
# Inbound Envelope
# ============================================================================

class JsonRpcRequest(CanonicalModel):
    """JSON-RPC 2.0 request envelope sent by the caller.

    Attributes:
        jsonrpc: Protocol version tag, must be "2.0".
        id: Numeric request id echoed in the reply.
        method: Name of the method to invoke.
        params: Method parameters, validated later by the method handler.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    jsonrpc: JsonRpcVersion = Field(..., description="Protocol version")
    id: StrictInt = Field(..., description="Request id")
    method: StrictStr = Field(..., description="Method name")
    params: Any = Field(default=None, description="Method parameters")


def parse_envelope(body: bytes) -> JsonRpcRequest:
    """
    Parse and validate a raw request body into a JSON-RPC envelope.

    Args:
        body: Raw HTTP request body.

    Returns:
        JsonRpcRequest: The validated envelope.

    Raises:
        ProtocolError: If the body is not JSON or does not match the envelope shape.
    """
    try:
        payload = json.loads(body)
    except ValueError:
        raise ProtocolError()

    try:
        return JsonRpcRequest.model_validate(payload)
    except ValidationError:
        raise ProtocolError()


# ============================================================================
# Outbound Envelope
# ============================================================================

class ErrorObject(CanonicalModel):
    """Externally visible error shape.

    Attributes:
        code: JSON-RPC error code.
        message: Public error message.
    """
    code: int = Field(..., description="JSON-RPC error code")
    message: str = Field(..., description="Error message")


class JsonRpcSuccess(CanonicalModel):
    """Successful JSON-RPC reply."""
    jsonrpc: str = Field(default=JsonRpcVersion.Version2_0.value)
    result: Any = Field(..., description="Method result")
    id: int = Field(..., description="Echoed request id")


class JsonRpcFailure(CanonicalModel):
    """Failed JSON-RPC reply. ``id`` is null when the request id is unknown."""
    jsonrpc: str = Field(default=JsonRpcVersion.Version2_0.value)
    error: ErrorObject = Field(..., description="Error details")
    id: Optional[int] = Field(default=None, description="Echoed request id")


def format_response(
    *,
    request_id: Optional[int],
    result: Any = None,
    error: Optional[ErrorObject] = None,
) -> Dict[str, Any]:
    """
    Shape a pipeline outcome into a JSON-RPC reply body.

    Exactly one of ``result`` / ``error`` ends up in the reply: when ``error``
    is given the result is ignored.

    Args:
        request_id: Request id if the envelope was parsed, else None.
        result: Method result on success.
        error: Error object on failure.

    Returns:
        Dict[str, Any]: JSON-serializable reply body.
    """
    if error is not None:
        return JsonRpcFailure(error=error, id=request_id).model_dump(mode="json")
    return JsonRpcSuccess(result=result, id=request_id).model_dump(mode="json")
