from .bases import CanonicalModel, RelayStage, BaseSignedTransaction
from .rpc import JsonRpcRequest, ErrorObject, JsonRpcSuccess, JsonRpcFailure, parse_envelope, format_response
from .versions import JsonRpcVersion

__all__ = [
    "CanonicalModel",
    "RelayStage",
    "BaseSignedTransaction",
    "JsonRpcRequest",
    "ErrorObject",
    "JsonRpcSuccess",
    "JsonRpcFailure",
    "parse_envelope",
    "format_response",
    "JsonRpcVersion",
]
