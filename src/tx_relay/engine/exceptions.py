"""
Exception and Error Definitions Module

Defines the exception hierarchy for the relay pipeline. Every exception carries
the JSON-RPC error ``code`` and the public ``message`` that may be returned to
the caller, so a component can raise at its seam and the pipeline can turn the
exception into an error response without inspecting its type.

Exception Hierarchy:
    RelayError (root)
    ├── ProtocolError            -32700
    ├── MethodNotFoundError      -32601
    ├── InvalidParamsError       -32602
    ├── InternalError            -32603
    ├── AuthenticationError      -32000
    ├── ConfigurationError       -32000
    ├── PolicyViolationError     -32000
    ├── ChainUnsupportedError    -32000
    └── UpstreamError            -32000
"""

from typing import Optional


PARSE_ERROR = -32700
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
SERVER_ERROR = -32000


class RelayError(Exception):
    """
    Root exception class for all project-specific exceptions.

    Attributes:
        code: JSON-RPC error code reported to the caller.
        message: Public error message. Must never contain secrets.
    """
    code: int = SERVER_ERROR
    default_message: str = "Server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ProtocolError(RelayError):
    """
    Raised when the request body is not a well-formed JSON-RPC envelope.

    This includes scenarios such as:
    - Body is not valid JSON
    - ``jsonrpc`` is not ``"2.0"``
    - ``id`` or ``method`` missing or of the wrong type
    """
    code = PARSE_ERROR
    default_message = "Parse error"


class MethodNotFoundError(RelayError):
    """Raised when the requested method is not in the handler table."""
    code = METHOD_NOT_FOUND
    default_message = "Method not found"


class InvalidParamsError(RelayError):
    """
    Raised when method parameters fail schema validation.

    The public message is fixed; validation details are logged, not returned.
    """
    code = INVALID_PARAMS
    default_message = "Invalid params"


class InternalError(RelayError):
    """Raised for unanticipated failures. Carries no internal detail."""
    code = INTERNAL_ERROR
    default_message = "Internal error"


class AuthenticationError(RelayError):
    """
    Raised when authentication fails or credentials are invalid.

    This includes scenarios such as:
    - Missing API key path segment or Authorization header
    - Unknown API key
    - Secret mismatch
    """
    default_message = "Invalid API key and/or secret"


class ConfigurationError(RelayError):
    """
    Raised when configuration is missing or invalid.

    This includes scenarios such as:
    - Missing signing key or chain endpoint map
    - Malformed JSON in a configuration variable
    - Unknown nonce mode
    """
    default_message = "Server error"


class PolicyViolationError(RelayError):
    """
    Raised when a transaction request violates the gateway policy.

    This includes scenarios such as:
    - Destination address is not whitelisted
    - ``maxFeePerGas`` exceeds the configured ceiling
    """
    default_message = "Policy violation"


class ChainUnsupportedError(RelayError):
    """
    Raised when the requested chain id cannot be resolved.

    This includes scenarios such as:
    - Chain id missing or not a positive integer
    - No RPC endpoint configured for the chain
    - Chain not present in the built-in parameter table
    """
    default_message = "Chain id not supported"


class UpstreamError(RelayError):
    """
    Raised when a call to the ledger node fails.

    This includes scenarios such as:
    - RPC call timeout
    - Network connectivity issues
    - Malformed node response
    - Transaction rejected by the node (nonce too low, underpriced, ...)

    Attributes:
        rpc_method: JSON-RPC method that was called (e.g., 'eth_sendRawTransaction')
        rejected: True when the node answered with an error, i.e. the call
            definitely did not take effect. False for timeouts and transport
            failures, where the outcome is unknown.
    """
    default_message = "Upstream request failed"

    def __init__(
        self,
        message: Optional[str] = None,
        rpc_method: Optional[str] = None,
        rejected: bool = False,
    ):
        super().__init__(message)
        self.rpc_method = rpc_method
        self.rejected = rejected
