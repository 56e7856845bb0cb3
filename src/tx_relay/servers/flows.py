"""
Built-in event handlers for the transaction relay workflow.

Implements the request pipeline: envelope → credentials → chain → method
dispatch → policy → nonce → signing → broadcast. Every handler either returns
the next stage event or a ``RelayFailedEvent``; the first failure ends the chain.
"""

import logging
import re
from typing import Any, Awaitable, Callable, Dict, Optional

from pydantic import ValidationError

from ..engine.events import (
    EventBus,
    Dependencies,
    RequestReceivedEvent,
    EnvelopeParsedEvent,
    AuthenticatedEvent,
    NetworkResolvedEvent,
    PolicyApprovedEvent,
    NonceAssignedEvent,
    SignedEvent,
    RelaySucceededEvent,
    RelayFailedEvent,
)
from ..adapters.evm.schemas import EVMTransactionRequest
from ..schemas.bases import RelayStage
from ..schemas.rpc import ErrorObject, JsonRpcRequest, parse_envelope
from ..engine.exceptions import (
    RelayError,
    ChainUnsupportedError,
    InvalidParamsError,
    MethodNotFoundError,
    UpstreamError,
)
from .policy import enforce_policy
from .security import authenticate

logger = logging.getLogger(__name__)

_CHAIN_ID_RE = re.compile(r"^[0-9]+$")


def _failed(error: RelayError, request_id: Optional[int], stage: RelayStage) -> RelayFailedEvent:
    return RelayFailedEvent(
        request_id=request_id,
        error=ErrorObject(code=error.code, message=error.message),
        failed_stage=stage,
    )


def parse_chain_id(raw: Optional[str]) -> int:
    """
    Parse the chain id path segment.

    Raises:
        ChainUnsupportedError: If the segment is missing or not a positive decimal integer.
    """
    if not raw or not _CHAIN_ID_RE.match(raw) or int(raw) == 0:
        raise ChainUnsupportedError("Chain id required")
    return int(raw)


def parse_send_transaction_params(params: Any) -> EVMTransactionRequest:
    """
    Validate ``eth_sendTransaction`` params: a one-element list holding the transaction object.

    Raises:
        InvalidParamsError: On any shape or field violation. Details are logged only.
    """
    if not isinstance(params, list) or len(params) != 1 or not isinstance(params[0], dict):
        raise InvalidParamsError()
    try:
        return EVMTransactionRequest.model_validate(params[0])
    except ValidationError as e:
        logger.debug("Invalid eth_sendTransaction params: %s", e.errors(include_input=False))
        raise InvalidParamsError() from None


# ==================== Method Handlers ====================

async def eth_chain_id(event: NetworkResolvedEvent, deps: Dependencies) -> RelaySucceededEvent:
    return RelaySucceededEvent(request_id=event.request.id, result=event.chain.chain_id)


async def eth_accounts(event: NetworkResolvedEvent, deps: Dependencies) -> RelaySucceededEvent:
    return RelaySucceededEvent(request_id=event.request.id, result=[deps.signer.address])


async def eth_send_transaction(event: NetworkResolvedEvent, deps: Dependencies) -> PolicyApprovedEvent:
    transaction = parse_send_transaction_params(event.request.params)
    enforce_policy(transaction, deps.config.policy)
    return PolicyApprovedEvent(
        request_id=event.request.id,
        chain=event.chain,
        transaction=transaction,
    )


METHOD_HANDLERS: Dict[str, Callable[[NetworkResolvedEvent, Dependencies], Awaitable[Any]]] = {
    "eth_chainId": eth_chain_id,
    "eth_accounts": eth_accounts,
    "eth_sendTransaction": eth_send_transaction,
}


# ==================== Event Handlers ====================

async def handle_request_received(
    event: RequestReceivedEvent,
    deps: Dependencies
) -> EnvelopeParsedEvent | RelayFailedEvent:
    """Parse the JSON-RPC envelope before anything else, so later errors can echo its id."""
    try:
        request = parse_envelope(event.body)
    except RelayError as e:
        return _failed(e, None, event.stage)

    return EnvelopeParsedEvent(
        request=request,
        api_key=event.api_key,
        api_secret=event.api_secret,
        chain_id=event.chain_id,
    )


async def handle_envelope_parsed(
    event: EnvelopeParsedEvent,
    deps: Dependencies
) -> AuthenticatedEvent | RelayFailedEvent:
    """Check the API key and secret."""
    try:
        authenticate(event.api_key, event.api_secret, deps.config.api_secrets)
    except RelayError as e:
        return _failed(e, event.request.id, event.stage)

    return AuthenticatedEvent(request=event.request, chain_id=event.chain_id)


async def handle_authenticated(
    event: AuthenticatedEvent,
    deps: Dependencies
) -> NetworkResolvedEvent | RelayFailedEvent:
    """Resolve the chain id path segment to a configured network."""
    try:
        chain = deps.registry.resolve(parse_chain_id(event.chain_id))
    except RelayError as e:
        return _failed(e, event.request.id, event.stage)

    return NetworkResolvedEvent(request=event.request, chain=chain)


async def handle_network_resolved(
    event: NetworkResolvedEvent,
    deps: Dependencies
) -> RelaySucceededEvent | PolicyApprovedEvent | RelayFailedEvent:
    """Dispatch on the JSON-RPC method."""
    request: JsonRpcRequest = event.request
    method_handler = METHOD_HANDLERS.get(request.method)
    try:
        if method_handler is None:
            raise MethodNotFoundError()
        return await method_handler(event, deps)
    except RelayError as e:
        return _failed(e, request.id, event.stage)


async def handle_policy_approved(
    event: PolicyApprovedEvent,
    deps: Dependencies
) -> NonceAssignedEvent | RelayFailedEvent:
    """Reserve the sequence number for the signing identity on this chain."""
    try:
        nonce = await deps.nonce_allocator.get_nonce(
            deps.signer.address, event.chain.chain_id, event.chain.rpc_url
        )
    except RelayError as e:
        return _failed(e, event.request_id, event.stage)

    return NonceAssignedEvent(
        request_id=event.request_id,
        chain=event.chain,
        transaction=event.transaction,
        nonce=nonce,
    )


async def handle_nonce_assigned(
    event: NonceAssignedEvent,
    deps: Dependencies
) -> SignedEvent:
    """Build and sign the type-2 transaction."""
    try:
        tx = deps.signer.build(event.transaction, event.nonce, event.chain.chain_id)
        signed = deps.signer.sign(tx)
    except Exception:
        # nothing was broadcast, the reservation can be returned
        await deps.nonce_allocator.release(deps.signer.address, event.chain.chain_id, event.nonce)
        raise

    return SignedEvent(request_id=event.request_id, chain=event.chain, signed=signed)


async def handle_signed(
    event: SignedEvent,
    deps: Dependencies
) -> RelaySucceededEvent | RelayFailedEvent:
    """Broadcast once. The nonce is returned only when the node definitely rejected the transaction.

    Every other outcome, cancellation included, settles the reservation.
    """
    address, chain_id, nonce = deps.signer.address, event.chain.chain_id, event.signed.nonce
    try:
        tx_hash = await deps.adapter.send(event.signed, event.chain.rpc_url)
    except UpstreamError as e:
        if e.rejected:
            await deps.nonce_allocator.release(address, chain_id, nonce)
        else:
            deps.nonce_allocator.settle(address, chain_id, nonce)
        return _failed(e, event.request_id, RelayStage.BROADCAST)
    except BaseException:
        deps.nonce_allocator.settle(address, chain_id, nonce)
        raise

    deps.nonce_allocator.settle(address, chain_id, nonce)

    return RelaySucceededEvent(request_id=event.request_id, result=tx_hash)


# ==================== Outcome Hooks ====================

async def log_relay_succeeded(event: RelaySucceededEvent, deps: Dependencies) -> None:
    logger.debug("Request %s succeeded", event.request_id)


async def log_relay_failed(event: RelayFailedEvent, deps: Dependencies) -> None:
    logger.warning(
        "Request %s failed at %s: %s %s",
        event.request_id,
        event.failed_stage.value if event.failed_stage else "unknown",
        event.error.code,
        event.error.message,
    )


# ==================== Event Bus Setup ====================

def setup_event_bus() -> EventBus:
    """Initialize event bus with built-in handlers and outcome logging hooks."""
    event_bus = EventBus()

    event_bus.subscribe(RequestReceivedEvent, handle_request_received)
    event_bus.subscribe(EnvelopeParsedEvent, handle_envelope_parsed)
    event_bus.subscribe(AuthenticatedEvent, handle_authenticated)
    event_bus.subscribe(NetworkResolvedEvent, handle_network_resolved)
    event_bus.subscribe(PolicyApprovedEvent, handle_policy_approved)
    event_bus.subscribe(NonceAssignedEvent, handle_nonce_assigned)
    event_bus.subscribe(SignedEvent, handle_signed)

    event_bus.hook(RelaySucceededEvent, log_relay_succeeded)
    event_bus.hook(RelayFailedEvent, log_relay_failed)

    return event_bus
