"""
Event-driven system with typed events and clear data flow.

Events carry their own data, handlers return next events, and dependencies
are injected separately from business data. Each event class is one stage of
the relay pipeline:

    RequestReceived -> EnvelopeParsed -> Authenticated -> NetworkResolved
        -> PolicyApproved -> NonceAssigned -> Signed -> RelaySucceeded

Any stage may instead return ``RelayFailedEvent``; both terminal events end
the chain.
"""

import asyncio
import inspect
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Any, Callable, ClassVar, Optional, Awaitable, AsyncGenerator

from pydantic import BaseModel, ConfigDict, SecretStr

from ..adapters.bases import AdapterFactory
from ..adapters.registry import ChainRegistry
from ..adapters.evm.nonces import NonceAllocator
from ..adapters.evm.schemas import ChainConfig, EVMTransactionRequest, EVMSignedTransaction
from ..adapters.evm.signatures import TransactionSigner
from ..schemas.bases import RelayStage
from ..schemas.rpc import ErrorObject, JsonRpcRequest
from ..config import GatewayConfig

# ==================== Base Event ====================

class BaseEvent(ABC):
    """Base class for all events in the system."""

    stage: ClassVar[RelayStage]

    @abstractmethod
    def __repr__(self) -> str:
        """String representation of the event."""
        pass


# ==================== Trigger Event (External) ====================

class RequestReceivedEvent(BaseModel, BaseEvent):
    """External trigger: raw HTTP request as it reached the gateway."""
    stage: ClassVar[RelayStage] = RelayStage.RECEIVED

    body: bytes
    api_key: Optional[str] = None
    api_secret: Optional[SecretStr] = None
    chain_id: Optional[str] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"RequestReceivedEvent(api_key=***, chain_id={self.chain_id!r}, body_len={len(self.body)})"


# ==================== Stage Events ====================

class EnvelopeParsedEvent(BaseModel, BaseEvent):
    """Stage: body decoded into a JSON-RPC envelope, credentials not yet checked."""
    stage: ClassVar[RelayStage] = RelayStage.ENVELOPE_PARSED

    request: JsonRpcRequest
    api_key: Optional[str] = None
    api_secret: Optional[SecretStr] = None
    chain_id: Optional[str] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"EnvelopeParsedEvent(id={self.request.id}, method={self.request.method})"


class AuthenticatedEvent(BaseModel, BaseEvent):
    """Stage: caller holds a valid API key and secret."""
    stage: ClassVar[RelayStage] = RelayStage.AUTHENTICATED

    request: JsonRpcRequest
    chain_id: Optional[str] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"AuthenticatedEvent(id={self.request.id}, chain_id={self.chain_id!r})"


class NetworkResolvedEvent(BaseModel, BaseEvent):
    """Stage: chain id resolved to endpoint and chain parameters."""
    stage: ClassVar[RelayStage] = RelayStage.NETWORK_RESOLVED

    request: JsonRpcRequest
    chain: ChainConfig

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"NetworkResolvedEvent(id={self.request.id}, chain_id={self.chain.chain_id})"


class PolicyApprovedEvent(BaseModel, BaseEvent):
    """Stage: transaction parameters validated and accepted by policy."""
    stage: ClassVar[RelayStage] = RelayStage.POLICY_APPROVED

    request_id: int
    chain: ChainConfig
    transaction: EVMTransactionRequest

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"PolicyApprovedEvent(id={self.request_id}, to={self.transaction.to})"


class NonceAssignedEvent(BaseModel, BaseEvent):
    """Stage: sequence number reserved for the signing identity."""
    stage: ClassVar[RelayStage] = RelayStage.NONCE_ASSIGNED

    request_id: int
    chain: ChainConfig
    transaction: EVMTransactionRequest
    nonce: int

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"NonceAssignedEvent(id={self.request_id}, nonce={self.nonce})"


class SignedEvent(BaseModel, BaseEvent):
    """Stage: transaction signed, ready for broadcast."""
    stage: ClassVar[RelayStage] = RelayStage.SIGNED

    request_id: int
    chain: ChainConfig
    signed: EVMSignedTransaction

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"SignedEvent(id={self.request_id}, tx_hash={self.signed.tx_hash})"


# ==================== Result Events ====================

class RelaySucceededEvent(BaseModel, BaseEvent):
    """Result: method completed, ``result`` goes into the JSON-RPC reply."""
    stage: ClassVar[RelayStage] = RelayStage.RESPONDED

    request_id: int
    result: Any

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"RelaySucceededEvent(id={self.request_id}, result={self.result!r})"


class RelayFailedEvent(BaseModel, BaseEvent):
    """Result: request rejected at some stage. ``request_id`` is None before parsing."""
    stage: ClassVar[RelayStage] = RelayStage.RESPONDED

    request_id: Optional[int] = None
    error: ErrorObject
    failed_stage: Optional[RelayStage] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"RelayFailedEvent(id={self.request_id}, code={self.error.code}, message={self.error.message!r})"


# ==================== Dependencies Container ====================

@dataclass(frozen=True)
class Dependencies:
    """Container for infrastructure dependencies (read-only)."""
    config: GatewayConfig
    registry: ChainRegistry
    signer: TransactionSigner
    nonce_allocator: NonceAllocator
    adapter: AdapterFactory


# ==================== Event Bus ====================

EventHandlerFunc = Callable[[BaseEvent, Dependencies], Awaitable[Optional[BaseEvent]]]
EventHookFunc = Callable[[BaseEvent, Dependencies], Awaitable[None]]


class EventBus:
    """Event dispatcher for publishing and subscribing to events."""

    def __init__(self) -> None:
        """Initialize with empty subscribers and hooks."""
        self._subscribers: Dict[type, list[EventHandlerFunc]] = {}
        self._hooks: Dict[type, list[EventHookFunc]] = {}

    def subscribe(self, event_class: type[BaseEvent], handler: EventHandlerFunc) -> None:
        """
        Register an async handler for the given event class.
        Multiple handlers can be subscribed to the same event type and run in parallel.

        Args:
            event_class: The event class to subscribe to.
            handler: The async handler function to call when the event is published.

        Raises:
            TypeError: If handler is not a coroutine function.
        """
        if not inspect.iscoroutinefunction(handler):
            raise TypeError(f"Handler must be a coroutine function, got {type(handler).__name__}")

        if event_class not in self._subscribers:
            self._subscribers[event_class] = []
        self._subscribers[event_class].append(handler)

    def hook(self, event_class: type[BaseEvent], hook_func: EventHookFunc) -> None:
        """
        Register a hook for the given event class.
        Hooks are executed before subscribers when the event is dispatched.

        Args:
            event_class: The event class to hook into.
            hook_func: The hook function to call when the event is published.
        """
        if not inspect.iscoroutinefunction(hook_func):
            raise TypeError(f"Handler must be a coroutine function, got {type(hook_func).__name__}")

        if event_class not in self._hooks:
            self._hooks[event_class] = []
        self._hooks[event_class].append(hook_func)

    async def dispatch(self, event: BaseEvent, deps: Dependencies) -> AsyncGenerator[Optional[BaseEvent], None]:
        """
        Dispatch an event to all registered hooks and subscribers.
        Hooks run first (concurrently, awaited together), then all subscribers run in parallel.

        Args:
            event: The event to dispatch.
            deps: Dependencies container with injected services.

        Yields:
            Results from all subscribers as they complete. Yields nothing if no subscribers are registered.
        """
        hooks = self._hooks.get(type(event), [])
        await asyncio.gather(*(hook(event, deps) for hook in hooks))

        handlers = self._subscribers.get(type(event), [])
        if not handlers:
            return

        tasks = [asyncio.ensure_future(handler(event, deps)) for handler in handlers]
        try:
            for coro in asyncio.as_completed(tasks):
                result = await coro
                yield result
        finally:
            # handlers never outlive the dispatch (cancellation or early exit)
            pending = [task for task in tasks if not task.done()]
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
