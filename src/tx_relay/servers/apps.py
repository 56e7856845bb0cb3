"""
Transaction Relay Server - Event-driven FastAPI wrapper.

Exposes the relay pipeline as a JSON-RPC endpoint:

    POST /{api_key}/{chain_id}      Authorization: Bearer <secret>
    GET  /health

Every JSON-RPC reply is sent with HTTP 200; success or failure is carried in
the envelope.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, Optional

from fastapi import FastAPI, Header, Request
from fastapi.responses import JSONResponse, Response

from ..adapters.bases import AdapterFactory, KeyValueStore
from ..adapters.registry import ChainRegistry
from ..adapters.stores import InMemoryKeyValueStore
from ..adapters.evm.adapter import EVMAdapter, SEND_RAW_TRANSACTION
from ..adapters.evm.nonces import NonceAllocator
from ..adapters.evm.signatures import TransactionSigner
from ..clients.http_client import NodeRpcClient
from ..config import GatewayConfig
from ..engine.events import (
    EventBus,
    Dependencies,
    BaseEvent,
    RequestReceivedEvent,
    RelayFailedEvent,
    RelaySucceededEvent,
)
from ..engine.exceptions import InternalError, ProtocolError
from ..engine.executors import EventChain
from ..schemas.rpc import ErrorObject, format_response, parse_envelope
from .flows import setup_event_bus
from .security import parse_bearer

logger = logging.getLogger(__name__)

#: Seconds between client-disconnect checks while a request is in flight.
DISCONNECT_POLL_INTERVAL: float = 0.2

#: Status sent when the caller went away before the pipeline finished.
CLIENT_CLOSED_REQUEST: int = 499

#: Open nonce reservations expire after this many node-call timeouts.
RESERVATION_TIMEOUT_FACTOR: int = 3


class RelayServer(FastAPI):
    """FastAPI server relaying signed transactions for authenticated callers."""

    def __init__(
        self,
        config: GatewayConfig,
        store: Optional[KeyValueStore] = None,
        client: Optional[NodeRpcClient] = None,
        adapter: Optional[AdapterFactory] = None,
        broadcast_method: str = SEND_RAW_TRANSACTION,
        **fastapi_kwargs
    ):
        """Initialize the relay server.

        Args:
            config: Validated gateway configuration
            store: Key-value store holding the nonce map (default: in-memory)
            client: Node JSON-RPC client (default: new client with ``config.rpc_timeout``)
            adapter: Node adapter (default: ``EVMAdapter`` over ``client``)
            broadcast_method: JSON-RPC method used for submission
            **fastapi_kwargs: FastAPI arguments (title, version, etc.)
        """
        self.config = config
        self._owns_client = client is None
        self.client = client or NodeRpcClient(timeout=config.rpc_timeout)
        self.adapter = adapter or EVMAdapter(self.client, broadcast_method=broadcast_method)
        self.signer = TransactionSigner(config.private_key)
        self.registry = ChainRegistry(config.chain_rpc_map)
        self.nonce_allocator = NonceAllocator(
            store or InMemoryKeyValueStore(),
            self.adapter,
            mode=config.nonce_mode,
            reservation_timeout=RESERVATION_TIMEOUT_FACTOR * config.rpc_timeout,
        )
        self.depends = Dependencies(
            config=config,
            registry=self.registry,
            signer=self.signer,
            nonce_allocator=self.nonce_allocator,
            adapter=self.adapter,
        )
        self.event_bus: EventBus = setup_event_bus()

        super().__init__(lifespan=self._lifespan, **fastapi_kwargs)

        self._setup_relay_endpoint()
        self._setup_health_endpoint()
        logger.info(
            "Relay server ready: signer %s, chains %s, nonce mode %s",
            self.signer.address,
            self.registry.supported_chain_ids(),
            config.nonce_mode.value,
        )

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        yield
        if self._owns_client:
            await self.client.aclose()

    def subscribe(self, event_class: type[BaseEvent], handler: Callable) -> None:
        """Register event handler.

        Args:
            event_class: Event type to handle
            handler: Async function(event, deps) -> Optional[BaseEvent]
        """
        self.event_bus.subscribe(event_class, handler)

    def add_hook(self, event_class: type[BaseEvent], hook: Callable) -> None:
        """Register event hook for side effects.

        Args:
            event_class: Event type to hook into
            hook: Async function(event, deps) -> None
        """
        self.event_bus.hook(event_class, hook)

    def hook(self, event_class: type[BaseEvent]) -> Callable:
        """Decorator for registering event hooks.

        Example:
            @app.hook(RelaySucceededEvent)
            async def on_relayed(event, deps):
                await record_metric(event)
        """
        def decorator(hook_func: Callable) -> Callable:
            self.event_bus.hook(event_class, hook_func)
            return hook_func
        return decorator

    async def process(self, event: RequestReceivedEvent) -> Dict[str, Any]:
        """Run the pipeline for one request and return the JSON-RPC reply body.

        Unexpected exceptions are logged and reported as ``-32603 Internal error``.
        """
        event_chain = EventChain(self.event_bus, self.depends)
        try:
            outcome = await event_chain.run(event)
        except Exception:
            logger.exception("Unhandled error while relaying request")
            outcome = None

        if isinstance(outcome, RelaySucceededEvent):
            return format_response(request_id=outcome.request_id, result=outcome.result)
        if isinstance(outcome, RelayFailedEvent):
            return format_response(request_id=outcome.request_id, error=outcome.error)

        internal = InternalError()
        return format_response(
            request_id=_request_id_of(event.body),
            error=ErrorObject(code=internal.code, message=internal.message),
        )

    async def _process_until_disconnect(self, event: RequestReceivedEvent, request: Request) -> Optional[Dict[str, Any]]:
        """Race the pipeline against the client connection. Returns None if the client left first."""
        pipeline = asyncio.ensure_future(self.process(event))
        watcher = asyncio.ensure_future(_wait_for_disconnect(request))
        try:
            done, _ = await asyncio.wait({pipeline, watcher}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            pending = [task for task in (pipeline, watcher) if not task.done()]
            for task in pending:
                task.cancel()
            # cancelled handlers finish their cleanup before the reply is sent
            await asyncio.gather(*pending, return_exceptions=True)

        if pipeline in done:
            return pipeline.result()
        logger.info("Client disconnected, relay for chain %s cancelled", event.chain_id)
        return None

    def _setup_relay_endpoint(self) -> None:
        """Setup the JSON-RPC relay endpoint."""
        @self.post("/{api_key}/{chain_id}")
        async def relay(
            api_key: str,
            chain_id: str,
            request: Request,
            authorization: Optional[str] = Header(None),
        ):
            """Relay a JSON-RPC request on the given chain."""
            body = await request.body()
            event = RequestReceivedEvent(
                body=body,
                api_key=api_key,
                api_secret=parse_bearer(authorization),
                chain_id=chain_id,
            )
            content = await self._process_until_disconnect(event, request)
            if content is None:
                return Response(status_code=CLIENT_CLOSED_REQUEST)
            return JSONResponse(status_code=200, content=content)

    def _setup_health_endpoint(self, path: str = "/health") -> None:
        """Setup the unauthenticated liveness endpoint. Reports public data only."""
        @self.get(path)
        async def health():
            return JSONResponse(
                status_code=200,
                content={
                    "status": "ok",
                    "chains": self.registry.supported_chain_ids(),
                    "address": self.signer.address,
                },
            )


async def _wait_for_disconnect(request: Request) -> None:
    while not await request.is_disconnected():
        await asyncio.sleep(DISCONNECT_POLL_INTERVAL)


def _request_id_of(body: bytes) -> Optional[int]:
    try:
        return parse_envelope(body).id
    except ProtocolError:
        return None
