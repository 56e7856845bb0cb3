"""
Event chain execution engine.

Provides workflow orchestration on top of EventBus, processing events
recursively until a terminal event is reached.
"""

import logging
from typing import AsyncGenerator, Optional, Tuple, Type

from .events import BaseEvent, EventBus, Dependencies, RelayFailedEvent, RelaySucceededEvent

logger = logging.getLogger(__name__)

TERMINAL_EVENTS: Tuple[Type[BaseEvent], ...] = (RelaySucceededEvent, RelayFailedEvent)


class EventChain:
    """Executes event-driven workflows by chaining event handler results.

    The chain runs inline in the caller's task: cancelling the caller cancels
    whichever handler is currently awaited.
    """

    def __init__(
        self,
        event_bus: EventBus,
        deps: Dependencies,
    ) -> None:
        """
        Initialize event chain executor.

        Args:
            event_bus: The event bus to dispatch events through.
            deps: Dependencies container to pass to handlers.
        """
        self.event_bus = event_bus
        self.deps = deps

    async def execute(self, initial_event: BaseEvent) -> AsyncGenerator[BaseEvent, None]:
        """
        Execute event chain starting from initial event.

        Yields:
            Every event produced by handlers, in chain order.
        """
        async for event in self._process_event(initial_event):
            yield event

    async def run(self, initial_event: BaseEvent) -> Optional[BaseEvent]:
        """
        Execute the chain to completion and return its first terminal event.

        Hooks registered on the terminal event run before this returns.

        Returns:
            The first ``RelaySucceededEvent`` or ``RelayFailedEvent``, or None
            if the chain ended without one.
        """
        outcome: Optional[BaseEvent] = None
        async for event in self.execute(initial_event):
            if outcome is None and isinstance(event, TERMINAL_EVENTS):
                outcome = event
        return outcome

    async def _process_event(self, event: BaseEvent) -> AsyncGenerator[BaseEvent, None]:
        """
        Process single event and recursively handle results.

        Args:
            event: The event to process.

        Yields:
            Events from the chain.
        """
        logger.debug("Dispatching %r", event)
        async for result in self.event_bus.dispatch(event, self.deps):
            if result is None:
                continue
            if isinstance(result, BaseEvent):
                yield result
                async for e in self._process_event(result):
                    yield e
            else:
                raise TypeError(f"Handler returned unsupported type: {type(result).__name__}")
