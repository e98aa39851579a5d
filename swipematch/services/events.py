"""Fire-and-forget event dispatch for notification collaborators."""

import asyncio
from typing import Awaitable, Callable, List, Set

import sentry_sdk

from swipematch.models.conversation import Event
from swipematch.utils.logging import get_logger, log_error

logger = get_logger(__name__)

EventHandler = Callable[[Event], Awaitable[None]]


class EventDispatcher:
    """
    Publishes `MutualLike` and `MessageSent` events to registered handlers.

    Handlers run as background tasks. A failing handler is logged and
    reported, never propagated to the operation that published the event.
    """

    def __init__(self) -> None:
        self._handlers: List[EventHandler] = []
        self._pending: Set[asyncio.Task[None]] = set()

    def subscribe(self, handler: EventHandler) -> Callable[[], None]:
        """
        Register a handler.

        Args:
            handler (EventHandler): Coroutine function receiving each event.

        Returns:
            Callable[[], None]: Function that removes the handler again.
        """
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def publish(self, event: Event) -> None:
        """Schedule delivery of an event to every handler without waiting for it."""
        logger.debug("Event published", event_type=event.type.value, recipients=event.recipients)
        for handler in list(self._handlers):
            task = asyncio.get_running_loop().create_task(self._deliver(handler, event))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _deliver(self, handler: EventHandler, event: Event) -> None:
        try:
            await handler(event)
        except Exception as e:
            sentry_sdk.capture_exception(e)
            log_error(logger, e, "Event handler failed", extra={"event_type": event.type.value})

    async def drain(self) -> None:
        """Wait for all in-flight deliveries. Used on shutdown and in tests."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
