"""Synchronous event dispatch for browser notifications."""

import asyncio
import inspect
import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

CLIENT_APPEARED = "client_appeared"
CLIENT_DISAPPEARED = "client_disappeared"
CLIENT_MESSAGE_CHANGED = "client_message_changed"
STARTED = "started"
STOPPED = "stopped"
START_FAILED = "start_failed"
BROWSER_FAILED = "browser_failed"

CLIENT_EVENTS = (CLIENT_APPEARED, CLIENT_DISAPPEARED, CLIENT_MESSAGE_CHANGED)
LIFECYCLE_EVENTS = (STARTED, STOPPED, START_FAILED, BROWSER_FAILED)
ALL_EVENTS = CLIENT_EVENTS + LIFECYCLE_EVENTS


class EventEmitter:
    """Multi-subscriber callbacks keyed by event name.

    Handlers run synchronously on the thread that emits. A handler that
    returns an awaitable has it scheduled on the running event loop. Handler
    errors are logged and never reach the emitter.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Callable[..., Any]]] = {e: [] for e in ALL_EVENTS}

    def on(self, event: str, callback: Callable[..., Any]) -> None:
        """Register a callback for ``event``."""
        self._handlers_for(event).append(callback)

    def off(self, event: str, callback: Callable[..., Any]) -> None:
        """Unregister a callback; unknown callbacks are ignored."""
        handlers = self._handlers_for(event)
        if callback in handlers:
            handlers.remove(callback)

    def emit(self, event: str, *args: Any) -> None:
        for cb in list(self._handlers_for(event)):
            try:
                result = cb(*args)
                if inspect.isawaitable(result):
                    self._schedule(event, result)
            except Exception as e:
                logger.error(f"Error in {event} handler {cb!r}: {e}", exc_info=True)

    def _handlers_for(self, event: str) -> list[Callable[..., Any]]:
        try:
            return self._handlers[event]
        except KeyError:
            raise ValueError(f"Unknown browser event: {event!r}") from None

    @staticmethod
    def _schedule(event: str, awaitable) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            logger.warning(f"Dropped async {event} handler: no running event loop")
            return
        future = asyncio.ensure_future(awaitable, loop=loop)
        future.add_done_callback(_log_async_failure)


def _log_async_failure(future: asyncio.Future) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.error(f"Async event handler failed: {exc}", exc_info=exc)
