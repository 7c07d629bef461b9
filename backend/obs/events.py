"""
Event dispatch for obs-websocket Event (op 5) messages.

Handlers are registered per eventType and called in registration order with
the event's ``eventData``.
"""

import asyncio
import inspect
from collections.abc import Callable
from typing import Any

from logger_config import get_logger

from .protocol import EventType

logger = get_logger("events")

EventHandler = Callable[[dict[str, Any]], Any]


class EventDispatcher:
    """Routes events to subscribers by event type."""

    def __init__(self):
        self._handlers: dict[str, list[EventHandler]] = {}
        self._tasks: set[asyncio.Task] = set()
        # Dedicated slot for recording lifecycle, outside the registry
        self.on_record_state_changed: EventHandler | None = None

    def on(self, event_type: str):
        """Decorator to register a handler for an event type."""

        def decorator(handler: EventHandler):
            self.subscribe(event_type, handler)
            return handler

        return decorator

    def subscribe(self, event_type: str, handler: EventHandler):
        self._handlers.setdefault(event_type, []).append(handler)
        logger.debug(f"Subscribed {getattr(handler, '__name__', handler)} to {event_type}")

    def unsubscribe(self, event_type: str, handler: EventHandler):
        handlers = self._handlers.get(event_type)
        if not handlers:
            return
        try:
            handlers.remove(handler)
        except ValueError:
            return
        if not handlers:
            del self._handlers[event_type]

    def handler_count(self, event_type: str) -> int:
        return len(self._handlers.get(event_type, ()))

    def clear(self):
        self._handlers.clear()

    def dispatch(self, event_type: str, event_data: dict[str, Any] | None = None):
        """Deliver one event. Handler failures are logged, never propagated."""
        event_data = event_data or {}
        logger.debug(f"Event {event_type}", extra={"event_type": event_type})

        if event_type == EventType.RECORD_STATE_CHANGED and self.on_record_state_changed:
            self._invoke(self.on_record_state_changed, event_type, event_data)

        # Copy so a handler can unsubscribe itself mid-dispatch
        for handler in list(self._handlers.get(event_type, ())):
            self._invoke(handler, event_type, event_data)

    def _invoke(self, handler: EventHandler, event_type: str, event_data: dict[str, Any]):
        try:
            result = handler(event_data)
        except Exception as e:
            logger.exception(f"Handler {getattr(handler, '__name__', handler)} failed on {event_type}: {e}")
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Async event handler failed: {error!r}")
