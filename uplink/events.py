"""
Event Bus

Synchronous in-process publish/subscribe hub. The only channel between state
changes in the client core and whatever reacts to them (the renderer).

GUARANTEES:
===========
1. Handlers run synchronously, in subscription order
2. A raising handler is logged and does not stop the others
3. No ordering guarantee across different event names
"""

from __future__ import annotations
from typing import Any, Callable, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]


class EventBus:
    """Named-event dispatcher."""

    def __init__(self):
        self._events: Dict[str, List[Handler]] = {}

    def subscribe(self, event: str, handler: Handler) -> Callable[[], None]:
        """Register `handler`; returns a function that unsubscribes it."""
        self._events.setdefault(event, []).append(handler)
        return lambda: self.unsubscribe(event, handler)

    def subscribe_once(self, event: str, handler: Handler) -> Callable[[], None]:
        """Register `handler` for the next publish of `event` only."""
        def wrapper(payload: Any) -> None:
            self.unsubscribe(event, wrapper)
            handler(payload)

        return self.subscribe(event, wrapper)

    def unsubscribe(self, event: str, handler: Handler) -> None:
        handlers = self._events.get(event)
        if not handlers:
            return
        try:
            handlers.remove(handler)
        except ValueError:
            pass

    def publish(self, event: str, payload: Any = None) -> int:
        """
        Dispatch `payload` to every handler of `event`.

        Returns the number of handlers that completed without raising.
        """
        handlers = self._events.get(event)
        if not handlers:
            return 0
        delivered = 0
        # Snapshot: handlers may (un)subscribe while we dispatch.
        for handler in list(handlers):
            try:
                handler(payload)
            except Exception:
                logger.exception('Error in event handler for "%s"', event)
            else:
                delivered += 1
        return delivered

    def clear(self, event: Optional[str] = None) -> None:
        """Drop handlers for `event`, or for every event."""
        if event is None:
            self._events.clear()
        else:
            self._events.pop(event, None)

    def handler_count(self, event: str) -> int:
        return len(self._events.get(event, ()))
