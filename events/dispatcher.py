"""
Event Dispatcher.

============================================================
PURPOSE
============================================================
Decouple "a state transition happened" from what should happen
as a result (notifications, statistics, cache invalidation).

PRINCIPLES:
- Publish after commit: subscribers always see the new state
- Fire-and-forget: publish never raises
- Per-subscriber isolation: one failing subscriber does not
  affect the others or the publisher
- No persistence, no retry

============================================================
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Type


logger = logging.getLogger(__name__)


# Type for event subscribers
EventHandler = Callable[[Any], None]


class EventDispatcher:
    """In-process synchronous publish/subscribe, keyed by event class."""

    def __init__(self):
        self._handlers: Dict[Type, List[EventHandler]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_type: Type, handler: EventHandler) -> None:
        """Register handler for every event of exactly event_type."""
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)

    def unsubscribe(self, event_type: Type, handler: EventHandler) -> bool:
        """Remove a handler. Returns whether it was registered."""
        with self._lock:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)
                return True
        return False

    def handlers_for(self, event_type: Type) -> List[EventHandler]:
        with self._lock:
            return list(self._handlers.get(event_type, []))

    def publish(self, event: Any) -> int:
        """
        Deliver event to every subscriber of its type.

        Returns:
            Number of subscribers that handled the event without raising
        """
        event_name = type(event).__name__
        handlers = self.handlers_for(type(event))

        if not handlers:
            logger.debug(f"No subscribers for {event_name}")
            return 0

        delivered = 0
        for handler in handlers:
            try:
                handler(event)
                delivered += 1
            except Exception as e:
                handler_name = getattr(handler, "__name__", repr(handler))
                logger.error(
                    f"Event handler {handler_name} failed for {event_name}: {e}",
                    exc_info=True,
                )

        logger.debug(f"Published {event_name} to {delivered}/{len(handlers)} subscribers")
        return delivered


__all__ = ["EventDispatcher", "EventHandler"]
