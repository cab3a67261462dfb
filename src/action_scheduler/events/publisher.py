"""
Event Publisher

Delivers action notifications to in-process subscribers.

Publishing is fire-and-forget: a failing subscriber is logged and skipped,
and never fails the store mutation that triggered it.
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Union

from ..observability.metrics import record_counter
from .models import ActionEvent
from .taxonomy import ActionEventType, validate_event_type

logger = logging.getLogger(__name__)

EventHandler = Callable[[ActionEvent], None]

WILDCARD = "*"


class EventPublisher:
    """
    Routes events to handlers registered per event type.

    Usage:
        publisher = EventPublisher()
        publisher.subscribe(ActionEventType.STORED, on_stored)
        publisher.publish(ActionEvent.create(action_id=42, event_type="action.stored"))

    Handlers subscribed to "*" receive every event.
    """

    def __init__(self):
        self._handlers: Dict[str, List[EventHandler]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_type: Union[ActionEventType, str], handler: EventHandler) -> None:
        key = event_type.value if isinstance(event_type, ActionEventType) else event_type
        with self._lock:
            self._handlers.setdefault(key, []).append(handler)

    def unsubscribe(self, event_type: Union[ActionEventType, str], handler: EventHandler) -> None:
        key = event_type.value if isinstance(event_type, ActionEventType) else event_type
        with self._lock:
            handlers = self._handlers.get(key, [])
            if handler in handlers:
                handlers.remove(handler)

    def publish(self, event: ActionEvent) -> int:
        """
        Deliver an event to its subscribers.

        Returns the number of handlers that completed without raising.
        """
        if not validate_event_type(event.event_type):
            logger.warning(f"Unknown event type: {event.event_type} - publishing anyway")

        with self._lock:
            handlers = list(self._handlers.get(event.event_type, []))
            handlers += self._handlers.get(WILDCARD, [])

        delivered = 0
        for handler in handlers:
            try:
                handler(event)
                delivered += 1
            except Exception:
                logger.exception("Event handler failed for %s (action %s)", event.event_type, event.action_id)

        record_counter("action_events_published_total", 1, {"event_type": event.event_type})
        return delivered


# Global instance management
_publisher: Optional[EventPublisher] = None


def get_publisher() -> EventPublisher:
    """Get the global event publisher."""
    global _publisher
    if _publisher is None:
        _publisher = EventPublisher()
    return _publisher


def reset_publisher() -> None:
    """Drop the global publisher and all its subscriptions."""
    global _publisher
    _publisher = None


def publish_action_event(
    action_id: int,
    event_type: Union[ActionEventType, str],
    event_data: Optional[Dict[str, Any]] = None,
    *,
    publisher: Optional[EventPublisher] = None,
    source: str = "action_store",
) -> None:
    """Build and publish an ActionEvent without letting any failure escape."""
    key = event_type.value if isinstance(event_type, ActionEventType) else event_type
    try:
        event = ActionEvent.create(action_id=action_id, event_type=key, event_data=event_data, source=source)
        (publisher or get_publisher()).publish(event)
    except Exception:
        logger.exception("Failed to emit action event: %s", key)
