"""
Action Store Event System

Announces store mutations to the rest of the scheduler.

Usage:
    from action_scheduler.events import ActionEventType, get_publisher

    get_publisher().subscribe(ActionEventType.CANCELED, lambda event: ...)
"""

from .taxonomy import (
    ActionEventType,
    validate_event_type,
    get_domain,
    ALL_EVENT_TYPES,
)

from .models import ActionEvent

from .publisher import (
    EventPublisher,
    get_publisher,
    reset_publisher,
    publish_action_event,
)


__all__ = [
    # Taxonomy
    "ActionEventType",
    "validate_event_type",
    "get_domain",
    "ALL_EVENT_TYPES",
    # Models
    "ActionEvent",
    # Publisher
    "EventPublisher",
    "get_publisher",
    "reset_publisher",
    "publish_action_event",
]
