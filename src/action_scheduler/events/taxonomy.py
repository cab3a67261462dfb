"""
Action Store Event Taxonomy

Event naming convention: {domain}.{action}
- domain: action
- action: past tense verb (stored, canceled, deleted, migrated)
"""

from enum import Enum
from typing import Dict


class ActionEventType(str, Enum):
    """Notifications announced after a store mutation commits."""
    STORED = "action.stored"
    CANCELED = "action.canceled"
    DELETED = "action.deleted"
    MIGRATED = "action.migrated"


ALL_EVENT_TYPES: Dict[str, str] = {e.value: e.name for e in ActionEventType}


def validate_event_type(event_type: str) -> bool:
    """Check if an event type is in the taxonomy."""
    return event_type in ALL_EVENT_TYPES


def get_domain(event_type: str) -> str:
    """Extract domain from event type."""
    return event_type.split(".")[0] if "." in event_type else "unknown"
