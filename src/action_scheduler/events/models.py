"""
Event Models
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


class ActionEvent(BaseModel):
    """Notification about a single action."""

    id: UUID = Field(default_factory=uuid4)
    action_id: int
    event_type: str
    event_data: Dict[str, Any] = Field(default_factory=dict)
    source: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)

    @classmethod
    def create(
        cls,
        action_id: int,
        event_type: str,
        event_data: Optional[Dict[str, Any]] = None,
        source: str = "action_store",
    ) -> "ActionEvent":
        return cls(
            action_id=action_id,
            event_type=event_type,
            event_data=event_data or {},
            source=source,
        )
