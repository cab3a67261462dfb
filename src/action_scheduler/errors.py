"""
Action store exceptions.

Every error carries a stable `code` so worker loops and admin tooling can
branch on it without parsing messages.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ActionStoreError(Exception):
    """Base class for all action store errors."""

    code = "action_store_error"

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ActionNotFoundError(ActionStoreError, LookupError):
    """No row matches the requested action ID."""

    code = "action_not_found"

    def __init__(self, action_id: Any, message: Optional[str] = None):
        self.action_id = action_id
        super().__init__(
            message or f"Unidentified action {action_id}",
            details={"action_id": action_id},
        )


class StorageInconsistencyError(ActionStoreError):
    """
    The row exists but holds structurally invalid data (e.g. an empty status).

    Signals a data-integrity problem, not a caller mistake.
    """

    code = "storage_inconsistency"


class StorageError(ActionStoreError):
    """The underlying write itself failed."""

    code = "storage_failure"


class InvalidArgumentError(ActionStoreError, ValueError):
    """Malformed call, such as an unknown query mode."""

    code = "invalid_argument"
