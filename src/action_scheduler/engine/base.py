"""
ActionStore Abstract Base Class

Defines the interface shared by every action storage backend:
- SQLiteActionStore: the current backend
- LegacyActionStore: the backend being migrated away from
- HybridActionStore: routes between the two while migration runs

Implementations hold no shared state through this class; the hybrid store
composes two other implementations rather than extending one.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from .models import Action, ActionClaim, ActionQuery, ActionStatus

QueryResult = Union[List[int], int]


class ActionStore(ABC):
    """
    Abstract base class for action stores.

    Lookups (`fetch_action`, `find_action`) never raise for a missing action.
    Per-ID mutators and readers raise ActionNotFoundError instead.
    """

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    @abstractmethod
    def save_action(self, action: Action, date: Optional[datetime] = None) -> int:
        """
        Store a new action and return its ID.

        Args:
            action: The action to store. Finished actions are stored as complete.
            date: Overrides the schedule's due time.
        """
        ...

    @abstractmethod
    def fetch_action(self, action_id: int) -> Action:
        """Return the action, or a NullAction when the ID is unknown."""
        ...

    @abstractmethod
    def update_action(self, action_id: int, fields: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    def delete_action(self, action_id: int) -> None:
        ...

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @abstractmethod
    def find_action(self, hook: str, params: Optional[Dict[str, Any]] = None) -> Optional[int]:
        """
        Return the ID of the single best match for `hook`.

        Params:
            args: exact argument match
            status: defaults to pending
            group: group slug

        Pending matches resolve to the earliest due action; other statuses
        resolve to the most recently attempted one.
        """
        ...

    @abstractmethod
    def query_actions(
        self,
        query: Optional[Union[ActionQuery, Dict[str, Any]]] = None,
        query_type: str = "select",
    ) -> QueryResult:
        """Return matching IDs (`select`) or their number (`count`)."""
        ...

    @abstractmethod
    def action_counts(self) -> Dict[str, int]:
        """Count of actions per recognised status."""
        ...

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    @abstractmethod
    def cancel_action(self, action_id: int) -> None:
        ...

    @abstractmethod
    def mark_failure(self, action_id: int) -> None:
        ...

    @abstractmethod
    def mark_complete(self, action_id: int) -> None:
        ...

    @abstractmethod
    def log_execution(self, action_id: int) -> None:
        """Record an execution attempt and move the action to running."""
        ...

    @abstractmethod
    def get_status(self, action_id: int) -> ActionStatus:
        ...

    # ------------------------------------------------------------------
    # Dates
    # ------------------------------------------------------------------

    @abstractmethod
    def get_date(self, action_id: int) -> Optional[datetime]:
        """Scheduled time while pending, else last attempt, in local time."""
        ...

    @abstractmethod
    def get_date_gmt(self, action_id: int) -> Optional[datetime]:
        ...

    @abstractmethod
    def get_last_attempt(self, action_id: int) -> Optional[datetime]:
        ...

    @abstractmethod
    def get_last_attempt_local(self, action_id: int) -> Optional[datetime]:
        ...

    # ------------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------------

    @abstractmethod
    def stake_claim(self, max_actions: int = 10, before_date: Optional[datetime] = None) -> ActionClaim:
        """
        Reserve up to `max_actions` due, pending, unclaimed actions.

        Concurrent callers always receive disjoint sets of actions.
        """
        ...

    @abstractmethod
    def get_claim_count(self) -> int:
        ...

    @abstractmethod
    def get_claim_id(self, action_id: int) -> int:
        ...

    @abstractmethod
    def find_actions_by_claim_id(self, claim_id: int) -> List[int]:
        ...

    @abstractmethod
    def release_claim(self, claim: ActionClaim) -> None:
        ...

    @abstractmethod
    def unclaim_action(self, action_id: int) -> None:
        ...
