"""
Hybrid action store.

Serves the ActionStore interface while actions move from the legacy store
into the current one:

- IDs below the demarkation boundary were issued by the legacy store, IDs at
  or above it by the primary store. The boundary is fixed at construction.
- Lookups that can return legacy rows pull them forward: matching legacy
  actions are migrated first and the answer comes from the primary store.
- Writes of new actions and all claim bookkeeping happen in the primary store.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, TypeVar, Union

from ..errors import ActionNotFoundError
from .base import ActionStore, QueryResult
from .migration import MigrationGateway
from .models import Action, ActionClaim, ActionQuery, ActionStatus, coerce_query, sum_counts
from .query import validate_query_type

logger = logging.getLogger(__name__)

T = TypeVar("T")


class HybridActionStore(ActionStore):
    """
    Routes each call to the primary or secondary store by action ID.

    Args:
        primary: The store new actions are written to.
        secondary: The legacy store being drained.
        migrator: Moves actions from secondary to primary.
        demarkation_id: First action ID owned by the primary store.
    """

    def __init__(
        self,
        primary: ActionStore,
        secondary: ActionStore,
        migrator: MigrationGateway,
        demarkation_id: int,
    ):
        self.primary = primary
        self.secondary = secondary
        self.migrator = migrator
        self._demarkation_id = int(demarkation_id)

    @property
    def demarkation_id(self) -> int:
        return self._demarkation_id

    def action_in_primary_store(self, action_id: int) -> bool:
        return int(action_id) >= self._demarkation_id

    def _route(self, action_id: int, call: Callable[[ActionStore], T]) -> T:
        if self.action_in_primary_store(action_id):
            return call(self.primary)
        try:
            return call(self.secondary)
        except ActionNotFoundError:
            # Legacy-range ID that has already been migrated
            logger.debug("Action %s not in secondary store; trying primary", action_id)
            return call(self.primary)

    def _migrate(self, action_ids: List[int]) -> None:
        if action_ids:
            self.migrator.migrate(action_ids)

    # Persistence

    def save_action(self, action: Action, date: Optional[datetime] = None) -> int:
        return self.primary.save_action(action, date)

    def fetch_action(self, action_id: int) -> Action:
        if self.action_in_primary_store(action_id):
            return self.primary.fetch_action(action_id)
        action = self.secondary.fetch_action(action_id)
        if action.is_null():
            return self.primary.fetch_action(action_id)
        return action

    def update_action(self, action_id: int, fields: Dict[str, Any]) -> None:
        if not self.action_in_primary_store(action_id):
            self._migrate([int(action_id)])
        self.primary.update_action(action_id, fields)

    def delete_action(self, action_id: int) -> None:
        self._route(action_id, lambda store: store.delete_action(action_id))

    # Queries

    def find_action(self, hook: str, params: Optional[Dict[str, Any]] = None) -> Optional[int]:
        found = self.secondary.find_action(hook, params)
        if found is not None:
            self._migrate([found])
        return self.primary.find_action(hook, params)

    def query_actions(
        self,
        query: Optional[Union[ActionQuery, Dict[str, Any]]] = None,
        query_type: str = "select",
    ) -> QueryResult:
        validate_query_type(query_type)
        query = coerce_query(query)
        if query_type == "count":
            return self.secondary.query_actions(query, "count") + self.primary.query_actions(query, "count")

        self._migrate(self.secondary.query_actions(query, "select"))
        return self.primary.query_actions(query, "select")

    def action_counts(self) -> Dict[str, int]:
        return sum_counts(self.secondary.action_counts(), self.primary.action_counts())

    # Status transitions

    def cancel_action(self, action_id: int) -> None:
        self._route(action_id, lambda store: store.cancel_action(action_id))

    def mark_failure(self, action_id: int) -> None:
        self._route(action_id, lambda store: store.mark_failure(action_id))

    def mark_complete(self, action_id: int) -> None:
        self._route(action_id, lambda store: store.mark_complete(action_id))

    def log_execution(self, action_id: int) -> None:
        self._route(action_id, lambda store: store.log_execution(action_id))

    def get_status(self, action_id: int) -> ActionStatus:
        return self._route(action_id, lambda store: store.get_status(action_id))

    # Dates

    def get_date(self, action_id: int) -> Optional[datetime]:
        return self._route(action_id, lambda store: store.get_date(action_id))

    def get_date_gmt(self, action_id: int) -> Optional[datetime]:
        return self._route(action_id, lambda store: store.get_date_gmt(action_id))

    def get_last_attempt(self, action_id: int) -> Optional[datetime]:
        return self._route(action_id, lambda store: store.get_last_attempt(action_id))

    def get_last_attempt_local(self, action_id: int) -> Optional[datetime]:
        return self._route(action_id, lambda store: store.get_last_attempt_local(action_id))

    # Claims

    def stake_claim(self, max_actions: int = 10, before_date: Optional[datetime] = None) -> ActionClaim:
        """
        Migrate due legacy actions, then claim from the primary store.

        The secondary claim only serves to pick which legacy actions to move.
        The returned claim is staked independently on the primary store, so it
        is not guaranteed to contain the actions that were just migrated.
        """
        claim = self.secondary.stake_claim(max_actions, before_date)
        try:
            self._migrate(list(claim.action_ids))
        finally:
            self.secondary.release_claim(claim)
        return self.primary.stake_claim(max_actions, before_date)

    def get_claim_count(self) -> int:
        return self.primary.get_claim_count()

    def get_claim_id(self, action_id: int) -> int:
        # Unknown IDs report 0 instead of raising, so check where the row lives
        if self.action_in_primary_store(action_id) or self.secondary.fetch_action(action_id).is_null():
            return self.primary.get_claim_id(action_id)
        return self.secondary.get_claim_id(action_id)

    def find_actions_by_claim_id(self, claim_id: int) -> List[int]:
        return self.primary.find_actions_by_claim_id(claim_id)

    def release_claim(self, claim: ActionClaim) -> None:
        self.primary.release_claim(claim)

    def unclaim_action(self, action_id: int) -> None:
        self.primary.unclaim_action(action_id)
