"""
Moves actions from the legacy store into the current one.

The migrator is the only component that writes to both stores. It copies an
action with its ID intact and then removes the source row, so an action is
never visible under two different IDs.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from ..events import ActionEventType, EventPublisher, publish_action_event
from ..observability.metrics import record_counter
from ..observability.tracing import store_span
from .legacy_store import LegacyActionStore
from .models import unique_ids
from .sqlite_store import SQLiteActionStore

logger = logging.getLogger(__name__)


class MigrationGateway(ABC):
    """Moves a batch of actions from the secondary store to the primary one."""

    @abstractmethod
    def migrate(self, action_ids: Iterable[int]) -> List[int]:
        """
        Migrate the given IDs and return the ones now held by the primary store.

        Must be idempotent: an ID that was already migrated is not copied twice.
        """
        ...


class ActionMigrator(MigrationGateway):
    def __init__(
        self,
        source: LegacyActionStore,
        destination: SQLiteActionStore,
        *,
        publisher: Optional[EventPublisher] = None,
    ):
        self.source = source
        self.destination = destination
        self._publisher = publisher

    def migrate(self, action_ids: Iterable[int]) -> List[int]:
        ids = unique_ids([int(i) for i in action_ids])
        if not ids:
            return []

        migrated: List[int] = []
        with store_span("migrate", self.source.name, requested=len(ids)) as span:
            for action_id in ids:
                if self._migrate_one(action_id):
                    migrated.append(action_id)
            span.set_attribute("migrated", len(migrated))

        if migrated:
            record_counter("actions_migrated_total", len(migrated))
            logger.info("Migrated %d action(s) to the primary store", len(migrated))
        return migrated

    def _migrate_one(self, action_id: int) -> bool:
        action = self.source.export_action(action_id)
        if action is None:
            if self.destination.fetch_action(action_id).is_null():
                logger.warning("Action %s is in neither store; skipping migration", action_id)
                return False
            # Copied and purged by an earlier run
            return True

        if not self.destination.import_action(action):
            logger.info("Action %s already present in the primary store; removing legacy copy", action_id)
        self.source.purge_action(action_id)
        publish_action_event(
            action_id,
            ActionEventType.MIGRATED,
            {"hook": action.hook, "status": action.status.value},
            publisher=self._publisher,
            source="migration",
        )
        return True
