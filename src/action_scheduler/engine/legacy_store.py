"""
Legacy action store.

Reads and writes the pre-migration layout: a single `legacy_actions` table
with the group slug stored inline and the old post-style status codes. Used
on its own by deployments that have not migrated yet, and as the secondary
side of HybridActionStore by those that are migrating.
"""

from __future__ import annotations

from typing import Dict, Optional, Union

from .models import Action, ActionStatus
from .query import ActionTableLayout
from .table_store import SQLiteTableStore

LEGACY_ACTIONS_TABLE = "legacy_actions"
LEGACY_CLAIMS_TABLE = "legacy_claims"

# ActionStatus -> status code stored by the legacy layout
LEGACY_STATUS_CODES: Dict[ActionStatus, str] = {
    ActionStatus.PENDING: "pending",
    ActionStatus.RUNNING: "in-progress",
    ActionStatus.COMPLETE: "publish",
    ActionStatus.FAILED: "failed",
    ActionStatus.CANCELED: "trash",
}
_STATUS_BY_CODE = {code: status for status, code in LEGACY_STATUS_CODES.items()}


def encode_legacy_status(status: Union[ActionStatus, str]) -> str:
    try:
        return LEGACY_STATUS_CODES[ActionStatus(status)]
    except ValueError:
        return str(status)


def decode_legacy_status(code: Optional[str]) -> Optional[ActionStatus]:
    return _STATUS_BY_CODE.get(code or "")


LEGACY_SCHEMA_SQL = f"""
CREATE TABLE IF NOT EXISTS {LEGACY_ACTIONS_TABLE} (
  action_id INTEGER PRIMARY KEY AUTOINCREMENT,
  hook TEXT NOT NULL,
  status TEXT NOT NULL,
  scheduled_date_gmt TEXT,
  scheduled_date_local TEXT,
  args TEXT,
  schedule TEXT,
  group_slug TEXT NOT NULL DEFAULT '',
  attempts INTEGER NOT NULL DEFAULT 0,
  last_attempt_gmt TEXT,
  last_attempt_local TEXT,
  claim_id INTEGER NOT NULL DEFAULT 0
);

CREATE INDEX IF NOT EXISTS idx_legacy_actions_hook ON {LEGACY_ACTIONS_TABLE}(hook);
CREATE INDEX IF NOT EXISTS idx_legacy_actions_status ON {LEGACY_ACTIONS_TABLE}(status);
CREATE INDEX IF NOT EXISTS idx_legacy_actions_claim_id ON {LEGACY_ACTIONS_TABLE}(claim_id);

CREATE TABLE IF NOT EXISTS {LEGACY_CLAIMS_TABLE} (
  claim_id INTEGER PRIMARY KEY AUTOINCREMENT,
  date_created_gmt TEXT NOT NULL
);
"""

LEGACY_LAYOUT = ActionTableLayout(
    table=LEGACY_ACTIONS_TABLE,
    group_column="a.group_slug",
    encode_status=encode_legacy_status,
)


class LegacyActionStore(SQLiteTableStore):
    """Action store over the legacy single-table layout."""

    name = "legacy"
    layout = LEGACY_LAYOUT
    claims_table = LEGACY_CLAIMS_TABLE
    group_field = "group_slug"
    schema_sql = LEGACY_SCHEMA_SQL
    event_source = "legacy_store"

    def _decode_status(self, raw: Optional[str]) -> Optional[ActionStatus]:
        return decode_legacy_status(raw)

    # Migration support

    def export_action(self, action_id: int) -> Optional[Action]:
        """Full copy of a stored action, or None when it is not here."""
        action = self.fetch_action(action_id)
        return None if action.is_null() else action

    def purge_action(self, action_id: int) -> bool:
        """Delete an action that has been copied elsewhere. Emits no event."""
        with self.database.transaction() as conn:
            cur = conn.execute(f"DELETE FROM {LEGACY_ACTIONS_TABLE} WHERE action_id=?", (int(action_id),))
            return cur.rowcount > 0
