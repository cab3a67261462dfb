from __future__ import annotations

import sqlite3
from typing import Any

from ..errors import InvalidArgumentError
from .models import DB_DATETIME_FORMAT, Action, format_db_datetime
from .query import ActionTableLayout
from .table_store import SQLiteTableStore

ACTIONS_TABLE = "actions"
CLAIMS_TABLE = "action_claims"
GROUPS_TABLE = "action_groups"
OPTIONS_TABLE = "store_options"


SCHEMA_SQL = f"""
CREATE TABLE IF NOT EXISTS {ACTIONS_TABLE} (
  action_id INTEGER PRIMARY KEY AUTOINCREMENT,
  hook TEXT NOT NULL,
  status TEXT NOT NULL,
  scheduled_date_gmt TEXT,
  scheduled_date_local TEXT,
  args TEXT,
  schedule TEXT,
  group_id INTEGER NOT NULL DEFAULT 0,
  attempts INTEGER NOT NULL DEFAULT 0,
  last_attempt_gmt TEXT,
  last_attempt_local TEXT,
  claim_id INTEGER NOT NULL DEFAULT 0
);

CREATE INDEX IF NOT EXISTS idx_actions_hook ON {ACTIONS_TABLE}(hook);
CREATE INDEX IF NOT EXISTS idx_actions_status ON {ACTIONS_TABLE}(status);
CREATE INDEX IF NOT EXISTS idx_actions_scheduled ON {ACTIONS_TABLE}(scheduled_date_gmt);
CREATE INDEX IF NOT EXISTS idx_actions_claim_id ON {ACTIONS_TABLE}(claim_id);
CREATE INDEX IF NOT EXISTS idx_actions_group_id ON {ACTIONS_TABLE}(group_id);

CREATE TABLE IF NOT EXISTS {CLAIMS_TABLE} (
  claim_id INTEGER PRIMARY KEY AUTOINCREMENT,
  date_created_gmt TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS {GROUPS_TABLE} (
  group_id INTEGER PRIMARY KEY AUTOINCREMENT,
  slug TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS {OPTIONS_TABLE} (
  name TEXT PRIMARY KEY,
  value TEXT NOT NULL
);
"""

LAYOUT = ActionTableLayout(
    table=ACTIONS_TABLE,
    group_column="g.slug",
    group_join=f" LEFT JOIN {GROUPS_TABLE} g ON g.group_id=a.group_id",
)


class SQLiteActionStore(SQLiteTableStore):
    """
    Action store backed by the `actions`, `action_groups` and
    `action_claims` tables.

    Concurrency control lives entirely in SQLite: claiming is one UPDATE
    statement run under BEGIN IMMEDIATE, so any number of worker processes can
    share the database file without coordinating with each other.
    """

    name = "db"
    layout = LAYOUT
    claims_table = CLAIMS_TABLE
    group_field = "group_id"
    schema_sql = SCHEMA_SQL

    def _group_value(self, conn: sqlite3.Connection, slug: str) -> Any:
        return self._get_group_id(conn, slug)

    def _get_group_id(self, conn: sqlite3.Connection, slug: str, create_if_not_exists: bool = True) -> int:
        if not slug:
            return 0
        row = conn.execute(f"SELECT group_id FROM {GROUPS_TABLE} WHERE slug=?", (slug,)).fetchone()
        if row:
            return int(row["group_id"])
        if not create_if_not_exists:
            return 0
        try:
            cur = conn.execute(f"INSERT INTO {GROUPS_TABLE} (slug) VALUES (?)", (slug,))
            return int(cur.lastrowid)
        except sqlite3.IntegrityError:
            # Slug created concurrently; the unique index makes that a lookup hit
            row = conn.execute(f"SELECT group_id FROM {GROUPS_TABLE} WHERE slug=?", (slug,)).fetchone()
            if not row:
                raise
            return int(row["group_id"])

    # ------------------------------------------------------------------
    # Migration support
    # ------------------------------------------------------------------

    def import_action(self, action: Action) -> bool:
        """
        Insert a fully-formed action under its existing ID.

        Returns False when the ID is already present, which makes repeated
        imports of the same action harmless. Imported actions start unclaimed.
        """
        if action.action_id is None:
            raise InvalidArgumentError("Cannot import an action without an ID")

        scheduled = action.scheduled_date_gmt or action.schedule.next_due()
        local_scheduled = (
            action.scheduled_date_local.strftime(DB_DATETIME_FORMAT)
            if action.scheduled_date_local else self._local(scheduled)
        )
        local_attempt = (
            action.last_attempt_local.strftime(DB_DATETIME_FORMAT)
            if action.last_attempt_local else self._local(action.last_attempt_gmt)
        )

        with self.database.transaction() as conn:
            existing = conn.execute(
                f"SELECT 1 FROM {ACTIONS_TABLE} WHERE action_id=?", (int(action.action_id),)
            ).fetchone()
            if existing:
                return False
            conn.execute(
                f"""
                INSERT INTO {ACTIONS_TABLE} (
                  action_id, hook, status, scheduled_date_gmt, scheduled_date_local,
                  args, schedule, group_id, attempts, last_attempt_gmt, last_attempt_local, claim_id
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0)
                """,
                (
                    int(action.action_id),
                    action.hook,
                    action.status.value,
                    format_db_datetime(scheduled),
                    local_scheduled,
                    action.encoded_args(),
                    action.schedule.model_dump_json(),
                    self._get_group_id(conn, action.group),
                    int(action.attempts or 0),
                    format_db_datetime(action.last_attempt_gmt),
                    local_attempt,
                ),
            )
        return True
