"""
Shared implementation for the SQLite-backed action stores.

SQLiteActionStore and LegacyActionStore keep actions in differently shaped
tables. Everything that only depends on the ActionTableLayout, the claims
table and the status codes lives here; subclasses describe their schema and
how group slugs are stored.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from datetime import datetime, timezone, tzinfo
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..database import SQLiteDatabase
from ..errors import (
    ActionNotFoundError,
    InvalidArgumentError,
    StorageError,
    StorageInconsistencyError,
)
from ..events import ActionEventType, EventPublisher, publish_action_event
from ..observability.metrics import record_counter, record_histogram
from ..observability.tracing import store_span
from .base import ActionStore, QueryResult
from .models import (
    DB_DATETIME_FORMAT,
    Action,
    ActionClaim,
    ActionQuery,
    ActionStatus,
    NullAction,
    Schedule,
    coerce_query,
    format_db_datetime,
    json_dumps,
    json_loads,
    now_utc,
    parse_db_datetime,
)
from .query import (
    ActionTableLayout,
    build_claim_sql,
    build_find_sql,
    build_query_sql,
    validate_query_type,
)

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {"hook", "args", "schedule", "group", "status", "attempts"}


class SQLiteTableStore(ActionStore):
    """
    ActionStore over one actions table and one claims table.

    Subclasses set:
        name: Store name used in spans, metrics and logs
        layout: Table name, group lookup and status encoding
        claims_table: Table minting claim IDs
        group_field: Column on the actions table that stores the group
        schema_sql: Script creating the tables
        event_source: Source reported on emitted events

    and override `_group_value` and `_decode_status` where their layout
    differs from the defaults.
    """

    name: str
    layout: ActionTableLayout
    claims_table: str
    group_field: str
    schema_sql: str
    event_source: str = "action_store"

    def __init__(
        self,
        db_path: Union[str, Path],
        *,
        local_tz: Optional[tzinfo] = None,
        publisher: Optional[EventPublisher] = None,
        busy_timeout_ms: int = 5000,
    ):
        self.database = SQLiteDatabase(db_path, busy_timeout_ms=busy_timeout_ms)
        self.local_tz = local_tz or timezone.utc
        self._publisher = publisher
        self.database.executescript(self.schema_sql)

    @property
    def table(self) -> str:
        return self.layout.table

    # ------------------------------------------------------------------
    # Row helpers
    # ------------------------------------------------------------------

    def _local(self, value: Optional[datetime]) -> Optional[str]:
        return format_db_datetime(value, self.local_tz)

    def _group_value(self, conn: sqlite3.Connection, slug: str) -> Any:
        """Value stored in `group_field` for a group slug."""
        return slug or ""

    def _decode_status(self, raw: Optional[str]) -> Optional[ActionStatus]:
        try:
            return ActionStatus(raw)
        except ValueError:
            return None

    def _encode_status(self, status: ActionStatus) -> str:
        return self.layout.encode_status(status.value)

    def _row_to_action(self, row: sqlite3.Row) -> Action:
        status = self._decode_status(row["status"])
        if status is None:
            logger.warning(
                "Action %s in %s has unrecognised status %r; treating it as complete",
                row["action_id"], self.name, row["status"],
            )
            status = ActionStatus.COMPLETE

        schedule = Schedule()
        if row["schedule"]:
            try:
                schedule = Schedule.model_validate_json(row["schedule"])
            except ValueError:
                logger.warning("Action %s has an unreadable schedule; using a null schedule", row["action_id"])

        return Action(
            hook=row["hook"],
            args=json_loads(row["args"]) or {},
            schedule=schedule,
            group=row["group_slug"] or "",
            status=status,
            action_id=int(row["action_id"]),
            attempts=int(row["attempts"] or 0),
            claim_id=int(row["claim_id"] or 0),
            scheduled_date_gmt=parse_db_datetime(row["scheduled_date_gmt"]),
            scheduled_date_local=parse_db_datetime(row["scheduled_date_local"], self.local_tz),
            last_attempt_gmt=parse_db_datetime(row["last_attempt_gmt"]),
            last_attempt_local=parse_db_datetime(row["last_attempt_local"], self.local_tz),
        )

    def _select_action(self, conn: sqlite3.Connection, action_id: int) -> Optional[sqlite3.Row]:
        return conn.execute(
            f"""
            SELECT a.*, {self.layout.group_column} AS group_slug
            FROM {self.table} a{self.layout.group_join}
            WHERE a.action_id=?
            """,
            (int(action_id),),
        ).fetchone()

    def _require_row(self, conn: sqlite3.Connection, action_id: int, columns: str = "*") -> sqlite3.Row:
        row = conn.execute(
            f"SELECT {columns} FROM {self.table} WHERE action_id=?", (int(action_id),)
        ).fetchone()
        if row is None:
            raise ActionNotFoundError(action_id)
        return row

    def _update_one(self, action_id: int, assignments: str, params: List[Any]) -> None:
        with self.database.transaction() as conn:
            cur = conn.execute(
                f"UPDATE {self.table} SET {assignments} WHERE action_id=?",
                (*params, int(action_id)),
            )
            if cur.rowcount == 0:
                raise ActionNotFoundError(action_id)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save_action(self, action: Action, date: Optional[datetime] = None) -> int:
        status = ActionStatus.COMPLETE if action.is_finished() else ActionStatus.PENDING
        due = date if date is not None else action.schedule.next_due()
        try:
            with self.database.transaction() as conn:
                cur = conn.execute(
                    f"""
                    INSERT INTO {self.table} (
                      hook, status, scheduled_date_gmt, scheduled_date_local,
                      args, schedule, {self.group_field}
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        action.hook,
                        self._encode_status(status),
                        format_db_datetime(due),
                        self._local(due),
                        action.encoded_args(),
                        action.schedule.model_dump_json(),
                        self._group_value(conn, action.group),
                    ),
                )
                action_id = int(cur.lastrowid)
        except StorageError as e:
            raise StorageError(f"Error saving action: {e.message}", details={"hook": action.hook}) from e

        publish_action_event(
            action_id, ActionEventType.STORED, {"hook": action.hook},
            publisher=self._publisher, source=self.event_source,
        )
        return action_id

    def fetch_action(self, action_id: int) -> Action:
        with self.database.connection() as conn:
            row = self._select_action(conn, action_id)
        if not row:
            return NullAction()
        return self._row_to_action(row)

    def update_action(self, action_id: int, fields: Dict[str, Any]) -> None:
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise InvalidArgumentError(
                f"Cannot update action fields: {', '.join(sorted(unknown))}",
                details={"action_id": action_id, "fields": sorted(unknown)},
            )
        status = None
        if "status" in fields:
            try:
                status = ActionStatus(fields["status"])
            except ValueError as e:
                raise InvalidArgumentError(
                    f"Invalid action status: {fields['status']!r}",
                    details={"action_id": action_id, "status": str(fields["status"])},
                ) from e

        with self.database.transaction() as conn:
            assignments: List[str] = []
            params: List[Any] = []
            if "hook" in fields:
                assignments.append("hook=?")
                params.append(fields["hook"])
            if "args" in fields:
                assignments.append("args=?")
                params.append(json_dumps(fields["args"] or {}))
            if "schedule" in fields:
                schedule = fields["schedule"]
                if not isinstance(schedule, Schedule):
                    schedule = Schedule.model_validate(schedule or {})
                due = schedule.next_due()
                assignments.extend(["schedule=?", "scheduled_date_gmt=?", "scheduled_date_local=?"])
                params.extend([schedule.model_dump_json(), format_db_datetime(due), self._local(due)])
            if "group" in fields:
                assignments.append(f"{self.group_field}=?")
                params.append(self._group_value(conn, fields["group"] or ""))
            if status is not None:
                assignments.append("status=?")
                params.append(self._encode_status(status))
            if "attempts" in fields:
                assignments.append("attempts=?")
                params.append(int(fields["attempts"]))

            if not assignments:
                self._require_row(conn, action_id, "action_id")
                return

            cur = conn.execute(
                f"UPDATE {self.table} SET {', '.join(assignments)} WHERE action_id=?",
                (*params, int(action_id)),
            )
            if cur.rowcount == 0:
                raise ActionNotFoundError(action_id)

    def delete_action(self, action_id: int) -> None:
        with self.database.transaction() as conn:
            cur = conn.execute(f"DELETE FROM {self.table} WHERE action_id=?", (int(action_id),))
            if cur.rowcount == 0:
                raise ActionNotFoundError(action_id)
        publish_action_event(
            action_id, ActionEventType.DELETED, publisher=self._publisher, source=self.event_source,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_action(self, hook: str, params: Optional[Dict[str, Any]] = None) -> Optional[int]:
        sql, sql_params = build_find_sql(self.layout, hook, params)
        with self.database.connection() as conn:
            row = conn.execute(sql, sql_params).fetchone()
        return int(row[0]) if row else None

    def query_actions(
        self,
        query: Optional[Union[ActionQuery, Dict[str, Any]]] = None,
        query_type: str = "select",
    ) -> QueryResult:
        validate_query_type(query_type)
        sql, sql_params = build_query_sql(self.layout, coerce_query(query), query_type)
        with self.database.connection() as conn:
            if query_type == "count":
                return int(conn.execute(sql, sql_params).fetchone()[0])
            return [int(r[0]) for r in conn.execute(sql, sql_params).fetchall()]

    def action_counts(self) -> Dict[str, int]:
        with self.database.connection() as conn:
            rows = conn.execute(
                f"SELECT status, COUNT(*) AS count FROM {self.table} GROUP BY status"
            ).fetchall()
        counts: Dict[str, int] = {}
        for row in rows:
            # Ignore any actions with invalid status
            status = self._decode_status(row["status"])
            if status is not None:
                counts[status.value] = int(row["count"])
        return counts

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    def cancel_action(self, action_id: int) -> None:
        self._update_one(action_id, "status=?", [self._encode_status(ActionStatus.CANCELED)])
        publish_action_event(
            action_id, ActionEventType.CANCELED, publisher=self._publisher, source=self.event_source,
        )

    def mark_failure(self, action_id: int) -> None:
        self._update_one(action_id, "status=?", [self._encode_status(ActionStatus.FAILED)])

    def mark_complete(self, action_id: int) -> None:
        now = now_utc()
        self._update_one(
            action_id,
            "status=?, last_attempt_gmt=?, last_attempt_local=?",
            [self._encode_status(ActionStatus.COMPLETE), format_db_datetime(now), self._local(now)],
        )

    def log_execution(self, action_id: int) -> None:
        now = now_utc()
        self._update_one(
            action_id,
            "attempts=attempts+1, status=?, last_attempt_gmt=?, last_attempt_local=?",
            [self._encode_status(ActionStatus.RUNNING), format_db_datetime(now), self._local(now)],
        )

    def get_status(self, action_id: int) -> ActionStatus:
        with self.database.connection() as conn:
            row = conn.execute(
                f"SELECT status FROM {self.table} WHERE action_id=?", (int(action_id),)
            ).fetchone()
        if row is None:
            raise ActionNotFoundError(action_id, "Invalid action ID. No status found.")
        status = self._decode_status(row["status"])
        if status is None:
            logger.error("Unknown status %r found for action %s in %s", row["status"], action_id, self.name)
            raise StorageInconsistencyError(
                "Unknown status found for action.",
                details={"action_id": action_id, "status": row["status"]},
            )
        return status

    # ------------------------------------------------------------------
    # Dates
    # ------------------------------------------------------------------

    def get_date(self, action_id: int) -> Optional[datetime]:
        date = self.get_date_gmt(action_id)
        return date.astimezone(self.local_tz) if date else None

    def get_date_gmt(self, action_id: int) -> Optional[datetime]:
        with self.database.connection() as conn:
            row = self._require_row(conn, action_id, "status, scheduled_date_gmt, last_attempt_gmt")
        if self._decode_status(row["status"]) == ActionStatus.PENDING:
            return parse_db_datetime(row["scheduled_date_gmt"])
        return parse_db_datetime(row["last_attempt_gmt"])

    def get_last_attempt(self, action_id: int) -> Optional[datetime]:
        with self.database.connection() as conn:
            row = self._require_row(conn, action_id, "last_attempt_gmt")
        return parse_db_datetime(row["last_attempt_gmt"])

    def get_last_attempt_local(self, action_id: int) -> Optional[datetime]:
        with self.database.connection() as conn:
            row = self._require_row(conn, action_id, "last_attempt_local")
        return parse_db_datetime(row["last_attempt_local"], self.local_tz)

    # ------------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------------

    def stake_claim(self, max_actions: int = 10, before_date: Optional[datetime] = None) -> ActionClaim:
        started = time.monotonic()
        with store_span("stake_claim", self.name, max_actions=int(max_actions)) as span:
            claim_id = self._generate_claim_id()
            self._claim_actions(claim_id, max_actions, before_date)
            action_ids = self.find_actions_by_claim_id(claim_id)
            span.set_attribute("claim_id", claim_id)
            span.set_attribute("claimed", len(action_ids))

        record_counter("claims_staked_total", 1, {"store": self.name})
        record_counter("actions_claimed_total", len(action_ids), {"store": self.name})
        record_histogram("claim_duration_seconds", time.monotonic() - started, {"store": self.name})
        logger.debug("Claim %s on %s reserved %d action(s)", claim_id, self.name, len(action_ids))
        return ActionClaim(claim_id=claim_id, action_ids=tuple(action_ids))

    def _generate_claim_id(self) -> int:
        with self.database.transaction() as conn:
            cur = conn.execute(
                f"INSERT INTO {self.claims_table} (date_created_gmt) VALUES (?)",
                (now_utc().strftime(DB_DATETIME_FORMAT),),
            )
            return int(cur.lastrowid)

    def _claim_actions(self, claim_id: int, limit: int, before_date: Optional[datetime] = None) -> int:
        now = now_utc()
        date = before_date or now
        try:
            with self.database.transaction() as conn:
                cur = conn.execute(
                    build_claim_sql(self.layout),
                    (
                        claim_id,
                        format_db_datetime(now),
                        self._local(now),
                        format_db_datetime(date),
                        self._encode_status(ActionStatus.PENDING),
                        max(0, int(limit)),
                    ),
                )
                return int(cur.rowcount)
        except StorageError as e:
            raise StorageError(
                "Unable to claim actions. Database error.", details={"claim_id": claim_id}
            ) from e

    def get_claim_count(self) -> int:
        with self.database.connection() as conn:
            row = conn.execute(
                f"""
                SELECT COUNT(DISTINCT claim_id) FROM {self.table}
                WHERE claim_id != 0 AND status IN (?, ?)
                """,
                (self._encode_status(ActionStatus.PENDING), self._encode_status(ActionStatus.RUNNING)),
            ).fetchone()
        return int(row[0])

    def get_claim_id(self, action_id: int) -> int:
        """Claim holding the action; 0 when it is unclaimed or not stored here."""
        with self.database.connection() as conn:
            row = conn.execute(
                f"SELECT claim_id FROM {self.table} WHERE action_id=?", (int(action_id),)
            ).fetchone()
        return int(row["claim_id"] or 0) if row else 0

    def find_actions_by_claim_id(self, claim_id: int) -> List[int]:
        with self.database.connection() as conn:
            rows = conn.execute(
                f"""
                SELECT action_id FROM {self.table}
                WHERE claim_id=?
                ORDER BY attempts ASC, scheduled_date_gmt ASC, action_id ASC
                """,
                (int(claim_id),),
            ).fetchall()
        return [int(r["action_id"]) for r in rows]

    def release_claim(self, claim: ActionClaim) -> None:
        with self.database.transaction() as conn:
            conn.execute(f"UPDATE {self.table} SET claim_id=0 WHERE claim_id=?", (int(claim.claim_id),))
            conn.execute(f"DELETE FROM {self.claims_table} WHERE claim_id=?", (int(claim.claim_id),))

    def unclaim_action(self, action_id: int) -> None:
        with self.database.transaction() as conn:
            conn.execute(f"UPDATE {self.table} SET claim_id=0 WHERE action_id=?", (int(action_id),))

    def max_action_id(self) -> Optional[int]:
        with self.database.connection() as conn:
            row = conn.execute(f"SELECT MAX(action_id) FROM {self.table}").fetchone()
        return int(row[0]) if row and row[0] is not None else None
