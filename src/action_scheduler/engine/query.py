"""
SQL builders for the action query vocabulary.

Both SQLite-backed stores describe their table through an ActionTableLayout
and share these builders, so `find_action`, `query_actions` and claiming
behave identically on either side of a migration.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..errors import InvalidArgumentError
from .models import (
    ActionQuery,
    ActionStatus,
    format_db_datetime,
    json_dumps,
    status_value,
    validate_sql_comparator,
)

QUERY_TYPES = ("select", "count")

StatusEncoder = Callable[[str], str]


def _identity(status: str) -> str:
    return status


@dataclass(frozen=True)
class ActionTableLayout:
    """Where a store keeps its actions and how it resolves group slugs."""
    table: str
    group_column: str
    group_join: str = ""
    encode_status: StatusEncoder = _identity


def validate_query_type(query_type: str) -> str:
    if query_type not in QUERY_TYPES:
        raise InvalidArgumentError(
            "Invalid value for select or count parameter. Cannot query actions.",
            details={"query_type": query_type},
        )
    return query_type


def build_find_sql(
    layout: ActionTableLayout,
    hook: str,
    params: Optional[Dict[str, Any]] = None,
) -> Tuple[str, List[Any]]:
    """
    SQL selecting the single best match for `hook`.

    Pending matches are ordered earliest-due first ("what runs next"); any
    other status orders by most recent attempt ("what ran last").
    """
    params = params or {}
    args = params.get("args")
    status = status_value(params.get("status", ActionStatus.PENDING))
    group = params.get("group") or ""

    sql = f"SELECT a.action_id FROM {layout.table} a{layout.group_join} WHERE a.hook=?"
    sql_params: List[Any] = [hook]
    if group:
        sql += f" AND {layout.group_column}=?"
        sql_params.append(group)
    if args is not None:
        sql += " AND a.args=?"
        sql_params.append(json_dumps(args))

    order = "a.scheduled_date_gmt ASC, a.action_id ASC"
    if status:
        sql += " AND a.status=?"
        sql_params.append(layout.encode_status(status))
        if status != ActionStatus.PENDING.value:
            order = "a.last_attempt_gmt DESC, a.scheduled_date_gmt DESC, a.action_id DESC"

    sql += f" ORDER BY {order} LIMIT 1"
    return sql, sql_params


def build_query_sql(
    layout: ActionTableLayout,
    query: ActionQuery,
    query_type: str = "select",
) -> Tuple[str, List[Any]]:
    validate_query_type(query_type)

    if query_type == "count":
        sql = "SELECT COUNT(a.action_id)"
    else:
        sql = "SELECT a.action_id"
    sql += f" FROM {layout.table} a{layout.group_join} WHERE 1=1"
    sql_params: List[Any] = []

    if query.group:
        sql += f" AND {layout.group_column}=?"
        sql_params.append(query.group)

    if query.hook:
        sql += " AND a.hook=?"
        sql_params.append(query.hook)

    if query.args is not None:
        sql += " AND a.args=?"
        sql_params.append(json_dumps(query.args))

    if query.status:
        sql += " AND a.status=?"
        sql_params.append(layout.encode_status(query.status))

    if query.date is not None:
        comparator = validate_sql_comparator(query.date_compare)
        sql += f" AND a.scheduled_date_gmt {comparator} ?"
        sql_params.append(format_db_datetime(query.date))

    if query.modified is not None:
        comparator = validate_sql_comparator(query.modified_compare)
        sql += f" AND a.last_attempt_gmt {comparator} ?"
        sql_params.append(format_db_datetime(query.modified))

    # bool must be checked before int: True/False are ints too
    if query.claimed is True:
        sql += " AND a.claim_id != 0"
    elif query.claimed is False:
        sql += " AND a.claim_id = 0"
    elif query.claimed is not None:
        sql += " AND a.claim_id = ?"
        sql_params.append(int(query.claimed))

    if query_type == "select":
        orderby = {
            "hook": "a.hook",
            "group": layout.group_column,
            "modified": "a.last_attempt_gmt",
        }.get(query.orderby, "a.scheduled_date_gmt")
        direction = query.order_direction()
        sql += f" ORDER BY {orderby} {direction}, a.action_id {direction}"
        if query.per_page > 0:
            sql += " LIMIT ? OFFSET ?"
            sql_params.extend([int(query.per_page), max(0, int(query.offset))])

    return sql, sql_params


def build_claim_sql(layout: ActionTableLayout) -> str:
    """
    The single statement that reserves due work for a claim.

    Selection and assignment happen in one UPDATE; splitting them into a read
    followed by a write would let two workers claim the same rows.

    Parameters: claim_id, last_attempt_gmt, last_attempt_local,
    before_date_gmt, pending status, limit.
    """
    return f"""
        UPDATE {layout.table}
        SET claim_id=?, last_attempt_gmt=?, last_attempt_local=?
        WHERE action_id IN (
            SELECT action_id FROM {layout.table}
            WHERE claim_id = 0
              AND scheduled_date_gmt <= ?
              AND status = ?
            ORDER BY attempts ASC, scheduled_date_gmt ASC, action_id ASC
            LIMIT ?
        )
          AND claim_id = 0
    """
