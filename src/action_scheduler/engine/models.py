from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, Field, field_validator

DB_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"


class ActionStatus(str, Enum):
    """Lifecycle status of a stored action."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETE = "complete"
    FAILED = "failed"
    CANCELED = "canceled"


FINISHED_STATUSES = {ActionStatus.COMPLETE, ActionStatus.FAILED, ActionStatus.CANCELED}
STATUS_VALUES = {s.value for s in ActionStatus}


def now_utc() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and normalise aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_db_datetime(value: Optional[datetime], tz: tzinfo = timezone.utc) -> Optional[str]:
    if value is None:
        return None
    return as_utc(value).astimezone(tz).strftime(DB_DATETIME_FORMAT)


def parse_db_datetime(raw: Optional[str], tz: tzinfo = timezone.utc) -> Optional[datetime]:
    if not raw:
        return None
    v = raw.strip()
    if not v or v.startswith("0000-00-00"):
        return None
    return datetime.strptime(v, DB_DATETIME_FORMAT).replace(tzinfo=tz)


def json_dumps(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=False, separators=(",", ":"))


def json_loads(raw: Optional[str]) -> Any:
    if not raw:
        return None
    return json.loads(raw)


class Schedule(BaseModel):
    """
    When an action is due.

    `recurrence` is carried verbatim; computing the next occurrence of a
    recurring schedule happens outside the store.
    """
    start: Optional[datetime] = None
    recurrence: Optional[str] = None

    model_config = {"extra": "forbid"}

    @field_validator("start")
    @classmethod
    def _normalise_start(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is None:
            return None
        return as_utc(v)

    def next_due(self) -> Optional[datetime]:
        return self.start

    def is_recurring(self) -> bool:
        return bool(self.recurrence)

    def is_null(self) -> bool:
        return self.start is None and not self.recurrence


class Action(BaseModel):
    hook: str
    args: Dict[str, Any] = Field(default_factory=dict)
    schedule: Schedule = Field(default_factory=Schedule)
    group: str = ""
    status: ActionStatus = ActionStatus.PENDING

    # Populated by the store on fetch
    action_id: Optional[int] = None
    attempts: int = 0
    claim_id: int = 0
    scheduled_date_gmt: Optional[datetime] = None
    scheduled_date_local: Optional[datetime] = None
    last_attempt_gmt: Optional[datetime] = None
    last_attempt_local: Optional[datetime] = None

    model_config = {"extra": "forbid"}

    def is_finished(self) -> bool:
        return self.status in FINISHED_STATUSES

    def is_null(self) -> bool:
        return False

    def encoded_args(self) -> str:
        return json_dumps(self.args or {})


class NullAction(Action):
    """Returned in place of an action that does not exist."""
    hook: str = ""

    def is_null(self) -> bool:
        return True


@dataclass(frozen=True)
class ActionClaim:
    """A batch of action IDs reserved under one claim ID."""
    claim_id: int
    action_ids: Tuple[int, ...] = field(default_factory=tuple)


SQL_COMPARATORS = ("!=", ">", ">=", "<", "<=", "=")
QUERY_ORDERBY = ("date", "modified", "hook", "group")


def validate_sql_comparator(comparator: str) -> str:
    if comparator in SQL_COMPARATORS:
        return comparator
    return "="


class ActionQuery(BaseModel):
    """
    Filter vocabulary for `query_actions`.

    Field names and comparator semantics are consumed by admin and reporting
    tooling, so they must stay stable.
    """
    hook: str = ""
    args: Optional[Dict[str, Any]] = None
    date: Optional[datetime] = None
    date_compare: str = "<="
    modified: Optional[datetime] = None
    modified_compare: str = "<="
    group: str = ""
    status: str = ""
    claimed: Optional[Union[bool, int]] = None
    per_page: int = 5
    offset: int = 0
    orderby: str = "date"
    order: str = "ASC"

    model_config = {"extra": "forbid"}

    @field_validator("status", mode="before")
    @classmethod
    def _status_value(cls, v: Any) -> Any:
        if isinstance(v, ActionStatus):
            return v.value
        return v or ""

    def order_direction(self) -> str:
        return "ASC" if str(self.order).upper() == "ASC" else "DESC"


def coerce_query(query: Optional[Union[ActionQuery, Dict[str, Any]]]) -> ActionQuery:
    if query is None:
        return ActionQuery()
    if isinstance(query, ActionQuery):
        return query
    return ActionQuery.model_validate(query)


def status_value(status: Union[ActionStatus, str, None]) -> str:
    if isinstance(status, ActionStatus):
        return status.value
    return status or ""


def sum_counts(*counts: Dict[str, int]) -> Dict[str, int]:
    out: Dict[str, int] = {}
    for c in counts:
        for status, n in c.items():
            out[status] = out.get(status, 0) + int(n)
    return out


def unique_ids(ids: List[int]) -> List[int]:
    seen = set()
    out: List[int] = []
    for i in ids:
        if i not in seen:
            seen.add(i)
            out.append(i)
    return out
