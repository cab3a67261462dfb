"""
Demarkation boundary setup for the hybrid store.

The boundary is the first action ID owned by the primary store. Every ID
below it was issued by the legacy store. It is chosen once, persisted, and
never changes afterwards.
"""

from __future__ import annotations

import logging
from typing import Optional

from .legacy_store import LegacyActionStore
from .sqlite_store import ACTIONS_TABLE, OPTIONS_TABLE, SQLiteActionStore

logger = logging.getLogger(__name__)

DEMARKATION_OPTION = "action_scheduler_hybrid_store_demarkation"


def read_boundary(primary: SQLiteActionStore) -> int:
    """Persisted boundary, or 0 when it has not been initialised."""
    with primary.database.connection() as conn:
        row = conn.execute(
            f"SELECT value FROM {OPTIONS_TABLE} WHERE name=?", (DEMARKATION_OPTION,)
        ).fetchone()
    return int(row["value"]) if row else 0


def ensure_boundary_initialized(
    primary: SQLiteActionStore,
    secondary: LegacyActionStore,
    boundary: Optional[int] = None,
) -> int:
    """
    Persist the boundary if needed and return it.

    Runs under the primary's write lock so two processes starting together
    agree on one value. A placeholder row is inserted at the boundary and
    deleted again, which leaves the primary ID sequence past it.
    """
    with primary.database.transaction() as conn:
        row = conn.execute(
            f"SELECT value FROM {OPTIONS_TABLE} WHERE name=?", (DEMARKATION_OPTION,)
        ).fetchone()
        if row:
            return int(row["value"])

        if boundary is None:
            boundary = (secondary.max_action_id() or 0) + 1
        primary_max = conn.execute(f"SELECT MAX(action_id) FROM {ACTIONS_TABLE}").fetchone()[0]
        if primary_max is not None:
            boundary = max(int(boundary), int(primary_max) + 1)
        boundary = max(1, int(boundary))

        conn.execute(
            f"INSERT INTO {ACTIONS_TABLE} (action_id, hook, status) VALUES (?, '', '')",
            (boundary,),
        )
        conn.execute(f"DELETE FROM {ACTIONS_TABLE} WHERE action_id=?", (boundary,))
        conn.execute(
            f"INSERT INTO {OPTIONS_TABLE} (name, value) VALUES (?, ?)",
            (DEMARKATION_OPTION, str(boundary)),
        )

    logger.info("Hybrid store demarkation initialised at action ID %d", boundary)
    return boundary
