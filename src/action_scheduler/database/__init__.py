"""
SQLite access shared by the action stores.

Usage:
    from action_scheduler.database import SQLiteDatabase

    db = SQLiteDatabase("/var/lib/scheduler/actions.db")
    with db.transaction() as conn:
        conn.execute("UPDATE actions SET claim_id = 0 WHERE claim_id = ?", (claim_id,))
"""

from .sqlite import SQLiteDatabase

__all__ = [
    "SQLiteDatabase",
]
