from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Union

from ..errors import StorageError

logger = logging.getLogger(__name__)


class SQLiteDatabase:
    """
    Thin wrapper around one SQLite file.

    Every call opens its own connection so that independent worker processes
    (and threads) never share a handle. Writes go through `transaction()`,
    which takes the write lock up front with BEGIN IMMEDIATE.
    """

    def __init__(self, db_path: Union[str, Path], *, busy_timeout_ms: int = 5000):
        self.db_path = Path(db_path)
        self.busy_timeout_ms = int(busy_timeout_ms)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute(f"PRAGMA busy_timeout={self.busy_timeout_ms};")
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        return conn

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE;")
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            logger.error("SQLite write failed on %s: %s", self.db_path, e)
            raise StorageError(f"Database error: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def executescript(self, script: str) -> None:
        with self.connection() as conn:
            conn.executescript(script)
            conn.commit()

    def __repr__(self) -> str:
        return f"SQLiteDatabase(path={self.db_path})"
