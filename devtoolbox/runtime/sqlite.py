"""
SQLite implementation of the database capability.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from pathlib import Path
from typing import TYPE_CHECKING

from devtoolbox.runtime.base import Database, QueryEvent

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)


class SQLiteDatabase(Database):
    """
    Database capability backed by ``sqlite3``.

    Every statement run through ``execute`` is timed and reported to
    listeners as a ``QueryEvent``.

    Args:
        path: Database file, or ":memory:".
        connection_name: Name reported on query events.
    """

    driver = "sqlite"

    def __init__(self, path: str | Path = ":memory:", connection_name: str = "default") -> None:
        super().__init__()
        self.path = str(path)
        self.connection_name = connection_name
        self._conn = sqlite3.connect(self.path, isolation_level=None, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row

    @property
    def database_name(self) -> str:
        if self.path == ":memory:":
            return "main"
        return Path(self.path).stem

    def execute(self, sql: str, bindings: list[Any] | tuple[Any, ...] = ()) -> sqlite3.Cursor:
        """Execute one statement and notify listeners with its timing."""
        start = time.perf_counter()
        cursor = self._conn.execute(sql, tuple(bindings))
        elapsed = (time.perf_counter() - start) * 1000
        self._notify(QueryEvent(
            sql=sql,
            bindings=list(bindings),
            time=round(elapsed, 3),
            connection=self.connection_name,
        ))
        return cursor

    def select(self, sql: str, bindings: list[Any] | tuple[Any, ...] = ()) -> list[dict[str, Any]]:
        return [dict(row) for row in self.execute(sql, bindings).fetchall()]

    def column_listing(self, table: str) -> list[str]:
        quoted = table.replace('"', '""')
        rows = self._conn.execute(f'PRAGMA table_info("{quoted}")').fetchall()
        return [row["name"] for row in rows]

    def explain(self, sql: str, bindings: list[Any] | tuple[Any, ...] = ()) -> list[dict[str, Any]]:
        rows = self._conn.execute(f"EXPLAIN QUERY PLAN {sql}", tuple(bindings)).fetchall()
        return [dict(row) for row in rows]

    def close(self) -> None:
        self._conn.close()
