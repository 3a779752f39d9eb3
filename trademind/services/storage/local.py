"""
Local Key-Value Storage

DESIGN DECISION: SQLite is the local durable store because:
1. It ships with Python - nothing to install on the user's machine
2. A committed write survives a crash right after the call returns
3. One file is easy to back up or delete

The schema is a single key/value table. Every aggregate of the ledger
(records, profile, each artifact kind, the remembered identity) is one
row holding its JSON serialization.
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Union

from trademind.services.storage.interface import (
    KeyValueStorage,
    LocalPersistenceError,
)


_SCHEMA = """
CREATE TABLE IF NOT EXISTS kv (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
)
"""


class SQLiteKeyValueStorage(KeyValueStorage):
    """
    SQLite-backed implementation of local storage.

    Every write is committed before the method returns.
    """

    def __init__(self, db_path: Union[str, Path]):
        self._db_path = str(db_path)
        try:
            self._conn = sqlite3.connect(self._db_path)
            with self._conn:
                self._conn.execute(_SCHEMA)
        except sqlite3.Error as e:
            raise LocalPersistenceError(
                f"Failed to open local storage at {self._db_path}: {e}"
            )

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[sqlite3.Connection]:
        try:
            with self._conn:
                yield self._conn
        except sqlite3.Error as e:
            raise LocalPersistenceError(f"Local storage {operation} failed: {e}")

    def get(self, key: str) -> Optional[str]:
        with self._transaction("read") as conn:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        with self._transaction("write") as conn:
            conn.execute(
                "INSERT INTO kv (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, value),
            )

    def delete(self, key: str) -> None:
        with self._transaction("delete") as conn:
            conn.execute("DELETE FROM kv WHERE key = ?", (key,))

    def clear(self) -> None:
        with self._transaction("clear") as conn:
            conn.execute("DELETE FROM kv")

    def keys(self) -> list[str]:
        with self._transaction("read") as conn:
            rows = conn.execute("SELECT key FROM kv ORDER BY key").fetchall()
        return [row[0] for row in rows]

    def close(self) -> None:
        self._conn.close()


class InMemoryKeyValueStorage(KeyValueStorage):
    """Dictionary-backed storage for tests and ephemeral sessions."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()

    def keys(self) -> list[str]:
        return sorted(self._data)
