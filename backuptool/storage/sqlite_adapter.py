from __future__ import annotations

import re
import sqlite3
import threading
from pathlib import Path
from typing import Optional

from backuptool.core.errors import PersistenceError

from .adapter import SettingsBackend

_SCHEMA = """
CREATE TABLE IF NOT EXISTS settings (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
)
"""

# Replace-on-conflict upsert that keeps the original created_at
_UPSERT = """
INSERT OR REPLACE INTO settings (key, value, created_at, updated_at)
VALUES (
    ?,
    ?,
    COALESCE((SELECT created_at FROM settings WHERE key = ?), CURRENT_TIMESTAMP),
    CURRENT_TIMESTAMP
)
"""

_LOCKED_PAT = re.compile(r"database is locked", re.IGNORECASE)


def map_sqlite_exception(exc: BaseException) -> PersistenceError:
    msg = str(exc)
    if isinstance(exc, sqlite3.OperationalError) and _LOCKED_PAT.search(msg):
        return PersistenceError(
            "The settings database is locked by another process.",
            remediation="Close other instances of the application and retry.",
        )
    return PersistenceError(
        f"Settings database error: {msg}",
        remediation="Verify the settings file is writable and not corrupted.",
    )


class SQLiteSettingsBackend(SettingsBackend):
    """Relational settings backend: one ``settings`` table, one connection.

    - Opens one long-lived connection on open()
    - Autocommit mode, so every statement is durable when it returns
    """

    backend: str = "sqlite"

    def __init__(self, db_path: Path | str) -> None:
        self._db_path = Path(db_path)
        self._connection: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._db_path

    def open(self) -> None:
        with self._lock:
            if self._connection is not None:
                return
            try:
                self._db_path.parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(
                    str(self._db_path),
                    timeout=30.0,
                    isolation_level=None,
                    check_same_thread=False,
                )
                conn.execute("PRAGMA journal_mode=WAL").fetchone()
                conn.execute("PRAGMA synchronous=NORMAL")
                conn.execute("PRAGMA busy_timeout=5000")
                conn.execute(_SCHEMA)
            except (sqlite3.Error, OSError) as exc:
                raise map_sqlite_exception(exc) from exc
            self._connection = conn

    def close(self) -> None:
        with self._lock:
            if self._connection is None:
                return
            try:
                self._connection.close()
            finally:
                self._connection = None

    def get(self, key: str) -> Optional[str]:
        row = self._fetchone("SELECT value FROM settings WHERE key = ?", (key,))
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        self._execute(_UPSERT, (key, value, key))

    def delete(self, key: str) -> None:
        self._execute("DELETE FROM settings WHERE key = ?", (key,))

    def clear(self) -> None:
        self._execute("DELETE FROM settings")

    def keys(self) -> list[str]:
        with self._lock:
            conn = self._ensure_connection()
            try:
                rows = conn.execute("SELECT key FROM settings ORDER BY key").fetchall()
            except sqlite3.Error as exc:
                raise map_sqlite_exception(exc) from exc
        return [row[0] for row in rows]

    def flush(self) -> None:
        # Autocommit: nothing is pending once a statement returns
        with self._lock:
            conn = self._ensure_connection()
            if conn.in_transaction:
                conn.commit()

    def timestamps(self, key: str) -> Optional[tuple[str, str]]:
        row = self._fetchone("SELECT created_at, updated_at FROM settings WHERE key = ?", (key,))
        return (row[0], row[1]) if row else None

    def _ensure_connection(self) -> sqlite3.Connection:
        if self._connection is None:
            raise PersistenceError("Settings backend is not open.")
        return self._connection

    def _execute(self, sql: str, params: tuple = ()) -> None:
        with self._lock:
            conn = self._ensure_connection()
            try:
                conn.execute(sql, params)
            except sqlite3.Error as exc:
                raise map_sqlite_exception(exc) from exc

    def _fetchone(self, sql: str, params: tuple = ()) -> Optional[tuple]:
        with self._lock:
            conn = self._ensure_connection()
            try:
                return conn.execute(sql, params).fetchone()
            except sqlite3.Error as exc:
                raise map_sqlite_exception(exc) from exc


__all__ = ["SQLiteSettingsBackend", "map_sqlite_exception"]
