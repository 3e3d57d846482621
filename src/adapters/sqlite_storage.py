"""SQLite storage adapter.

Implements the core StatePort as a small key-value table of JSON documents.
Read-modify-write updates run under ``BEGIN IMMEDIATE`` so a CLI process and
the running service never interleave inside one update.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from typing import Any, Callable

from core.errors import StoreError

LOGGER = logging.getLogger(__name__)

_UPSERT = """
    INSERT INTO kv (key, value, revision)
    VALUES (?, ?, 1)
    ON CONFLICT(key) DO UPDATE SET
        value = excluded.value,
        revision = kv.revision + 1
"""


class SQLiteStateStore:
    """Thin SQLite wrapper that satisfies the StatePort contract."""

    def __init__(self, db_path: str, timeout: float = 3.0) -> None:
        self._db_path = db_path
        self._timeout = timeout

    def _connect(self) -> sqlite3.Connection:
        # Autocommit mode: transactions are opened explicitly where needed.
        conn = sqlite3.connect(self._db_path, timeout=self._timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create the kv table if it does not exist.

        Fields:
        - key: top-level state key (rules, counters, logs)
        - value: JSON document for that key
        - revision: bumped on every write so other processes can notice edits
        """

        conn = self._connect()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    revision INTEGER NOT NULL DEFAULT 1
                )
                """
            )
        finally:
            conn.close()

    @staticmethod
    def _read(conn: sqlite3.Connection, defaults: dict[str, Any]) -> dict[str, Any]:
        result = dict(defaults)
        if not defaults:
            return result
        placeholders = ", ".join("?" for _ in defaults)
        rows = conn.execute(
            f"SELECT key, value FROM kv WHERE key IN ({placeholders})",
            tuple(defaults),
        ).fetchall()
        for row in rows:
            try:
                result[row["key"]] = json.loads(row["value"])
            except ValueError:
                LOGGER.warning("Ignoring undecodable value for key %s", row["key"])
        return result

    @staticmethod
    def _write(conn: sqlite3.Connection, values: dict[str, Any]) -> None:
        conn.executemany(_UPSERT, [(key, json.dumps(value)) for key, value in values.items()])

    def get(self, defaults: dict[str, Any]) -> dict[str, Any]:
        """Return stored values for the requested keys, falling back to defaults."""

        try:
            conn = self._connect()
            try:
                return self._read(conn, defaults)
            finally:
                conn.close()
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to read state: {exc}") from exc

    def update(
        self,
        defaults: dict[str, Any],
        mutate: Callable[[dict[str, Any]], dict[str, Any]],
    ) -> dict[str, Any]:
        """Read, mutate and write inside one write-locked transaction.

        ``BEGIN IMMEDIATE`` takes the database write lock before reading, so
        any other writer waits (up to the busy timeout) until this commits.
        """

        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to open state: {exc}") from exc
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                changes = mutate(self._read(conn, defaults))
                if changes:
                    self._write(conn, changes)
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
            return changes
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to update state: {exc}") from exc
        finally:
            conn.close()

    def set(self, values: dict[str, Any]) -> None:
        """Write all keys in one transaction."""

        self.update({}, lambda current: values)

    def revision(self, key: str) -> int:
        """Return the write revision of a key, 0 when it was never written."""

        conn = self._connect()
        try:
            row = conn.execute("SELECT revision FROM kv WHERE key = ?", (key,)).fetchone()
        finally:
            conn.close()
        return int(row["revision"]) if row else 0
