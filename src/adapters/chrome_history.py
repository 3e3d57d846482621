"""Chromium history adapter.

Implements the core HistoryPort against a Chromium ``History`` SQLite file
and exposes the visit cursor used by the visit watcher.

Relevant schema (Chromium):
- urls(id INTEGER PRIMARY KEY, url LONGVARCHAR, ...)
- visits(id INTEGER PRIMARY KEY, url INTEGER -> urls.id, visit_time, ...)
"""

from __future__ import annotations

import asyncio
import os
import sqlite3

from core.errors import HistoryDeletionError


class ChromeHistory:
    """History store adapter that deletes URLs and lists new visits."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        # sqlite3.connect would silently create an empty database otherwise.
        if not os.path.exists(self._db_path):
            raise FileNotFoundError(f"History database not found: {self._db_path}")
        conn = sqlite3.connect(self._db_path, timeout=3)
        conn.row_factory = sqlite3.Row
        return conn

    def _delete_url_sync(self, url: str) -> int:
        with self._connect() as conn:
            url_ids = [
                row["id"] for row in conn.execute("SELECT id FROM urls WHERE url = ?", (url,)).fetchall()
            ]
            if not url_ids:
                return 0
            placeholders = ", ".join("?" for _ in url_ids)
            conn.execute(f"DELETE FROM visits WHERE url IN ({placeholders})", url_ids)
            cur = conn.execute(f"DELETE FROM urls WHERE id IN ({placeholders})", url_ids)
            return cur.rowcount

    async def delete_url(self, url: str) -> None:
        """Delete the URL and all of its visits in one transaction."""

        try:
            await asyncio.to_thread(self._delete_url_sync, url)
        except (OSError, sqlite3.Error) as exc:
            raise HistoryDeletionError(f"Could not delete {url}: {exc}") from exc

    def latest_visit_id(self) -> int:
        """Return the newest visit id, 0 for an empty history."""

        with self._connect() as conn:
            row = conn.execute("SELECT MAX(id) AS max_id FROM visits").fetchone()
        return int(row["max_id"] or 0)

    def visits_after(self, visit_id: int, limit: int = 500) -> list[tuple[int, str]]:
        """Return (visit_id, url) pairs newer than visit_id, oldest first."""

        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT visits.id AS visit_id, urls.url AS url
                FROM visits
                JOIN urls ON urls.id = visits.url
                WHERE visits.id > ?
                ORDER BY visits.id
                LIMIT ?
                """,
                (visit_id, limit),
            ).fetchall()
        return [(int(row["visit_id"]), row["url"]) for row in rows]
