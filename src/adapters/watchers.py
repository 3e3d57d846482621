"""Polling watchers that turn host state changes into core events."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from adapters.chrome_history import ChromeHistory
from core.processor import DeletionPipeline

LOGGER = logging.getLogger(__name__)


class VisitWatcher:
    """Feed new history visits to the pipeline as visit events.

    The cursor starts at the newest visit on the first poll so existing
    history is never replayed on startup.
    """

    def __init__(self, history: ChromeHistory, pipeline: DeletionPipeline, poll_seconds: float) -> None:
        self._history = history
        self._pipeline = pipeline
        self._poll_seconds = poll_seconds
        self._cursor: Optional[int] = None

    async def poll_once(self) -> int:
        if self._cursor is None:
            self._cursor = await asyncio.to_thread(self._history.latest_visit_id)
            return 0

        visits = await asyncio.to_thread(self._history.visits_after, self._cursor)
        for visit_id, url in visits:
            self._cursor = visit_id
            await self._pipeline.on_visited(url)
        return len(visits)

    async def run(self, stop: asyncio.Event) -> None:
        while not stop.is_set():
            try:
                await self.poll_once()
            except Exception:
                LOGGER.exception("Error while polling history visits")
            await _wait(stop, self._poll_seconds)


class RuleRevisionWatcher:
    """Rebuild the RuleSet when the persisted rule list changes elsewhere."""

    def __init__(
        self,
        revision: Callable[[], int],
        reload_rules: Callable[[], Awaitable[int]],
        poll_seconds: float,
    ) -> None:
        self._revision = revision
        self._reload_rules = reload_rules
        self._poll_seconds = poll_seconds
        self._seen: Optional[int] = None

    async def poll_once(self) -> bool:
        current = await asyncio.to_thread(self._revision)
        if current == self._seen:
            return False
        count = await self._reload_rules()
        # Only a successful reload marks the revision as seen, so a failed
        # one is retried on the next poll.
        self._seen = current
        LOGGER.info("Rules changed (revision %s), %s rules are active", current, count)
        return True

    async def run(self, stop: asyncio.Event) -> None:
        while not stop.is_set():
            try:
                await self.poll_once()
            except Exception:
                LOGGER.exception("Error while checking for rule changes")
            await _wait(stop, self._poll_seconds)


async def _wait(stop: asyncio.Event, seconds: float) -> None:
    try:
        await asyncio.wait_for(stop.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        pass
