"""Core deletion pipeline.

This module is host-agnostic. It only relies on ports for state and history
deletion, so any event source can feed it.

For a matched URL the order is strict:
1) Delete the URL from history (abort on failure)
2) In one state update, re-read counters and logs, increment
   deletedCount, append one log entry and persist both together
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from core.clock import Clock, epoch_millis
from core.config import PipelineConfig
from core.models import LogEntry, State
from core.ports import HistoryPort
from core.rules_engine import RuleSet, first_match
from core.state import COUNTERS_KEY, LOGS_KEY, StateRepository

LOGGER = logging.getLogger(__name__)

SOURCE_VISITED = "history.onVisited"
SOURCE_COMMITTED = "webNavigation.onCommitted"


class DeletionPipeline:
    """Orchestrates matching, history deletion and the audit update."""

    def __init__(
        self,
        rule_set: RuleSet,
        repository: StateRepository,
        history: HistoryPort,
        clock: Clock,
        config: Optional[PipelineConfig] = None,
    ) -> None:
        self._rule_set = rule_set
        self._repository = repository
        self._history = history
        self._clock = clock
        self._config = config or PipelineConfig()
        self._pending: set[asyncio.Task] = set()

    async def on_url_observed(self, url: Optional[str], source: str) -> bool:
        """Process one observed URL. Returns True when a deletion was recorded."""

        # Fast exits keep the hot path free of state reads. Hosts may send
        # anything as a url; only non-empty strings are evaluated.
        if not url or not isinstance(url, str):
            return False
        rules = self._rule_set.snapshot()
        if not rules:
            return False

        matched = first_match(url, rules)
        if matched is None:
            return False
        LOGGER.debug("URL matched %s rule %r", matched.rule.type, matched.rule.pattern)

        try:
            await self._history.delete_url(url)
        except Exception:
            # The next navigation to a matching URL is the next attempt.
            LOGGER.exception("Failed to delete history for %s", url)
            return False

        entry = LogEntry(url=url, source=source, ts=epoch_millis(self._clock.now()))

        def _record(state: State) -> dict[str, Any]:
            state.counters.deleted_count += 1
            state.logs.append(entry.to_dict())
            return {COUNTERS_KEY: state.counters.to_dict(), LOGS_KEY: state.logs}

        try:
            await self._repository.update(_record)
        except Exception:
            LOGGER.exception("Deleted %s but failed to record it", url)
            return False

        LOGGER.info("Deleted history for %s (%s)", url, source)
        return True

    async def on_visited(self, url: Optional[str]) -> bool:
        return await self.on_url_observed(url, SOURCE_VISITED)

    def on_navigation_committed(self, url: Optional[str], is_top_frame: bool) -> Optional[asyncio.Task]:
        """Schedule a delayed evaluation of a committed top-frame navigation.

        The delay lets the visit event handle the URL first; a later
        navigation does not cancel an already scheduled check.
        """

        if not url or not isinstance(url, str) or not is_top_frame:
            return None
        task = asyncio.get_running_loop().create_task(self._delayed_check(url))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _delayed_check(self, url: str) -> None:
        await asyncio.sleep(self._config.commit_delay_seconds)
        await self.on_url_observed(url, SOURCE_COMMITTED)

    async def drain(self) -> None:
        """Wait for every scheduled navigation check to finish."""

        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
