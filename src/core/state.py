"""Persisted state access with a single writer.

Every state mutation goes through ``StateRepository.update``. The mutation is
handed to the store, which runs the read, the change and the write as one
transaction, so writers in other processes (the CLI editing a running
service's database) can only land before or after it, never in between.
Inside one process ``lock`` also keeps concurrent updates from piling up on
the store.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

from core.clock import Clock
from core.models import Counters, State
from core.ports import StatePort

LOGGER = logging.getLogger(__name__)

RULES_KEY = "rules"
COUNTERS_KEY = "counters"
LOGS_KEY = "logs"

Mutation = Callable[[State], dict[str, Any]]


class StateRepository:
    """Reads State with defaults and migration, applies atomic updates."""

    def __init__(self, store: StatePort, clock: Clock) -> None:
        self._store = store
        self._clock = clock
        self.lock = asyncio.Lock()

    def today(self) -> str:
        return self._clock.now().date().isoformat()

    def _defaults(self) -> dict[str, Any]:
        return {
            RULES_KEY: [],
            COUNTERS_KEY: {"deletedCount": 0, "lastReset": self.today()},
            LOGS_KEY: [],
        }

    def _to_state(self, data: dict[str, Any]) -> tuple[State, bool]:
        """Build State from raw store values; flag a migrated lastReset."""

        raw_counters = data.get(COUNTERS_KEY)
        if not isinstance(raw_counters, dict):
            raw_counters = {}
        counters = Counters.from_dict(raw_counters, self._clock.now().date())
        migrated = "lastReset" in raw_counters and raw_counters["lastReset"] != counters.last_reset

        rules = data.get(RULES_KEY)
        logs = data.get(LOGS_KEY)
        state = State(
            rules=list(rules) if isinstance(rules, list) else [],
            counters=counters,
            logs=list(logs) if isinstance(logs, list) else [],
        )
        return state, migrated

    async def read(self) -> State:
        """Return the current State, rewriting legacy lastReset timestamps."""

        data = await asyncio.to_thread(self._store.get, self._defaults())
        state, migrated = self._to_state(data)
        if migrated:
            try:
                # The update re-reads, so it never writes back stale counters.
                await self.update(lambda current: {})
            except Exception:
                LOGGER.warning("Could not persist migrated lastReset", exc_info=True)
        return state

    async def read_rules(self) -> list[Any]:
        data = await asyncio.to_thread(self._store.get, {RULES_KEY: []})
        rules = data.get(RULES_KEY)
        return list(rules) if isinstance(rules, list) else []

    async def update(
        self,
        mutate: Mutation,
        on_commit: Optional[Callable[[dict[str, Any]], None]] = None,
    ) -> dict[str, Any]:
        """Apply one read-modify-write atomically and return what was written.

        ``mutate`` receives the current State and returns the top-level keys
        to persist. ``on_commit`` runs with those values after the write and
        before the next update can start.
        """

        def _apply(data: dict[str, Any]) -> dict[str, Any]:
            state, migrated = self._to_state(data)
            changes = dict(mutate(state))
            if migrated and COUNTERS_KEY not in changes:
                changes[COUNTERS_KEY] = state.counters.to_dict()
            return changes

        async with self.lock:
            written = await asyncio.to_thread(self._store.update, self._defaults(), _apply)
            if on_commit is not None:
                on_commit(written)
        return written

    def rules_revision(self) -> int:
        return self._store.revision(RULES_KEY)
