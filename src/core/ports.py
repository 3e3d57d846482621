"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for the persisted state store and the
history deletion API so the core can run against different hosts.
"""

from __future__ import annotations

from typing import Any, Callable, Protocol


class StatePort(Protocol):
    """Key-value store holding the rules, counters and logs keys."""

    def get(self, defaults: dict[str, Any]) -> dict[str, Any]:
        ...

    def update(
        self,
        defaults: dict[str, Any],
        mutate: Callable[[dict[str, Any]], dict[str, Any]],
    ) -> dict[str, Any]:
        """Read, apply ``mutate`` and write its result as one transaction.

        Concurrent updates, including ones from other processes, are
        serialized. Returns the values that were written.
        """
        ...

    def revision(self, key: str) -> int:
        ...


class HistoryPort(Protocol):
    """History deletion operations required by the core pipeline."""

    async def delete_url(self, url: str) -> None:
        """Delete every history entry for the URL; raise on failure."""
        ...
