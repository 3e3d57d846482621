"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class PipelineConfig:
    """Timing and reporting settings for the deletion pipeline."""

    # Delay before a committed navigation is evaluated, so the visit event
    # usually wins the race.
    commit_delay_seconds: float = 0.3
    log_window_days: int = 30


@dataclass(frozen=True)
class WatcherConfig:
    """Polling intervals for the host adapters."""

    visit_poll_seconds: float = 2.0
    rules_poll_seconds: float = 1.0
