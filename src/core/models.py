"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to the persisted JSON layout. Wire names stay camelCase so exported
state matches what the host UI consumes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
import re
from typing import Any, Optional

DOMAIN = "domain"
KEYWORD = "keyword"

_ISO_TIMESTAMP = re.compile(r"\d{4}-\d{2}-\d{2}T")


@dataclass(frozen=True)
class Rule:
    """A user-defined pattern describing URLs to purge from history."""

    pattern: str
    type: str = KEYWORD
    enabled: bool = True

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Rule":
        # A missing "enabled" field means enabled.
        return cls(
            pattern=str(raw.get("pattern") or ""),
            type=str(raw.get("type") or KEYWORD),
            enabled=raw.get("enabled") is not False,
        )

    def to_dict(self) -> dict[str, Any]:
        return {"pattern": self.pattern, "type": self.type, "enabled": self.enabled}


def normalize_match_type(value: Optional[str]) -> str:
    """Anything that is not explicitly a domain rule is a keyword rule."""

    return DOMAIN if value == DOMAIN else KEYWORD


def normalize_last_reset(value: Any, today: date) -> str:
    """Return a YYYY-MM-DD string, truncating legacy full timestamps."""

    if isinstance(value, str) and _ISO_TIMESTAMP.match(value):
        try:
            moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value[:10]
        if moment.tzinfo is not None:
            moment = moment.astimezone(timezone.utc)
        return moment.date().isoformat()
    if isinstance(value, str) and value:
        return value
    return today.isoformat()


@dataclass
class Counters:
    deleted_count: int = 0
    last_reset: str = ""

    @classmethod
    def from_dict(cls, raw: dict[str, Any], today: date) -> "Counters":
        try:
            deleted = max(int(raw.get("deletedCount", 0)), 0)
        except (TypeError, ValueError):
            deleted = 0
        return cls(
            deleted_count=deleted,
            last_reset=normalize_last_reset(raw.get("lastReset"), today),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"deletedCount": self.deleted_count, "lastReset": self.last_reset}


@dataclass(frozen=True)
class LogEntry:
    """One audit record of a performed deletion."""

    url: str
    source: str
    ts: int

    def to_dict(self) -> dict[str, Any]:
        return {"url": self.url, "source": self.source, "ts": self.ts}


@dataclass
class State:
    """The unit of persistence: rules, counters and logs."""

    rules: list[dict[str, Any]] = field(default_factory=list)
    counters: Counters = field(default_factory=Counters)
    logs: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "rules": list(self.rules),
            "counters": self.counters.to_dict(),
            "logs": list(self.logs),
        }
