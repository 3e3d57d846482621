"""Message-style command API for rules, counters and logs.

Every mutation is one atomic state update: it reads the current state,
applies exactly one change and writes back only the key it touched. Rule
mutations rebuild the RuleSet as soon as the write commits. Invalid input
(blank pattern, bad index, malformed URL) is a silent no-op that is still
acknowledged.
"""

from __future__ import annotations

from datetime import timedelta
import logging
from typing import Any, Optional
from urllib.parse import urlsplit

from core.clock import Clock, epoch_millis
from core.config import PipelineConfig
from core.models import DOMAIN, KEYWORD, Rule, State, normalize_match_type
from core.rules_engine import RuleSet
from core.state import COUNTERS_KEY, LOGS_KEY, RULES_KEY, StateRepository

LOGGER = logging.getLogger(__name__)

OK = {"ok": True}


def _valid_index(index: Any, rules: list[Any]) -> bool:
    # bool is an int subclass, but True is not a rule index.
    return isinstance(index, int) and not isinstance(index, bool) and 0 <= index < len(rules)


def site_pattern(page_url: str) -> Optional[str]:
    """Hostname of a page URL with a leading ``www.`` stripped."""

    try:
        hostname = urlsplit(page_url).hostname
    except ValueError:
        # Malformed netloc, e.g. an unterminated IPv6 literal.
        return None
    if not hostname:
        return None
    if hostname.startswith("www."):
        hostname = hostname[len("www."):]
    return hostname or None


class CommandService:
    """Owns every state mutation requested by the host UI or the CLI."""

    def __init__(
        self,
        repository: StateRepository,
        rule_set: RuleSet,
        clock: Clock,
        config: Optional[PipelineConfig] = None,
    ) -> None:
        self._repository = repository
        self._rule_set = rule_set
        self._clock = clock
        self._config = config or PipelineConfig()

    async def reload_rules(self) -> int:
        """Recompile the RuleSet from the persisted rule list."""

        rules = await self._repository.read_rules()
        return len(self._rule_set.rebuild(rules))

    async def get_state(self) -> dict[str, Any]:
        state = await self._repository.read()
        now = self._clock.now()
        now_ms = epoch_millis(now)
        cutoff = epoch_millis(now - timedelta(days=self._config.log_window_days))
        recent = sum(
            1
            for entry in state.logs
            if isinstance(entry, dict)
            and isinstance(entry.get("ts"), (int, float))
            and cutoff <= entry["ts"] <= now_ms
        )
        payload = state.to_dict()
        payload["last30Count"] = recent
        return payload

    async def export_state(self) -> dict[str, Any]:
        state = await self._repository.read()
        return {"state": state.to_dict()}

    def _rebuild(self, written: dict[str, Any]) -> None:
        if RULES_KEY in written:
            self._rule_set.rebuild(written[RULES_KEY])

    async def _append_rule(self, rule: Rule) -> None:
        def _append(state: State) -> dict[str, Any]:
            return {RULES_KEY: state.rules + [rule.to_dict()]}

        await self._repository.update(_append, on_commit=self._rebuild)
        LOGGER.info("Added %s rule %r", rule.type, rule.pattern)

    async def add_rule(self, pattern: Optional[str], match_type: Optional[str] = None) -> dict[str, Any]:
        # Duplicate patterns are allowed; each add appends.
        pattern = str(pattern or "").strip()
        if pattern:
            await self._append_rule(Rule(pattern=pattern, type=normalize_match_type(match_type)))
        return dict(OK)

    async def add_site_rule(self, page_url: Optional[str]) -> dict[str, Any]:
        pattern = site_pattern(page_url) if isinstance(page_url, str) else None
        if pattern:
            await self._append_rule(Rule(pattern=pattern, type=DOMAIN))
        return dict(OK)

    async def add_url_keyword_rule(self, page_url: Optional[str]) -> dict[str, Any]:
        return await self.add_rule(page_url, KEYWORD)

    async def remove_rule(self, index: Any) -> dict[str, Any]:
        def _remove(state: State) -> dict[str, Any]:
            if not _valid_index(index, state.rules):
                return {}
            removed = state.rules.pop(index)
            LOGGER.info("Removed rule %s: %r", index, removed)
            return {RULES_KEY: state.rules}

        await self._repository.update(_remove, on_commit=self._rebuild)
        return dict(OK)

    async def toggle_rule(self, index: Any) -> dict[str, Any]:
        def _toggle(state: State) -> dict[str, Any]:
            if not _valid_index(index, state.rules) or not isinstance(state.rules[index], dict):
                return {}
            rule = dict(state.rules[index])
            rule["enabled"] = rule.get("enabled") is False
            state.rules[index] = rule
            LOGGER.info("Rule %s enabled=%s", index, rule["enabled"])
            return {RULES_KEY: state.rules}

        await self._repository.update(_toggle, on_commit=self._rebuild)
        return dict(OK)

    async def reset_counter(self) -> dict[str, Any]:
        def _reset(state: State) -> dict[str, Any]:
            state.counters.deleted_count = 0
            state.counters.last_reset = self._repository.today()
            return {COUNTERS_KEY: state.counters.to_dict()}

        await self._repository.update(_reset)
        return dict(OK)

    async def clear_logs(self) -> dict[str, Any]:
        await self._repository.update(lambda state: {LOGS_KEY: []})
        return dict(OK)

    async def dispatch(self, message: dict[str, Any]) -> dict[str, Any]:
        """Route one host request message to its command."""

        kind = message.get("type")
        if kind == "getState":
            return await self.get_state()
        if kind == "addRule":
            return await self.add_rule(message.get("pattern"), message.get("matchType"))
        if kind == "removeRule":
            return await self.remove_rule(message.get("index"))
        if kind == "toggleRule":
            return await self.toggle_rule(message.get("index"))
        if kind == "resetCounter":
            return await self.reset_counter()
        if kind == "clearLogs":
            return await self.clear_logs()
        if kind == "exportState":
            return await self.export_state()
        if kind == "addSiteRule":
            return await self.add_site_rule(message.get("pageUrl"))
        if kind == "addUrlKeyword":
            return await self.add_url_keyword_rule(message.get("pageUrl"))
        return {"ok": False, "error": "unknown message type"}
