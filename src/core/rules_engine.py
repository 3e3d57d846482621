"""Rule compilation and matching logic (core domain)."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import re
from typing import Any, Iterable, Optional, Tuple

from core.models import Rule
from core.patterns import compile_pattern

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompiledRule:
    """An enabled rule paired with its compiled matcher."""

    rule: Rule
    matcher: re.Pattern


def build_rules(rules_config: Iterable[Any]) -> Tuple[CompiledRule, ...]:
    """Filter disabled rules and compile the rest, preserving persisted order.

    Rules that compile to nothing (blank or broken patterns) are dropped here
    so they can never take part in matching.
    """

    compiled: list[CompiledRule] = []
    for raw in rules_config:
        if isinstance(raw, Rule):
            rule = raw
        elif isinstance(raw, dict):
            rule = Rule.from_dict(raw)
        else:
            continue
        if not rule.enabled:
            continue
        matcher = compile_pattern(rule.pattern, rule.type)
        if matcher is None:
            continue
        compiled.append(CompiledRule(rule=rule, matcher=matcher))
    return tuple(compiled)


def first_match(url: str, rules: Iterable[CompiledRule]) -> Optional[CompiledRule]:
    """Return the first rule (in persisted order) whose matcher fires."""

    for compiled in rules:
        if compiled.matcher.search(url):
            return compiled
    return None


def match_url(url: str, rules: Iterable[CompiledRule]) -> bool:
    """True iff any compiled rule matches the URL."""

    return first_match(url, rules) is not None


class RuleSet:
    """Versioned cache of the compiled, currently-active rules.

    ``rebuild`` builds the new tuple completely before swapping the single
    reference, so readers only ever see a full old or a full new generation.
    """

    def __init__(self, rules_config: Iterable[Any] = ()) -> None:
        self._rules: Tuple[CompiledRule, ...] = build_rules(rules_config)
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    def snapshot(self) -> Tuple[CompiledRule, ...]:
        return self._rules

    def rebuild(self, rules_config: Iterable[Any]) -> Tuple[CompiledRule, ...]:
        rules = build_rules(rules_config)
        self._rules = rules
        self._generation += 1
        LOGGER.debug("Rule set generation %s: %s active rules", self._generation, len(rules))
        return rules

    def __len__(self) -> int:
        return len(self._rules)
