"""Pattern compilation (core domain).

User patterns are never interpreted as regex syntax. Everything is escaped
first; the only feature reintroduced afterwards is the ``*`` wildcard for
domain rules, so ``*.example.com`` works without opening regex injection.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from core.models import DOMAIN

LOGGER = logging.getLogger(__name__)

_ESCAPED_STAR = re.escape("*")


def domain_regex(pattern: str) -> str:
    """Return the regex source for a domain rule.

    The pattern must sit on a host label boundary and be followed by the end
    of the URL or a path separator, so ``example.com`` does not match
    ``notexample.com`` or ``example.com.evil.org``.
    """

    escaped = re.escape(pattern).replace(_ESCAPED_STAR, ".*")
    return rf"^https?://(?:[^/]*\.)?{escaped}(?:/|$)"


def compile_pattern(pattern: Optional[str], rule_type: Optional[str]) -> Optional[re.Pattern]:
    """Compile one rule into a case-insensitive matcher, or None if inert."""

    pattern = (pattern or "").strip()
    if not pattern:
        return None

    if rule_type == DOMAIN:
        source = domain_regex(pattern)
    else:
        source = re.escape(pattern)

    try:
        return re.compile(source, re.IGNORECASE)
    except re.error as exc:
        LOGGER.warning("Skipping rule %r (%s): %s", pattern, rule_type, exc)
        return None
