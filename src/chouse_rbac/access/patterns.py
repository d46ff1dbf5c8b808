"""Database/table name pattern matching.

A pattern is one of:

* ``*`` -- matches every name;
* ``/regex/`` -- case-insensitive regular expression search; an invalid
  expression matches nothing;
* a string containing ``*`` -- glob, anchored to the full name, where ``*``
  matches any run of characters and everything else is literal;
* anything else -- exact, case-insensitive comparison.
"""

import functools
import logging
import re

from chouse_rbac.constants import WILDCARD

logger = logging.getLogger(__name__)


def is_regex_pattern(pattern: str) -> bool:
    return len(pattern) >= 3 and pattern.startswith("/") and pattern.endswith("/")


def pattern_to_regex(pattern: str) -> str:
    """``prod_*`` -> ``^prod_.*$`` with every other character escaped."""
    return "^" + ".*".join(re.escape(part) for part in pattern.split(WILDCARD)) + "$"


@functools.lru_cache(maxsize=1024)
def _compile(pattern: str) -> re.Pattern[str] | None:
    if is_regex_pattern(pattern):
        source = pattern[1:-1]
    elif WILDCARD in pattern:
        source = pattern_to_regex(pattern)
    else:
        return None
    try:
        return re.compile(source, re.IGNORECASE)
    except re.error:
        logger.warning("Ignoring invalid access rule pattern %r", pattern)
        return None


def matches_pattern(value: str, pattern: str) -> bool:
    """Return ``True`` if *value* matches *pattern* (see module docstring)."""
    if pattern == WILDCARD:
        return True
    if is_regex_pattern(pattern) or WILDCARD in pattern:
        compiled = _compile(pattern)
        return compiled is not None and compiled.search(value) is not None
    return value.lower() == pattern.lower()


def is_valid_pattern(pattern: str) -> bool:
    """False only for ``/regex/`` patterns that fail to compile."""
    return not is_regex_pattern(pattern) or _compile(pattern) is not None
