"""Pure allow/deny decision over a principal's candidate rules."""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Protocol

from chouse_rbac.access.patterns import matches_pattern
from chouse_rbac.constants import SYSTEM_DATABASES

REASON_SYSTEM_DATABASE = "System database access allowed by default"
REASON_NO_RULES = "No access rules defined"
REASON_NO_MATCH = "No matching access rule"


class RuleLike(Protocol):
    """Fields of a data access rule that take part in evaluation."""

    @property
    def database_pattern(self) -> str: ...

    @property
    def table_pattern(self) -> str: ...

    @property
    def is_allowed(self) -> bool: ...

    @property
    def priority(self) -> int: ...


@dataclass(frozen=True, slots=True)
class AccessDecision:
    """Result of an access check. ``rule`` is the deciding rule, if any."""

    allowed: bool
    reason: str
    rule: RuleLike | None = None


def is_system_database(database: str) -> bool:
    return database in SYSTEM_DATABASES


def rank_rules(rules: Iterable[RuleLike]) -> list[RuleLike]:
    """Order by priority descending; at equal priority deny rules come first."""
    return sorted(rules, key=lambda rule: (-rule.priority, rule.is_allowed))


def evaluate_rules(rules: Sequence[RuleLike], database: str, table: str | None = None) -> AccessDecision:
    """Decide access to *database* (and optionally *table*).

    System databases are always allowed. Otherwise the first rule in rank order
    whose database pattern matches, and whose table pattern matches when a
    table is given, decides. No rules, or no matching rule, means deny.
    ``access_type`` is carried on rules but does not take part in matching.
    """
    if is_system_database(database):
        return AccessDecision(True, REASON_SYSTEM_DATABASE)
    if not rules:
        return AccessDecision(False, REASON_NO_RULES)

    for rule in rank_rules(rules):
        if not matches_pattern(database, rule.database_pattern):
            continue
        if table is not None and not matches_pattern(table, rule.table_pattern):
            continue
        verdict = "Allowed" if rule.is_allowed else "Denied"
        return AccessDecision(rule.is_allowed, f"{verdict} by rule: {rule.database_pattern}.{rule.table_pattern}", rule)

    return AccessDecision(False, REASON_NO_MATCH)


def filter_allowed_databases(rules: Sequence[RuleLike], databases: Iterable[str]) -> list[str]:
    """Allowed subset of *databases* for a browse listing. System databases are never listed."""
    if not rules:
        return []
    return [db for db in databases if not is_system_database(db) and evaluate_rules(rules, db).allowed]


def filter_allowed_tables(rules: Sequence[RuleLike], database: str, tables: Iterable[str]) -> list[str]:
    """Allowed subset of *tables* in *database*."""
    if not rules:
        return []
    return [table for table in tables if evaluate_rules(rules, database, table).allowed]
