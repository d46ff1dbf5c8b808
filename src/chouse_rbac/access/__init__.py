"""Data access policy: pattern matching, rule evaluation and rule storage."""

from chouse_rbac.access.evaluator import AccessDecision, evaluate_rules, is_system_database, rank_rules
from chouse_rbac.access.patterns import matches_pattern
from chouse_rbac.access.schemas import AccessCheckResult, RuleCreate, RuleDefinition, RuleResponse, RuleUpdate
from chouse_rbac.access.service import DataAccessService

__all__ = [
    "AccessCheckResult",
    "AccessDecision",
    "DataAccessService",
    "RuleCreate",
    "RuleDefinition",
    "RuleResponse",
    "RuleUpdate",
    "evaluate_rules",
    "is_system_database",
    "matches_pattern",
    "rank_rules",
]
