"""Data access rules: storage, scoping and principal-level access checks."""

import logging
from collections.abc import Iterable

from sqlalchemy import Select, delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from chouse_rbac.access.evaluator import evaluate_rules, filter_allowed_databases, filter_allowed_tables
from chouse_rbac.access.patterns import is_valid_pattern
from chouse_rbac.access.schemas import AccessCheckResult, RuleCreate, RuleDefinition, RuleResponse, RuleUpdate
from chouse_rbac.audit.service import AuditRecorder
from chouse_rbac.constants import DEFAULT_RULE_PAGE_LIMIT, MAX_RULE_PAGE_LIMIT
from chouse_rbac.db.enums import AccessType, AuditAction
from chouse_rbac.db.models.access import DataAccessRule
from chouse_rbac.db.models.identity import Role, User, UserRole
from chouse_rbac.exceptions import NotFoundError, ValidationError
from chouse_rbac.schemas import PaginatedResult, clamp_page

logger = logging.getLogger(__name__)

_NULLABLE_FIELDS = frozenset({"connection_id", "description"})


def to_rule_response(rule: DataAccessRule) -> RuleResponse:
    return RuleResponse(
        id=rule.id,
        role_id=rule.role_id,
        user_id=rule.user_id,
        connection_id=rule.connection_id,
        database_pattern=rule.database_pattern,
        table_pattern=rule.table_pattern,
        access_type=rule.access_type,
        is_allowed=rule.is_allowed,
        priority=rule.priority,
        description=rule.description,
        created_by=rule.created_by,
        created_at=rule.created_at,
        updated_at=rule.updated_at,
    )


def _validate_scope(role_id: str | None, user_id: str | None) -> None:
    if role_id is None and user_id is None:
        raise ValidationError("Either roleId or userId must be provided")
    if role_id is not None and user_id is not None:
        raise ValidationError("Cannot set both roleId and userId")


def _validate_patterns(*patterns: str | None) -> None:
    for pattern in patterns:
        if pattern is not None and not is_valid_pattern(pattern):
            raise ValidationError(f"Invalid regular expression pattern: {pattern}")


def _connection_scope(stmt: Select, connection_id: str | None) -> Select:
    """Narrow to global rules plus those of *connection_id*. No connection means no narrowing."""
    if connection_id is None:
        return stmt
    return stmt.where(
        or_(DataAccessRule.connection_id.is_(None), DataAccessRule.connection_id == connection_id)
    )


class DataAccessService:
    """Stores rules and answers "may this principal touch this database/table?".

    Candidate rules for a user are their personal rules plus the rules of every
    role they hold, restricted to global rules and rules for the requested
    connection. The decision itself is made by
    :func:`chouse_rbac.access.evaluator.evaluate_rules`.
    """

    def __init__(self, audit: AuditRecorder | None = None) -> None:
        self._audit = audit or AuditRecorder()

    # --- CRUD ---

    async def create_rule(
        self,
        data: RuleCreate,
        session: AsyncSession,
        actor_id: str | None = None,
    ) -> RuleResponse:
        """Create one rule.

        Raises:
            ValidationError: Neither or both of ``role_id``/``user_id`` set, or an invalid regex.
        """
        _validate_scope(data.role_id, data.user_id)
        _validate_patterns(data.database_pattern, data.table_pattern)

        rule = self._build(data, data.role_id, data.user_id, actor_id)
        session.add(rule)
        await session.flush()

        await self._audit.create_audit_log(
            AuditAction.DATA_ACCESS_CREATE,
            actor_id,
            session,
            resource_type="data_access_rule",
            resource_id=rule.id,
            details=data.model_dump(mode="json"),
        )
        return to_rule_response(rule)

    async def get_rule(self, rule_id: str, session: AsyncSession) -> RuleResponse | None:
        rule = await session.get(DataAccessRule, rule_id)
        return to_rule_response(rule) if rule else None

    async def list_rules(
        self,
        session: AsyncSession,
        role_id: str | None = None,
        user_id: str | None = None,
        connection_id: str | None = None,
        page: int = 1,
        limit: int = DEFAULT_RULE_PAGE_LIMIT,
    ) -> PaginatedResult[RuleResponse]:
        """Rules ordered by priority (desc) then database pattern.

        ``connection_id`` includes global rules alongside the connection's own.
        """
        page, limit = clamp_page(page, limit, MAX_RULE_PAGE_LIMIT)
        base = select(DataAccessRule)
        count_base = select(func.count(DataAccessRule.id))

        if role_id is not None:
            base = base.where(DataAccessRule.role_id == role_id)
            count_base = count_base.where(DataAccessRule.role_id == role_id)
        if user_id is not None:
            base = base.where(DataAccessRule.user_id == user_id)
            count_base = count_base.where(DataAccessRule.user_id == user_id)
        if connection_id is not None:
            base = _connection_scope(base, connection_id)
            count_base = _connection_scope(count_base, connection_id)

        total = (await session.execute(count_base)).scalar() or 0
        stmt = (
            base.order_by(DataAccessRule.priority.desc(), DataAccessRule.database_pattern)
            .limit(limit)
            .offset((page - 1) * limit)
        )
        rows = (await session.execute(stmt)).scalars().all()
        return PaginatedResult([to_rule_response(r) for r in rows], total)

    async def update_rule(
        self,
        rule_id: str,
        data: RuleUpdate,
        session: AsyncSession,
        actor_id: str | None = None,
    ) -> RuleResponse:
        rule = await session.get(DataAccessRule, rule_id)
        if rule is None:
            raise NotFoundError("Data access rule", rule_id)
        _validate_patterns(data.database_pattern, data.table_pattern)

        for field, value in data.model_dump(exclude_unset=True).items():
            if value is None and field not in _NULLABLE_FIELDS:
                continue
            setattr(rule, field, value)
        await session.flush()

        await self._audit.create_audit_log(
            AuditAction.DATA_ACCESS_UPDATE,
            actor_id,
            session,
            resource_type="data_access_rule",
            resource_id=rule_id,
            details=data.model_dump(mode="json", exclude_unset=True),
        )
        await session.refresh(rule)
        return to_rule_response(rule)

    async def delete_rule(self, rule_id: str, session: AsyncSession, actor_id: str | None = None) -> bool:
        """Delete one rule. Returns ``False`` if it did not exist."""
        rule = await session.get(DataAccessRule, rule_id)
        if rule is None:
            return False
        details = {"database_pattern": rule.database_pattern, "table_pattern": rule.table_pattern}
        await session.delete(rule)
        await session.flush()

        await self._audit.create_audit_log(
            AuditAction.DATA_ACCESS_DELETE,
            actor_id,
            session,
            resource_type="data_access_rule",
            resource_id=rule_id,
            details=details,
        )
        return True

    # --- Scoped lookups ---

    async def get_rules_for_role(
        self, role_id: str, session: AsyncSession, connection_id: str | None = None
    ) -> list[DataAccessRule]:
        stmt = _connection_scope(select(DataAccessRule).where(DataAccessRule.role_id == role_id), connection_id)
        return list((await session.execute(stmt)).scalars().all())

    async def get_user_specific_rules(
        self, user_id: str, session: AsyncSession, connection_id: str | None = None
    ) -> list[DataAccessRule]:
        stmt = _connection_scope(select(DataAccessRule).where(DataAccessRule.user_id == user_id), connection_id)
        return list((await session.execute(stmt)).scalars().all())

    async def get_rules_for_user(
        self, user_id: str, session: AsyncSession, connection_id: str | None = None
    ) -> list[DataAccessRule]:
        """Personal rules plus rules inherited from every role the user holds."""
        role_ids = select(UserRole.role_id).where(UserRole.user_id == user_id)
        stmt = select(DataAccessRule).where(
            or_(DataAccessRule.user_id == user_id, DataAccessRule.role_id.in_(role_ids))
        )
        stmt = _connection_scope(stmt, connection_id)
        return list((await session.execute(stmt)).scalars().all())

    # --- Bulk replacement ---

    async def set_rules_for_role(
        self,
        role_id: str,
        rules: Iterable[RuleDefinition],
        session: AsyncSession,
        actor_id: str | None = None,
    ) -> list[RuleResponse]:
        """Replace every rule of *role_id* with *rules* inside one SAVEPOINT."""
        if await session.get(Role, role_id) is None:
            raise NotFoundError("Role", role_id)
        return await self._replace_rules(role_id, None, list(rules), session, actor_id)

    async def set_rules_for_user(
        self,
        user_id: str,
        rules: Iterable[RuleDefinition],
        session: AsyncSession,
        actor_id: str | None = None,
    ) -> list[RuleResponse]:
        """Replace every personal rule of *user_id* with *rules* inside one SAVEPOINT."""
        if await session.get(User, user_id) is None:
            raise NotFoundError("User", user_id)
        return await self._replace_rules(None, user_id, list(rules), session, actor_id)

    async def delete_rules_for_role(self, role_id: str, session: AsyncSession) -> int:
        cursor = await session.execute(delete(DataAccessRule).where(DataAccessRule.role_id == role_id))
        return cursor.rowcount  # type: ignore[attr-defined,no-any-return]

    async def delete_rules_for_user(self, user_id: str, session: AsyncSession) -> int:
        cursor = await session.execute(delete(DataAccessRule).where(DataAccessRule.user_id == user_id))
        return cursor.rowcount  # type: ignore[attr-defined,no-any-return]

    # --- Access checks ---

    async def check_user_access(
        self,
        user_id: str,
        database: str,
        session: AsyncSession,
        table: str | None = None,
        access_type: AccessType = AccessType.READ,
        connection_id: str | None = None,
    ) -> AccessCheckResult:
        """Decide whether *user_id* may access *database* (and *table*).

        ``access_type`` is accepted for callers' bookkeeping but does not
        narrow matching.
        """
        rules = await self.get_rules_for_user(user_id, session, connection_id)
        decision = evaluate_rules(rules, database, table)
        if not decision.allowed:
            logger.info("Data access denied for user %s on %s.%s: %s", user_id, database, table or "*", decision.reason)
        rule = decision.rule
        return AccessCheckResult(
            allowed=decision.allowed,
            reason=decision.reason,
            rule=to_rule_response(rule) if isinstance(rule, DataAccessRule) else None,
        )

    async def check_role_access(
        self,
        role_id: str,
        database: str,
        session: AsyncSession,
        table: str | None = None,
        connection_id: str | None = None,
    ) -> AccessCheckResult:
        """Same decision as :meth:`check_user_access`, over one role's rules only."""
        rules = await self.get_rules_for_role(role_id, session, connection_id)
        decision = evaluate_rules(rules, database, table)
        rule = decision.rule
        return AccessCheckResult(
            allowed=decision.allowed,
            reason=decision.reason,
            rule=to_rule_response(rule) if isinstance(rule, DataAccessRule) else None,
        )

    async def filter_databases_for_user(
        self,
        user_id: str,
        databases: Iterable[str],
        session: AsyncSession,
        connection_id: str | None = None,
    ) -> list[str]:
        """Allowed, non-system databases for a browse listing. Empty when the user has no rules."""
        rules = await self.get_rules_for_user(user_id, session, connection_id)
        return filter_allowed_databases(rules, databases)

    async def filter_tables_for_user(
        self,
        user_id: str,
        database: str,
        tables: Iterable[str],
        session: AsyncSession,
        connection_id: str | None = None,
    ) -> list[str]:
        """Allowed tables of *database*. Empty when the user has no rules."""
        rules = await self.get_rules_for_user(user_id, session, connection_id)
        return filter_allowed_tables(rules, database, tables)

    # --- Helpers ---

    async def _replace_rules(
        self,
        role_id: str | None,
        user_id: str | None,
        rules: list[RuleDefinition],
        session: AsyncSession,
        actor_id: str | None,
    ) -> list[RuleResponse]:
        for definition in rules:
            _validate_patterns(definition.database_pattern, definition.table_pattern)

        scope = DataAccessRule.role_id == role_id if role_id is not None else DataAccessRule.user_id == user_id
        async with session.begin_nested():
            await session.execute(delete(DataAccessRule).where(scope))
            created = [self._build(definition, role_id, user_id, actor_id) for definition in rules]
            session.add_all(created)
            await session.flush()

        await self._audit.create_audit_log(
            AuditAction.DATA_ACCESS_BULK_SET,
            actor_id,
            session,
            resource_type="role" if role_id is not None else "user",
            resource_id=role_id or user_id,
            details={"rule_count": len(created)},
        )
        logger.info("Replaced data access rules for %s (%d rules)", role_id or user_id, len(created))
        return [to_rule_response(rule) for rule in created]

    @staticmethod
    def _build(
        definition: RuleDefinition,
        role_id: str | None,
        user_id: str | None,
        actor_id: str | None,
    ) -> DataAccessRule:
        return DataAccessRule(
            role_id=role_id,
            user_id=user_id,
            connection_id=definition.connection_id,
            database_pattern=definition.database_pattern,
            table_pattern=definition.table_pattern,
            access_type=definition.access_type,
            is_allowed=definition.is_allowed,
            priority=definition.priority,
            description=definition.description,
            created_by=actor_id,
        )
