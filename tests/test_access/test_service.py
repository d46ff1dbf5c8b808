"""Tests for DataAccessService: scoping, bulk replacement and principal access checks."""

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from chouse_rbac.access.schemas import RuleCreate, RuleDefinition, RuleUpdate
from chouse_rbac.access.service import DataAccessService
from chouse_rbac.auth.passwords import BcryptPasswordHasher
from chouse_rbac.db.enums import AccessType, AuditAction
from chouse_rbac.db.models.audit import AuditLog
from chouse_rbac.db.models.connection import Connection
from chouse_rbac.exceptions import NotFoundError, ValidationError
from chouse_rbac.identity.schemas import UserCreate
from chouse_rbac.identity.users import UserService

PASSWORD = "Str0ng!Passw0rd"


@pytest.fixture
def service() -> DataAccessService:
    return DataAccessService()


async def _create_user(
    session: AsyncSession, hasher: BcryptPasswordHasher, username: str, role_ids: list[str] | None
) -> str:
    users = UserService(hasher)
    created = await users.create_user(
        UserCreate(email=f"{username}@example.com", username=username, password=PASSWORD, role_ids=role_ids),
        session,
    )
    return created.id


async def _create_connection(session: AsyncSession, name: str) -> str:
    connection = Connection(name=name, host="localhost", port=8123, username="default")
    session.add(connection)
    await session.flush()
    return connection.id


class TestRuleScope:
    """Exactly one of role_id / user_id."""

    async def test_neither_scope_rejected(self, session: AsyncSession, service: DataAccessService) -> None:
        with pytest.raises(ValidationError, match="Either roleId or userId must be provided"):
            await service.create_rule(RuleCreate(database_pattern="*"), session)

    async def test_both_scopes_rejected(
        self, session: AsyncSession, service: DataAccessService, role_ids: dict[str, str], hasher: BcryptPasswordHasher
    ) -> None:
        user_id = await _create_user(session, hasher, "both", [])
        with pytest.raises(ValidationError, match="Cannot set both roleId and userId"):
            await service.create_rule(
                RuleCreate(role_id=role_ids["viewer"], user_id=user_id, database_pattern="*"), session
            )

    async def test_invalid_regex_rejected(
        self, session: AsyncSession, service: DataAccessService, role_ids: dict[str, str]
    ) -> None:
        with pytest.raises(ValidationError, match="Invalid regular expression"):
            await service.create_rule(RuleCreate(role_id=role_ids["viewer"], database_pattern="/[bad/"), session)


class TestRuleCrud:
    """Create, read, update, delete and listing."""

    async def test_create_and_get(
        self, session: AsyncSession, service: DataAccessService, role_ids: dict[str, str]
    ) -> None:
        created = await service.create_rule(
            RuleCreate(role_id=role_ids["analyst"], database_pattern="sales", access_type=AccessType.WRITE), session
        )
        fetched = await service.get_rule(created.id, session)
        assert fetched is not None
        assert fetched.database_pattern == "sales"
        assert fetched.table_pattern == "*"
        assert fetched.access_type == AccessType.WRITE
        assert fetched.is_allowed is True

    async def test_create_is_audited(
        self, session: AsyncSession, service: DataAccessService, role_ids: dict[str, str]
    ) -> None:
        created = await service.create_rule(RuleCreate(role_id=role_ids["viewer"], database_pattern="*"), session)
        rows = (await session.execute(select(AuditLog).where(AuditLog.resource_id == created.id))).scalars().all()
        assert [row.action for row in rows] == [AuditAction.DATA_ACCESS_CREATE]

    async def test_update_rule(
        self, session: AsyncSession, service: DataAccessService, role_ids: dict[str, str]
    ) -> None:
        created = await service.create_rule(RuleCreate(role_id=role_ids["viewer"], database_pattern="a"), session)
        updated = await service.update_rule(
            created.id, RuleUpdate(database_pattern="b", is_allowed=False, priority=7), session
        )
        assert updated.database_pattern == "b"
        assert updated.is_allowed is False
        assert updated.priority == 7
        assert updated.role_id == role_ids["viewer"]

    async def test_update_missing_rule(self, session: AsyncSession, service: DataAccessService) -> None:
        with pytest.raises(NotFoundError):
            await service.update_rule("missing", RuleUpdate(priority=1), session)

    async def test_delete_rule(
        self, session: AsyncSession, service: DataAccessService, role_ids: dict[str, str]
    ) -> None:
        created = await service.create_rule(RuleCreate(role_id=role_ids["viewer"], database_pattern="a"), session)
        assert await service.delete_rule(created.id, session) is True
        assert await service.get_rule(created.id, session) is None
        assert await service.delete_rule(created.id, session) is False

    async def test_list_rules_filters_and_orders(
        self, session: AsyncSession, service: DataAccessService, role_ids: dict[str, str]
    ) -> None:
        await service.create_rule(RuleCreate(role_id=role_ids["viewer"], database_pattern="low", priority=1), session)
        await service.create_rule(RuleCreate(role_id=role_ids["viewer"], database_pattern="high", priority=9), session)
        await service.create_rule(RuleCreate(role_id=role_ids["analyst"], database_pattern="other"), session)

        result = await service.list_rules(session, role_id=role_ids["viewer"])
        assert result.total == 2
        assert [rule.database_pattern for rule in result.items] == ["high", "low"]


class TestBulkReplace:
    """set_rules_for_role / set_rules_for_user replace the whole set."""

    async def test_set_rules_for_role_replaces(
        self, session: AsyncSession, service: DataAccessService, role_ids: dict[str, str]
    ) -> None:
        role_id = role_ids["developer"]
        await service.create_rule(RuleCreate(role_id=role_id, database_pattern="old"), session)

        created = await service.set_rules_for_role(
            role_id,
            [RuleDefinition(database_pattern="new_a"), RuleDefinition(database_pattern="new_b", is_allowed=False)],
            session,
        )
        assert len(created) == 2
        patterns = sorted(rule.database_pattern for rule in await service.get_rules_for_role(role_id, session))
        assert patterns == ["new_a", "new_b"]

    async def test_set_rules_for_user_replaces(
        self, session: AsyncSession, service: DataAccessService, hasher: BcryptPasswordHasher
    ) -> None:
        user_id = await _create_user(session, hasher, "bulkuser", [])
        await service.create_rule(RuleCreate(user_id=user_id, database_pattern="old"), session)

        await service.set_rules_for_user(user_id, [], session)
        assert await service.get_user_specific_rules(user_id, session) == []

    async def test_invalid_pattern_leaves_existing_rules(
        self, session: AsyncSession, service: DataAccessService, role_ids: dict[str, str]
    ) -> None:
        role_id = role_ids["developer"]
        await service.create_rule(RuleCreate(role_id=role_id, database_pattern="keep"), session)

        with pytest.raises(ValidationError):
            await service.set_rules_for_role(role_id, [RuleDefinition(database_pattern="/(/")], session)
        rules = await service.get_rules_for_role(role_id, session)
        assert [rule.database_pattern for rule in rules] == ["keep"]

    async def test_unknown_role_rejected(self, session: AsyncSession, service: DataAccessService) -> None:
        with pytest.raises(NotFoundError):
            await service.set_rules_for_role("missing", [RuleDefinition(database_pattern="*")], session)

    async def test_bulk_set_is_audited(
        self, session: AsyncSession, service: DataAccessService, role_ids: dict[str, str]
    ) -> None:
        await service.set_rules_for_role(role_ids["guest"], [RuleDefinition(database_pattern="*")], session)
        stmt = select(AuditLog).where(AuditLog.action == AuditAction.DATA_ACCESS_BULK_SET)
        row = (await session.execute(stmt)).scalar_one()
        assert row.resource_id == role_ids["guest"]
        assert row.details == {"rule_count": 1}


class TestUserAccess:
    """check_user_access combines personal and role rules."""

    async def test_viewer_with_personal_deny(
        self,
        session: AsyncSession,
        service: DataAccessService,
        role_ids: dict[str, str],
        hasher: BcryptPasswordHasher,
    ) -> None:
        await service.create_rule(
            RuleCreate(role_id=role_ids["viewer"], database_pattern="*", table_pattern="*", priority=0), session
        )
        user_id = await _create_user(session, hasher, "viewer_u", [role_ids["viewer"]])
        await service.create_rule(
            RuleCreate(user_id=user_id, database_pattern="secrets", is_allowed=False, priority=10), session
        )

        denied = await service.check_user_access(user_id, "secrets", session, table="t1")
        assert denied.allowed is False
        assert denied.reason == "Denied by rule: secrets.*"
        assert denied.rule is not None and denied.rule.user_id == user_id

        allowed = await service.check_user_access(user_id, "public", session, table="t1")
        assert allowed.allowed is True
        assert allowed.rule is not None and allowed.rule.role_id == role_ids["viewer"]

    async def test_zero_rules_denies_everything_but_system(
        self, session: AsyncSession, service: DataAccessService, hasher: BcryptPasswordHasher
    ) -> None:
        user_id = await _create_user(session, hasher, "norules", [])
        for database in ("default", "sales", "prod_analytics"):
            assert (await service.check_user_access(user_id, database, session)).allowed is False
        assert (await service.check_user_access(user_id, "system", session)).allowed is True
        assert await service.filter_databases_for_user(user_id, ["system", "default"], session) == []

    async def test_access_type_does_not_narrow(
        self, session: AsyncSession, service: DataAccessService, hasher: BcryptPasswordHasher
    ) -> None:
        user_id = await _create_user(session, hasher, "reader", [])
        await service.create_rule(RuleCreate(user_id=user_id, database_pattern="sales"), session)
        result = await service.check_user_access(user_id, "sales", session, access_type=AccessType.WRITE)
        assert result.allowed is True

    async def test_check_role_access(
        self, session: AsyncSession, service: DataAccessService, role_ids: dict[str, str]
    ) -> None:
        await service.create_rule(RuleCreate(role_id=role_ids["analyst"], database_pattern="prod_*"), session)
        assert (await service.check_role_access(role_ids["analyst"], "prod_sales", session)).allowed is True
        assert (await service.check_role_access(role_ids["analyst"], "staging_prod", session)).allowed is False

    async def test_filter_for_user(
        self, session: AsyncSession, service: DataAccessService, hasher: BcryptPasswordHasher
    ) -> None:
        user_id = await _create_user(session, hasher, "browser", [])
        await service.create_rule(RuleCreate(user_id=user_id, database_pattern="*", table_pattern="orders_*"), session)

        databases = await service.filter_databases_for_user(
            user_id, ["system", "sales", "INFORMATION_SCHEMA"], session
        )
        assert databases == ["sales"]
        tables = await service.filter_tables_for_user(user_id, "sales", ["orders_2024", "customers"], session)
        assert tables == ["orders_2024"]


class TestConnectionScope:
    """Connection-specific rules apply only to their connection; global rules everywhere."""

    async def test_connection_rules(
        self, session: AsyncSession, service: DataAccessService, hasher: BcryptPasswordHasher
    ) -> None:
        user_id = await _create_user(session, hasher, "scoped", [])
        conn_a = await _create_connection(session, "a")
        conn_b = await _create_connection(session, "b")
        await service.create_rule(RuleCreate(user_id=user_id, database_pattern="global_db"), session)
        await service.create_rule(
            RuleCreate(user_id=user_id, connection_id=conn_a, database_pattern="only_a"), session
        )

        assert (await service.check_user_access(user_id, "only_a", session, connection_id=conn_a)).allowed is True
        assert (await service.check_user_access(user_id, "only_a", session, connection_id=conn_b)).allowed is False
        assert (await service.check_user_access(user_id, "global_db", session, connection_id=conn_b)).allowed is True

        rules_for_b = await service.get_rules_for_user(user_id, session, connection_id=conn_b)
        assert [rule.database_pattern for rule in rules_for_b] == ["global_db"]
        assert len(await service.get_rules_for_user(user_id, session)) == 2
