"""Tests for RbacCore: composition, schema bootstrap and an end-to-end flow."""

import logging
from typing import Any

import pytest

from chouse_rbac.access.schemas import RuleCreate
from chouse_rbac.constants import Environment
from chouse_rbac.core import RbacCore
from chouse_rbac.exceptions import ConfigurationError
from chouse_rbac.identity.schemas import UserCreate
from chouse_rbac.logging import JSONLogFormatter
from chouse_rbac.settings import RbacSettings


def _test_settings(**overrides: Any) -> RbacSettings:
    values: dict[str, Any] = {
        "JWT_SECRET": "core-test-secret-long-enough-for-hs256",
        "RBAC_ENCRYPTION_SALT": "core-salt",
        "RBAC_ENCRYPTION_ITERATIONS": 1000,
        "RBAC_SQLITE_PATH": ":memory:",
        "BCRYPT_ROUNDS": 4,
        "RBAC_ADMIN_PASSWORD": "Adm1n!Secret",
    }
    values.update(overrides)
    return RbacSettings(**values)


async def test_bootstrap_and_login() -> None:
    """A fresh core seeds itself and the first administrator can log in."""
    core = RbacCore.from_settings(_test_settings())
    try:
        await core.init_schema()
        async with core.db.session() as session:
            result = await core.sessions.authenticate("admin@localhost", "Adm1n!Secret", session)
        assert result.user.roles == ["super_admin"]
        assert "audit:delete" in result.user.permissions
        assert core.jwt.verify_access_token(result.tokens.access_token).sub == result.user.id
    finally:
        await core.dispose()


async def test_init_schema_twice() -> None:
    """Re-initialising an existing store is a no-op."""
    core = RbacCore.from_settings(_test_settings())
    try:
        await core.init_schema()
        await core.init_schema()
        async with core.db.session() as session:
            listed = await core.users.list_users(session)
        assert listed.total == 1
    finally:
        await core.dispose()


async def test_access_decision_through_core() -> None:
    """Services share one store: a new viewer is denied a database without a grant."""
    core = RbacCore.from_settings(_test_settings())
    try:
        await core.init_schema()
        async with core.db.session() as session:
            viewer = await core.roles.get_role_by_name("viewer", session)
            assert viewer is not None
            user = await core.users.create_user(
                UserCreate(email="v@example.com", username="viewer1", password="Str0ng!Passw0rd"), session
            )
            await core.access.create_rule(RuleCreate(role_id=viewer.id, database_pattern="analytics_*"), session)

        async with core.db.session() as session:
            allowed = await core.access.check_user_access(user.id, "analytics_web", session)
            denied = await core.access.check_user_access(user.id, "finance", session)
        assert allowed.allowed is True
        assert denied.allowed is False
    finally:
        await core.dispose()


async def test_independent_instances() -> None:
    """Two cores in one process do not share state."""
    first = RbacCore.from_settings(_test_settings())
    second = RbacCore.from_settings(_test_settings())
    try:
        await first.init_schema()
        await second.init_schema(seed=False)
        async with second.db.session() as session:
            assert (await second.users.list_users(session)).total == 0
    finally:
        await first.dispose()
        await second.dispose()


def test_production_requires_secrets() -> None:
    """Unsafe production configuration fails before any connection is made."""
    with pytest.raises(ConfigurationError):
        RbacCore.from_settings(_test_settings(ENVIRONMENT=Environment.PRODUCTION, RBAC_ENCRYPTION_SALT=""))


async def test_from_settings_can_configure_logging() -> None:
    """The host can ask the core to install JSON logging at ``LOG_LEVEL``."""
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        core = RbacCore.from_settings(_test_settings(LOG_LEVEL="warning"), configure_logs=True)
        await core.dispose()
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JSONLogFormatter)
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)


async def test_from_settings_leaves_logging_alone_by_default() -> None:
    root = logging.getLogger()
    saved_handlers = root.handlers[:]
    core = RbacCore.from_settings(_test_settings())
    await core.dispose()
    assert root.handlers == saved_handlers
