"""Shared fixtures: an isolated in-memory store per test."""

from collections.abc import AsyncGenerator
from typing import Any

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from chouse_rbac.auth.passwords import BcryptPasswordHasher
from chouse_rbac.db.base import Base
from chouse_rbac.db.session import configure_sqlite_engine
from chouse_rbac.seed import seed_permissions, seed_roles
from chouse_rbac.settings import RbacSettings

TEST_JWT_SECRET = "test-secret-key-that-is-long-enough-for-hs256"
TEST_SALT = "test-salt"


def _test_settings(**overrides: Any) -> RbacSettings:
    values: dict[str, Any] = {
        "JWT_SECRET": TEST_JWT_SECRET,
        "RBAC_ENCRYPTION_SALT": TEST_SALT,
        "RBAC_ENCRYPTION_ITERATIONS": 1000,
        "RBAC_SQLITE_PATH": ":memory:",
        "BCRYPT_ROUNDS": 4,
    }
    values.update(overrides)
    return RbacSettings(**values)


@pytest.fixture
def settings() -> RbacSettings:
    return _test_settings()


@pytest.fixture
def hasher() -> BcryptPasswordHasher:
    return BcryptPasswordHasher(rounds=4)


@pytest.fixture
async def async_engine() -> AsyncGenerator[AsyncEngine]:
    engine = create_async_engine("sqlite+aiosqlite://", echo=False)
    configure_sqlite_engine(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def session(async_engine: AsyncEngine) -> AsyncGenerator[AsyncSession]:
    factory = async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as sess:
        yield sess
        await sess.commit()


@pytest.fixture
async def role_ids(session: AsyncSession) -> dict[str, str]:
    """Seed the permission catalogue and the system roles; return ``{role_name: id}``."""
    permission_ids = await seed_permissions(session)
    return await seed_roles(session, permission_ids)
