"""Tests for idempotent seeding of permissions, system roles and the first administrator."""

from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from chouse_rbac.auth.passwords import BcryptPasswordHasher
from chouse_rbac.constants import PERMISSION_CATEGORIES, SystemRole
from chouse_rbac.db.models.identity import Permission, Role, RolePermission, User, UserRole
from chouse_rbac.seed import needs_seeding, seed_database, seed_permissions, seed_roles, seed_super_admin
from chouse_rbac.settings import RbacSettings


def _test_settings(**overrides: Any) -> RbacSettings:
    values: dict[str, Any] = {
        "JWT_SECRET": "seed-test-secret",
        "RBAC_ADMIN_EMAIL": "Root@Example.com",
        "RBAC_ADMIN_USERNAME": "root",
        "RBAC_ADMIN_PASSWORD": "R00t!Secret",
    }
    values.update(overrides)
    return RbacSettings(**values)


async def _count(session: AsyncSession, model: type[Any]) -> int:
    return (await session.execute(select(func.count()).select_from(model))).scalar() or 0


async def test_seed_database_is_idempotent(session: AsyncSession, hasher: BcryptPasswordHasher) -> None:
    """Running the seed twice creates everything exactly once."""
    settings = _test_settings()
    await seed_database(session, hasher, settings)
    counts = [await _count(session, model) for model in (Permission, Role, RolePermission, User)]

    await seed_database(session, hasher, settings)

    assert [await _count(session, model) for model in (Permission, Role, RolePermission, User)] == counts
    assert counts[0] == sum(len(perms) for perms in PERMISSION_CATEGORIES.values())
    assert counts[1] == len(SystemRole)
    assert counts[3] == 1


async def test_system_roles(session: AsyncSession) -> None:
    """System roles are flagged, ranked, and viewer is the only default."""
    role_ids = await seed_roles(session, await seed_permissions(session))
    assert set(role_ids) == {str(role) for role in SystemRole}

    roles = (await session.execute(select(Role).order_by(Role.priority.desc()))).scalars().all()
    assert [r.name for r in roles] == ["super_admin", "admin", "developer", "analyst", "viewer", "guest"]
    assert all(r.is_system for r in roles)
    assert [r.name for r in roles if r.is_default] == ["viewer"]


async def test_existing_roles_untouched(session: AsyncSession) -> None:
    """Operator edits to system roles survive a re-seed."""
    permission_ids = await seed_permissions(session)
    await seed_roles(session, permission_ids)
    viewer = (await session.execute(select(Role).where(Role.name == "viewer"))).scalar_one()
    viewer.display_name = "Reader"
    await session.flush()

    await seed_roles(session, permission_ids)

    assert viewer.display_name == "Reader"


async def test_super_admin_created_once(session: AsyncSession, hasher: BcryptPasswordHasher) -> None:
    """The first administrator is a system user holding super_admin."""
    settings = _test_settings()
    role_ids = await seed_roles(session, await seed_permissions(session))

    admin = await seed_super_admin(session, role_ids, hasher, settings)
    assert admin is not None
    assert admin.email == "root@example.com"
    assert admin.is_system_user is True
    assert hasher.verify("R00t!Secret", admin.password_hash)

    membership = (await session.execute(select(UserRole.role_id).where(UserRole.user_id == admin.id))).scalar_one()
    assert membership == role_ids[SystemRole.SUPER_ADMIN]
    assert await seed_super_admin(session, role_ids, hasher, settings) is None


async def test_needs_seeding(session: AsyncSession) -> None:
    """True on an empty store, false once roles exist."""
    assert await needs_seeding(session) is True
    await seed_roles(session, await seed_permissions(session))
    assert await needs_seeding(session) is False
