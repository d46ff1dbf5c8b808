"""Idempotent bootstrap of the permission catalogue, system roles and the first administrator."""

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from chouse_rbac.auth.passwords import PasswordHasher
from chouse_rbac.constants import (
    DEFAULT_ADMIN_PASSWORD,
    DEFAULT_ROLE_PERMISSIONS,
    DEFAULT_SYSTEM_ROLE,
    PERMISSION_CATEGORIES,
    ROLE_DEFINITIONS,
    ROLE_HIERARCHY,
    SYSTEM_ADMIN_DISPLAY_NAME,
    SystemRole,
    permission_display_name,
)
from chouse_rbac.db.models.identity import Permission, Role, RolePermission, User, UserRole
from chouse_rbac.settings import RbacSettings

logger = logging.getLogger(__name__)


async def seed_permissions(session: AsyncSession) -> dict[str, str]:
    """Insert any missing permissions. Returns ``{name: id}`` for the whole catalogue."""
    existing = {row.name: row.id for row in (await session.execute(select(Permission.name, Permission.id))).all()}
    added = 0
    for category, permissions in PERMISSION_CATEGORIES.items():
        for name in permissions:
            if name in existing:
                continue
            permission = Permission(
                name=str(name),
                display_name=permission_display_name(name),
                description=f"{permission_display_name(name)} ({category})",
                category=category,
                is_system=True,
            )
            session.add(permission)
            await session.flush()
            existing[permission.name] = permission.id
            added += 1
    if added:
        logger.info("Seeded %d permissions", added)
    return existing


async def seed_roles(session: AsyncSession, permission_ids: dict[str, str]) -> dict[str, str]:
    """Insert any missing system roles with their default permissions.

    Existing roles are left untouched, so operator edits survive restarts.
    """
    existing = {row.name: row.id for row in (await session.execute(select(Role.name, Role.id))).all()}
    for role_name in SystemRole:
        if role_name in existing:
            continue
        display_name, description = ROLE_DEFINITIONS[role_name]
        role = Role(
            name=str(role_name),
            display_name=display_name,
            description=description,
            is_system=True,
            is_default=role_name == DEFAULT_SYSTEM_ROLE,
            priority=ROLE_HIERARCHY[role_name],
        )
        session.add(role)
        await session.flush()
        for permission in DEFAULT_ROLE_PERMISSIONS[role_name]:
            if permission in permission_ids:
                session.add(RolePermission(role_id=role.id, permission_id=permission_ids[permission]))
        await session.flush()
        existing[role.name] = role.id
        logger.info("Seeded system role %s", role_name)
    return existing


async def seed_super_admin(
    session: AsyncSession,
    role_ids: dict[str, str],
    hasher: PasswordHasher,
    settings: RbacSettings,
) -> User | None:
    """Create the first administrator if no user holds ``super_admin`` yet.

    Returns the created user, or ``None`` when one already exists.
    """
    super_admin_id = role_ids[SystemRole.SUPER_ADMIN]
    holder = (await session.execute(select(UserRole.user_id).where(UserRole.role_id == super_admin_id))).first()
    if holder is not None:
        logger.debug("Super admin already exists")
        return None

    user = User(
        email=settings.RBAC_ADMIN_EMAIL.strip().lower(),
        username=settings.RBAC_ADMIN_USERNAME.strip().lower(),
        password_hash=hasher.hash(settings.RBAC_ADMIN_PASSWORD),
        display_name=SYSTEM_ADMIN_DISPLAY_NAME,
        is_active=True,
        is_system_user=True,
    )
    session.add(user)
    await session.flush()
    session.add(UserRole(user_id=user.id, role_id=super_admin_id))
    await session.flush()

    logger.info("Created super admin user %s", user.email)
    if settings.RBAC_ADMIN_PASSWORD == DEFAULT_ADMIN_PASSWORD:
        logger.warning("Super admin uses the default password; set RBAC_ADMIN_PASSWORD and change it immediately")
    return user


async def seed_database(session: AsyncSession, hasher: PasswordHasher, settings: RbacSettings) -> None:
    """Run every seeding step. Safe to call on every start."""
    permission_ids = await seed_permissions(session)
    role_ids = await seed_roles(session, permission_ids)
    await seed_super_admin(session, role_ids, hasher, settings)


async def needs_seeding(session: AsyncSession) -> bool:
    """True when no role exists yet, or the tables are missing."""
    try:
        async with session.begin_nested():
            row = (await session.execute(select(Role.id).limit(1))).first()
    except SQLAlchemyError as exc:
        logger.info("Role table unavailable (%s); seeding required", exc.__class__.__name__)
        return True
    return row is None
