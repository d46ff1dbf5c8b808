"""Permission resolution: a user's effective permissions are the union over their roles."""

import logging
from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from chouse_rbac.db.models.identity import Permission, Role, RolePermission, UserRole

logger = logging.getLogger(__name__)


class PermissionChecker:
    """Checks whether a user holds permissions via their assigned roles.

    Usage::

        checker = PermissionChecker()
        if await checker.has_permission(user_id, "roles:assign", session):
            ...

    For repeated checks within the same request, use :meth:`get_user_permissions`
    once and test membership locally.
    """

    async def get_user_permissions(self, user_id: str, session: AsyncSession) -> list[str]:
        """Return the de-duplicated, sorted permission names granted to *user_id*."""
        stmt = (
            select(Permission.name)
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .join(UserRole, UserRole.role_id == RolePermission.role_id)
            .where(UserRole.user_id == user_id)
            .distinct()
        )
        result = await session.execute(stmt)
        return sorted(row[0] for row in result.all())

    async def get_user_roles(self, user_id: str, session: AsyncSession) -> list[str]:
        """Return the names of the roles assigned to *user_id*, most senior first."""
        stmt = (
            select(Role.name)
            .join(UserRole, UserRole.role_id == Role.id)
            .where(UserRole.user_id == user_id)
            .order_by(Role.priority.desc(), Role.name)
        )
        result = await session.execute(stmt)
        return [row[0] for row in result.all()]

    async def has_permission(self, user_id: str, name: str, session: AsyncSession) -> bool:
        """Return ``True`` if *user_id* holds the permission *name*."""
        return name in await self.get_user_permissions(user_id, session)

    async def has_any_permission(self, user_id: str, names: Iterable[str], session: AsyncSession) -> bool:
        """Return ``True`` if *user_id* holds at least one of *names*."""
        granted = set(await self.get_user_permissions(user_id, session))
        return any(name in granted for name in names)

    async def has_all_permissions(self, user_id: str, names: Iterable[str], session: AsyncSession) -> bool:
        """Return ``True`` if *user_id* holds every one of *names*."""
        granted = set(await self.get_user_permissions(user_id, session))
        return all(name in granted for name in names)
