"""Role and permission management."""

import logging
import re

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from chouse_rbac.audit.service import AuditRecorder
from chouse_rbac.constants import CUSTOM_ROLE_PRIORITY
from chouse_rbac.db.enums import AuditAction
from chouse_rbac.db.models.identity import Permission, Role, RolePermission, UserRole
from chouse_rbac.db.operations import set_default_flag
from chouse_rbac.exceptions import ConflictError, NotFoundError, StateError, ValidationError
from chouse_rbac.identity.schemas import PermissionResponse, RoleCreate, RoleResponse, RoleUpdate

logger = logging.getLogger(__name__)

_ROLE_NAME = re.compile(r"^[a-z0-9_.:-]+$")


def normalize_role_name(name: str) -> str:
    """Lower-case and replace whitespace runs with ``_``: ``"Data Team"`` -> ``"data_team"``."""
    normalized = re.sub(r"\s+", "_", name.strip().lower())
    if not _ROLE_NAME.match(normalized):
        raise ValidationError(f"Invalid role name: {name!r}")
    return normalized


def to_permission_response(permission: Permission) -> PermissionResponse:
    return PermissionResponse(
        id=permission.id,
        name=permission.name,
        display_name=permission.display_name,
        description=permission.description,
        category=permission.category,
    )


class RoleService:
    """Role CRUD, the single-default invariant, and the permission catalogue.

    System roles cannot be modified or deleted unless the caller passes
    ``allow_system=True``, which is reserved for the highest-privilege principal.
    """

    def __init__(self, audit: AuditRecorder | None = None) -> None:
        self._audit = audit or AuditRecorder()

    # --- Queries ---

    async def list_roles(self, session: AsyncSession) -> list[RoleResponse]:
        """All roles, most senior first, with permissions and member counts."""
        stmt = (
            select(Role)
            .options(selectinload(Role.role_permissions).selectinload(RolePermission.permission))
            .order_by(Role.priority.desc(), Role.name)
        )
        roles = (await session.execute(stmt)).scalars().all()
        counts = await self._user_counts(session)
        return [self._to_response(role, counts.get(role.id, 0)) for role in roles]

    async def get_role(self, role_id: str, session: AsyncSession) -> RoleResponse | None:
        role = await self._load(session, Role.id == role_id)
        if role is None:
            return None
        counts = await self._user_counts(session, role.id)
        return self._to_response(role, counts.get(role.id, 0))

    async def get_role_by_name(self, name: str, session: AsyncSession) -> RoleResponse | None:
        role = await self._load(session, Role.name == normalize_role_name(name))
        if role is None:
            return None
        counts = await self._user_counts(session, role.id)
        return self._to_response(role, counts.get(role.id, 0))

    async def get_default_role(self, session: AsyncSession) -> Role | None:
        result = await session.execute(select(Role).where(Role.is_default.is_(True)))
        return result.scalars().first()

    async def list_permissions(self, session: AsyncSession) -> list[PermissionResponse]:
        """All permissions ordered by category, then name."""
        stmt = select(Permission).order_by(Permission.category, Permission.name)
        rows = (await session.execute(stmt)).scalars().all()
        return [to_permission_response(p) for p in rows]

    async def get_permissions_by_category(self, session: AsyncSession) -> dict[str, list[PermissionResponse]]:
        grouped: dict[str, list[PermissionResponse]] = {}
        for permission in await self.list_permissions(session):
            grouped.setdefault(permission.category, []).append(permission)
        return grouped

    # --- Mutations ---

    async def create_role(
        self,
        data: RoleCreate,
        session: AsyncSession,
        actor_id: str | None = None,
    ) -> RoleResponse:
        """Create a custom role (never a system role).

        Raises:
            ValidationError: Invalid name or unknown permission name.
            ConflictError: A role with the normalised name already exists.
        """
        name = normalize_role_name(data.name)
        if (await session.execute(select(Role.id).where(Role.name == name))).first() is not None:
            raise ConflictError(f"Role already exists: {name}")
        permission_ids = await self._resolve_permission_ids(data.permissions, session)

        role = Role(
            name=name,
            display_name=data.display_name,
            description=data.description,
            is_system=False,
            is_default=False,
            priority=data.priority if data.priority is not None else CUSTOM_ROLE_PRIORITY,
            role_metadata=data.metadata,
        )
        session.add(role)
        await session.flush()

        for permission_id in permission_ids:
            session.add(RolePermission(role_id=role.id, permission_id=permission_id))
        await session.flush()

        if data.is_default:
            await set_default_flag(session, Role, role)

        await self._audit.create_audit_log(
            AuditAction.ROLE_CREATE,
            actor_id,
            session,
            resource_type="role",
            resource_id=role.id,
            details={"name": name, "permissions": sorted(data.permissions), "is_default": data.is_default},
        )
        logger.info("Created role %s", name)
        return await self._require(role.id, session)

    async def update_role(
        self,
        role_id: str,
        data: RoleUpdate,
        session: AsyncSession,
        actor_id: str | None = None,
        allow_system: bool = False,
    ) -> RoleResponse:
        """Apply a partial update. ``permissions`` replaces the permission set inside one SAVEPOINT.

        Raises:
            StateError: The role is a system role and *allow_system* is false.
        """
        role = await self._get_or_raise(role_id, session)
        if role.is_system and not allow_system:
            raise StateError("Cannot modify system role")

        permission_ids = None
        if data.permissions is not None:
            permission_ids = await self._resolve_permission_ids(data.permissions, session)

        if data.display_name is not None:
            role.display_name = data.display_name
        if data.description is not None:
            role.description = data.description
        if data.priority is not None:
            role.priority = data.priority
        if data.metadata is not None:
            role.role_metadata = data.metadata

        if data.is_default is True:
            await set_default_flag(session, Role, role)
        elif data.is_default is False:
            role.is_default = False

        if permission_ids is not None:
            async with session.begin_nested():
                await session.execute(delete(RolePermission).where(RolePermission.role_id == role_id))
                for permission_id in permission_ids:
                    session.add(RolePermission(role_id=role_id, permission_id=permission_id))
                await session.flush()
        await session.flush()

        await self._audit.create_audit_log(
            AuditAction.ROLE_UPDATE,
            actor_id,
            session,
            resource_type="role",
            resource_id=role_id,
            details={"fields": sorted(data.model_dump(exclude_unset=True, exclude_none=True))},
        )
        session.expire(role)
        return await self._require(role_id, session)

    async def set_default_role(self, role_id: str, session: AsyncSession, actor_id: str | None = None) -> RoleResponse:
        """Make *role_id* the only default role.

        Raises:
            NotFoundError: The role does not exist (nothing is changed).
        """
        role = await self._get_or_raise(role_id, session)
        await set_default_flag(session, Role, role)
        await self._audit.create_audit_log(
            AuditAction.ROLE_UPDATE,
            actor_id,
            session,
            resource_type="role",
            resource_id=role_id,
            details={"is_default": True},
        )
        return await self._require(role_id, session)

    async def delete_role(
        self,
        role_id: str,
        session: AsyncSession,
        actor_id: str | None = None,
        allow_system: bool = False,
    ) -> None:
        """Delete a role together with its permission links, memberships and data access rules.

        Raises:
            StateError: The role is a system role and *allow_system* is false.
        """
        role = await self._get_or_raise(role_id, session)
        if role.is_system and not allow_system:
            raise StateError("Cannot delete system role")

        name = role.name
        await session.delete(role)
        await session.flush()

        await self._audit.create_audit_log(
            AuditAction.ROLE_DELETE,
            actor_id,
            session,
            resource_type="role",
            resource_id=role_id,
            details={"name": name},
        )
        logger.info("Deleted role %s", name)

    # --- Helpers ---

    async def _load(self, session: AsyncSession, *criteria: object) -> Role | None:
        stmt = (
            select(Role)
            .options(selectinload(Role.role_permissions).selectinload(RolePermission.permission))
            .where(*criteria)
        )
        return (await session.execute(stmt)).scalar_one_or_none()

    async def _require(self, role_id: str, session: AsyncSession) -> RoleResponse:
        response = await self.get_role(role_id, session)
        if response is None:
            raise NotFoundError("Role", role_id)
        return response

    async def _get_or_raise(self, role_id: str, session: AsyncSession) -> Role:
        role = await session.get(Role, role_id)
        if role is None:
            raise NotFoundError("Role", role_id)
        return role

    @staticmethod
    async def _user_counts(session: AsyncSession, role_id: str | None = None) -> dict[str, int]:
        stmt = select(UserRole.role_id, func.count(UserRole.user_id)).group_by(UserRole.role_id)
        if role_id is not None:
            stmt = stmt.where(UserRole.role_id == role_id)
        return {row[0]: row[1] for row in (await session.execute(stmt)).all()}

    @staticmethod
    async def _resolve_permission_ids(names: list[str], session: AsyncSession) -> list[str]:
        unique_names = list(dict.fromkeys(names))
        if not unique_names:
            return []
        stmt = select(Permission.name, Permission.id).where(Permission.name.in_(unique_names))
        rows = (await session.execute(stmt)).all()
        by_name = {row.name: row.id for row in rows}
        missing = [name for name in unique_names if name not in by_name]
        if missing:
            raise ValidationError(f"Unknown permissions: {', '.join(missing)}")
        return [by_name[name] for name in unique_names]

    @staticmethod
    def _to_response(role: Role, user_count: int) -> RoleResponse:
        return RoleResponse(
            id=role.id,
            name=role.name,
            display_name=role.display_name,
            description=role.description,
            is_system=role.is_system,
            is_default=role.is_default,
            priority=role.priority,
            permissions=sorted(rp.permission.name for rp in role.role_permissions),
            user_count=user_count,
            created_at=role.created_at,
            updated_at=role.updated_at,
        )
