"""User management: creation, updates, soft deletion and listing."""

import logging

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from chouse_rbac.audit.service import AuditRecorder
from chouse_rbac.auth.exceptions import InvalidCredentialsError
from chouse_rbac.auth.passwords import PasswordHasher, validate_password_strength
from chouse_rbac.constants import DEFAULT_USER_PAGE_LIMIT, MAX_USER_PAGE_LIMIT
from chouse_rbac.db.base import utc_now
from chouse_rbac.db.enums import AuditAction
from chouse_rbac.db.models.identity import Role, RolePermission, User, UserRole
from chouse_rbac.exceptions import ConflictError, NotFoundError, StateError, ValidationError
from chouse_rbac.identity.schemas import UserCreate, UserResponse, UserUpdate
from chouse_rbac.schemas import PaginatedResult, clamp_page

logger = logging.getLogger(__name__)

_WITH_ROLES = (
    selectinload(User.user_roles)
    .selectinload(UserRole.role)
    .selectinload(Role.role_permissions)
    .selectinload(RolePermission.permission)
)


def normalize_identifier(value: str) -> str:
    """Emails and usernames are compared and stored lower-cased."""
    return value.strip().lower()


def to_user_response(user: User) -> UserResponse:
    """Build a response from a user loaded with roles and permissions."""
    roles = sorted((link.role for link in user.user_roles), key=lambda r: (-r.priority, r.name))
    permissions = sorted({rp.permission.name for role in roles for rp in role.role_permissions})
    return UserResponse(
        id=user.id,
        email=user.email,
        username=user.username,
        display_name=user.display_name,
        avatar_url=user.avatar_url,
        is_active=user.is_active,
        is_system_user=user.is_system_user,
        roles=[role.name for role in roles],
        permissions=permissions,
        last_login_at=user.last_login_at,
        password_changed_at=user.password_changed_at,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


class UserService:
    """User CRUD with identifier normalisation and default-role assignment.

    All mutations are audited under the acting user's id (``actor_id``).
    """

    def __init__(self, hasher: PasswordHasher, audit: AuditRecorder | None = None) -> None:
        self._hasher = hasher
        self._audit = audit or AuditRecorder()

    # --- Lookups ---

    async def get_user(self, user_id: str, session: AsyncSession) -> UserResponse | None:
        user = await self._load(session, User.id == user_id)
        return to_user_response(user) if user else None

    async def get_user_by_email(self, email: str, session: AsyncSession) -> UserResponse | None:
        user = await self._load(session, User.email == normalize_identifier(email))
        return to_user_response(user) if user else None

    async def get_user_by_username(self, username: str, session: AsyncSession) -> UserResponse | None:
        user = await self._load(session, User.username == normalize_identifier(username))
        return to_user_response(user) if user else None

    async def find_by_identifier(self, identifier: str, session: AsyncSession) -> User | None:
        """Return the user whose email or username equals *identifier* (case-insensitive)."""
        value = normalize_identifier(identifier)
        result = await session.execute(select(User).where(or_(User.email == value, User.username == value)))
        return result.scalars().first()

    # --- Mutations ---

    async def create_user(
        self,
        data: UserCreate,
        session: AsyncSession,
        actor_id: str | None = None,
        is_system_user: bool = False,
    ) -> UserResponse:
        """Create a user.

        With ``role_ids=None`` the current default role (if any) is assigned;
        an explicit empty list leaves the user without roles.

        Raises:
            ValidationError: Weak password or unknown role id.
            ConflictError: Email or username already taken.
        """
        self._check_password(data.password)
        email = normalize_identifier(data.email)
        username = normalize_identifier(data.username)
        await self._ensure_unique(session, email=email, username=username)

        if data.role_ids is None:
            default_role_id = (await session.execute(select(Role.id).where(Role.is_default.is_(True)))).scalar()
            role_ids = [default_role_id] if default_role_id else []
        else:
            role_ids = await self._validate_role_ids(data.role_ids, session)

        user = User(
            email=email,
            username=username,
            password_hash=self._hasher.hash(data.password),
            display_name=data.display_name or data.username,
            avatar_url=data.avatar_url,
            is_active=data.is_active,
            is_system_user=is_system_user,
            created_by=actor_id,
            user_metadata=data.metadata,
        )
        session.add(user)
        await session.flush()

        for role_id in role_ids:
            session.add(UserRole(user_id=user.id, role_id=role_id, assigned_by=actor_id))
        await session.flush()

        await self._audit.create_audit_log(
            AuditAction.USER_CREATE,
            actor_id,
            session,
            resource_type="user",
            resource_id=user.id,
            details={"email": email, "username": username, "role_ids": role_ids},
        )
        logger.info("Created user %s (%s)", user.id, username)
        return await self._require(user.id, session)

    async def update_user(
        self,
        user_id: str,
        data: UserUpdate,
        session: AsyncSession,
        actor_id: str | None = None,
    ) -> UserResponse:
        """Apply a partial update. ``role_ids`` replaces the role set atomically."""
        user = await self._get_or_raise(user_id, session)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)

        email = normalize_identifier(data.email) if data.email is not None else None
        username = normalize_identifier(data.username) if data.username is not None else None
        await self._ensure_unique(session, email=email, username=username, exclude_id=user.id)

        if email is not None:
            user.email = email
        if username is not None:
            user.username = username
        if data.display_name is not None:
            user.display_name = data.display_name
        if data.avatar_url is not None:
            user.avatar_url = data.avatar_url
        if data.is_active is not None:
            user.is_active = data.is_active
        if data.metadata is not None:
            user.user_metadata = data.metadata
        await session.flush()

        if data.role_ids is not None:
            await self.set_user_roles(user.id, data.role_ids, session, actor_id=actor_id)

        await self._audit.create_audit_log(
            AuditAction.USER_UPDATE,
            actor_id,
            session,
            resource_type="user",
            resource_id=user.id,
            details={"fields": sorted(changes)},
        )
        session.expire(user)
        return await self._require(user_id, session)

    async def set_user_roles(
        self,
        user_id: str,
        role_ids: list[str],
        session: AsyncSession,
        actor_id: str | None = None,
    ) -> list[str]:
        """Replace the user's roles with *role_ids* inside one SAVEPOINT. Returns the new role ids."""
        await self._get_or_raise(user_id, session)
        role_ids = await self._validate_role_ids(role_ids, session)

        async with session.begin_nested():
            await session.execute(delete(UserRole).where(UserRole.user_id == user_id))
            for role_id in role_ids:
                session.add(UserRole(user_id=user_id, role_id=role_id, assigned_by=actor_id))
            await session.flush()

        await self._audit.create_audit_log(
            AuditAction.USER_ROLE_ASSIGN,
            actor_id,
            session,
            resource_type="user",
            resource_id=user_id,
            details={"role_ids": role_ids},
        )
        return role_ids

    async def change_password(
        self,
        user_id: str,
        new_password: str,
        session: AsyncSession,
        current_password: str | None = None,
        actor_id: str | None = None,
    ) -> None:
        """Re-hash and store a new password.

        When *current_password* is given it must verify first (self-service change).

        Raises:
            InvalidCredentialsError: *current_password* does not match.
            ValidationError: *new_password* is too weak.
        """
        user = await self._get_or_raise(user_id, session)
        if current_password is not None and not self._hasher.verify(current_password, user.password_hash):
            logger.warning("Password change rejected for user %s: current password mismatch", user_id)
            raise InvalidCredentialsError()
        self._check_password(new_password)

        user.password_hash = self._hasher.hash(new_password)
        user.password_changed_at = utc_now()
        await session.flush()

        await self._audit.create_audit_log(
            AuditAction.PASSWORD_CHANGE,
            actor_id or user_id,
            session,
            resource_type="user",
            resource_id=user_id,
        )

    async def delete_user(self, user_id: str, session: AsyncSession, actor_id: str | None = None) -> None:
        """Deactivate a user. The row and its history are kept.

        Raises:
            StateError: The user is a system user.
        """
        user = await self._get_or_raise(user_id, session)
        if user.is_system_user:
            raise StateError("Cannot delete system user")

        user.is_active = False
        await session.flush()

        await self._audit.create_audit_log(
            AuditAction.USER_DELETE,
            actor_id,
            session,
            resource_type="user",
            resource_id=user_id,
            details={"username": user.username},
        )
        logger.info("Deactivated user %s", user_id)

    # --- Listing ---

    async def list_users(
        self,
        session: AsyncSession,
        page: int = 1,
        limit: int = DEFAULT_USER_PAGE_LIMIT,
        search: str | None = None,
        is_active: bool | None = None,
        role_id: str | None = None,
    ) -> PaginatedResult[UserResponse]:
        """Paginated users ordered by username, filterable by text, active flag and role."""
        page, limit = clamp_page(page, limit, MAX_USER_PAGE_LIMIT)
        base = select(User)
        count_base = select(func.count(User.id))

        if search:
            term = or_(
                User.email.icontains(search, autoescape=True),
                User.username.icontains(search, autoescape=True),
                User.display_name.icontains(search, autoescape=True),
            )
            base = base.where(term)
            count_base = count_base.where(term)
        if is_active is not None:
            base = base.where(User.is_active.is_(is_active))
            count_base = count_base.where(User.is_active.is_(is_active))
        if role_id is not None:
            member = User.id.in_(select(UserRole.user_id).where(UserRole.role_id == role_id))
            base = base.where(member)
            count_base = count_base.where(member)

        total = (await session.execute(count_base)).scalar() or 0
        stmt = base.options(_WITH_ROLES).order_by(User.username).limit(limit).offset((page - 1) * limit)
        rows = (await session.execute(stmt)).scalars().all()
        return PaginatedResult([to_user_response(u) for u in rows], total)

    # --- Helpers ---

    async def _load(self, session: AsyncSession, *criteria: object) -> User | None:
        result = await session.execute(select(User).options(_WITH_ROLES).where(*criteria))
        return result.scalar_one_or_none()

    async def _require(self, user_id: str, session: AsyncSession) -> UserResponse:
        user = await self._load(session, User.id == user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return to_user_response(user)

    async def _get_or_raise(self, user_id: str, session: AsyncSession) -> User:
        user = await session.get(User, user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    async def _ensure_unique(
        self,
        session: AsyncSession,
        email: str | None = None,
        username: str | None = None,
        exclude_id: str | None = None,
    ) -> None:
        checks = (("email", User.email, email), ("username", User.username, username))
        for label, column, value in checks:
            if value is None:
                continue
            stmt = select(User.id).where(column == value)
            if exclude_id is not None:
                stmt = stmt.where(User.id != exclude_id)
            if (await session.execute(stmt)).first() is not None:
                raise ConflictError(f"A user with this {label} already exists")

    @staticmethod
    async def _validate_role_ids(role_ids: list[str], session: AsyncSession) -> list[str]:
        unique_ids = list(dict.fromkeys(role_ids))
        if not unique_ids:
            return []
        found = set((await session.execute(select(Role.id).where(Role.id.in_(unique_ids)))).scalars().all())
        missing = [role_id for role_id in unique_ids if role_id not in found]
        if missing:
            raise ValidationError(f"Unknown role ids: {', '.join(missing)}")
        return unique_ids

    @staticmethod
    def _check_password(password: str) -> None:
        strength = validate_password_strength(password)
        if not strength.is_valid:
            raise ValidationError("; ".join(strength.errors))
