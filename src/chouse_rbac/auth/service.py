"""Session lifecycle: login, refresh-token rotation and revocation."""

import logging
from datetime import timedelta

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from chouse_rbac.audit.service import AuditRecorder
from chouse_rbac.auth.exceptions import InvalidCredentialsError, InvalidRefreshTokenError, JWTError
from chouse_rbac.auth.jwt import JWTService
from chouse_rbac.auth.passwords import PasswordHasher
from chouse_rbac.auth.permissions import PermissionChecker
from chouse_rbac.auth.schemas import AuthenticatedUser, AuthResult, SessionInfo, TokenPair
from chouse_rbac.db.base import as_utc, new_id, utc_now
from chouse_rbac.db.enums import AuditAction, AuditStatus
from chouse_rbac.db.models.identity import User
from chouse_rbac.db.models.session import UserSession

logger = logging.getLogger(__name__)


class SessionService:
    """Issues, rotates and revokes sessions.

    A session is ``issued`` by :meth:`authenticate`, may be exchanged any number
    of times through :meth:`refresh_access_token` (each exchange revokes the old
    row and inserts a new one), and ends ``revoked`` or ``expired``. Only the
    refresh token stored on a non-revoked row is accepted, so a captured token
    is single-use.
    """

    def __init__(
        self,
        jwt_service: JWTService,
        hasher: PasswordHasher,
        checker: PermissionChecker | None = None,
        audit: AuditRecorder | None = None,
    ) -> None:
        self._jwt = jwt_service
        self._hasher = hasher
        self._checker = checker or PermissionChecker()
        self._audit = audit or AuditRecorder()

    async def authenticate(
        self,
        identifier: str,
        password: str,
        session: AsyncSession,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuthResult:
        """Verify credentials and open a new session.

        Raises:
            InvalidCredentialsError: Unknown identifier, inactive account or wrong password.
                The three cases are indistinguishable to the caller.
        """
        value = identifier.strip().lower()
        stmt = select(User).where((User.email == value) | (User.username == value))
        user = (await session.execute(stmt)).scalars().first()

        failure: str | None = None
        if user is None:
            failure = "unknown identifier"
        elif not user.is_active:
            failure = "inactive account"
        elif not self._hasher.verify(password, user.password_hash):
            failure = "wrong password"

        if failure is not None or user is None:
            logger.warning("Login failed for %r: %s", value, failure)
            await self._audit.create_audit_log(
                AuditAction.LOGIN_FAILED,
                user.id if user is not None else None,
                session,
                resource_type="user",
                details={"identifier": value},
                ip_address=ip_address,
                user_agent=user_agent,
                status=AuditStatus.FAILURE,
                error_message="Invalid credentials",
            )
            raise InvalidCredentialsError()

        if self._hasher.needs_rehash(user.password_hash):
            user.password_hash = self._hasher.hash(password)
            logger.info("Re-hashed password for user %s", user.id)
        user.last_login_at = utc_now()

        session_id = new_id()
        tokens = await self._issue(user, session_id, session)
        session.add(
            UserSession(
                id=session_id,
                user_id=user.id,
                refresh_token=tokens.refresh_token,
                expires_at=utc_now() + timedelta(seconds=self._jwt.refresh_expire_seconds),
                ip_address=ip_address,
                user_agent=user_agent,
            )
        )
        await session.flush()

        await self._audit.create_audit_log(
            AuditAction.LOGIN,
            user.id,
            session,
            resource_type="session",
            resource_id=session_id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        logger.info("User %s logged in (session %s)", user.id, session_id)
        return await self._result(user, tokens, session_id, session)

    async def refresh_access_token(self, refresh_token: str, session: AsyncSession) -> AuthResult:
        """Exchange a refresh token for a new token pair, rotating the session.

        Roles and permissions are re-resolved, so changes since login take effect.

        Raises:
            InvalidRefreshTokenError: The token is malformed, expired, revoked, already
                rotated, or belongs to an inactive or deleted user.
        """
        try:
            self._jwt.verify_refresh_token(refresh_token)
        except JWTError as exc:
            raise InvalidRefreshTokenError() from exc

        stmt = select(UserSession).where(
            UserSession.refresh_token == refresh_token,
            UserSession.revoked_at.is_(None),
        )
        current = (await session.execute(stmt)).scalars().first()
        if current is None:
            logger.warning("Refresh rejected: token does not match an active session")
            raise InvalidRefreshTokenError()
        if as_utc(current.expires_at) < utc_now():
            logger.info("Refresh rejected: session %s expired", current.id)
            raise InvalidRefreshTokenError()

        user = await session.get(User, current.user_id)
        if user is None or not user.is_active:
            logger.warning("Refresh rejected: user %s missing or inactive", current.user_id)
            raise InvalidRefreshTokenError()

        now = utc_now()
        revoke = (
            update(UserSession)
            .where(UserSession.id == current.id, UserSession.revoked_at.is_(None))
            .values(revoked_at=now)
            .execution_options(synchronize_session="fetch")
        )
        cursor = await session.execute(revoke)
        if cursor.rowcount != 1:  # type: ignore[attr-defined]
            logger.warning("Refresh rejected: session %s was rotated concurrently", current.id)
            raise InvalidRefreshTokenError()

        new_session_id = new_id()
        tokens = await self._issue(user, new_session_id, session)
        async with session.begin_nested():
            session.add(
                UserSession(
                    id=new_session_id,
                    user_id=user.id,
                    refresh_token=tokens.refresh_token,
                    expires_at=now + timedelta(seconds=self._jwt.refresh_expire_seconds),
                    ip_address=current.ip_address,
                    user_agent=current.user_agent,
                    last_used_at=now,
                )
            )
            await session.flush()

        logger.debug("Rotated session %s -> %s", current.id, new_session_id)
        return await self._result(user, tokens, new_session_id, session)

    async def logout_user(self, session_id: str, session: AsyncSession) -> bool:
        """Revoke one session. Returns ``False`` if it was unknown or already revoked."""
        stmt = (
            update(UserSession)
            .where(UserSession.id == session_id, UserSession.revoked_at.is_(None))
            .values(revoked_at=utc_now())
            .returning(UserSession.user_id)
        )
        user_id = (await session.execute(stmt)).scalar_one_or_none()
        if user_id is None:
            return False

        await self._audit.create_audit_log(
            AuditAction.LOGOUT,
            user_id,
            session,
            resource_type="session",
            resource_id=session_id,
        )
        return True

    async def logout_all_sessions(self, user_id: str, session: AsyncSession) -> int:
        """Revoke every active session of *user_id*. Returns how many were revoked."""
        stmt = (
            update(UserSession)
            .where(UserSession.user_id == user_id, UserSession.revoked_at.is_(None))
            .values(revoked_at=utc_now())
        )
        cursor = await session.execute(stmt)
        revoked: int = cursor.rowcount  # type: ignore[attr-defined]

        await self._audit.create_audit_log(
            AuditAction.LOGOUT,
            user_id,
            session,
            resource_type="user",
            resource_id=user_id,
            details={"all_sessions": True, "revoked": revoked},
        )
        logger.info("Revoked %d sessions for user %s", revoked, user_id)
        return revoked

    async def list_active_sessions(self, user_id: str, session: AsyncSession) -> list[SessionInfo]:
        """Non-revoked, unexpired sessions of *user_id*, newest first."""
        stmt = (
            select(UserSession)
            .where(UserSession.user_id == user_id, UserSession.revoked_at.is_(None))
            .order_by(UserSession.created_at.desc())
        )
        now = utc_now()
        rows = (await session.execute(stmt)).scalars().all()
        return [
            SessionInfo(
                id=row.id,
                ip_address=row.ip_address,
                user_agent=row.user_agent,
                created_at=as_utc(row.created_at),
                last_used_at=as_utc(row.last_used_at) if row.last_used_at else None,
                expires_at=as_utc(row.expires_at),
            )
            for row in rows
            if as_utc(row.expires_at) > now
        ]

    async def _issue(self, user: User, session_id: str, session: AsyncSession) -> TokenPair:
        roles = await self._checker.get_user_roles(user.id, session)
        permissions = await self._checker.get_user_permissions(user.id, session)
        return self._jwt.create_token_pair(user.id, user.email, user.username, roles, permissions, session_id)

    async def _result(self, user: User, tokens: TokenPair, session_id: str, session: AsyncSession) -> AuthResult:
        authenticated = AuthenticatedUser(
            id=user.id,
            email=user.email,
            username=user.username,
            display_name=user.display_name,
            avatar_url=user.avatar_url,
            roles=await self._checker.get_user_roles(user.id, session),
            permissions=await self._checker.get_user_permissions(user.id, session),
            last_login_at=user.last_login_at,
        )
        return AuthResult(user=authenticated, tokens=tokens, session_id=session_id)
