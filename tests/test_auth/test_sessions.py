"""Tests for SessionService: login, refresh rotation, logout and session listing."""

from datetime import timedelta
from typing import Any

import pytest
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from chouse_rbac.auth.exceptions import InvalidCredentialsError, InvalidRefreshTokenError
from chouse_rbac.auth.jwt import JWTService
from chouse_rbac.auth.passwords import BcryptPasswordHasher
from chouse_rbac.auth.service import SessionService
from chouse_rbac.db.base import utc_now
from chouse_rbac.db.enums import AuditAction, AuditStatus
from chouse_rbac.db.models.audit import AuditLog
from chouse_rbac.db.models.identity import User
from chouse_rbac.db.models.session import UserSession
from chouse_rbac.identity.schemas import UserCreate
from chouse_rbac.identity.users import UserService
from chouse_rbac.settings import RbacSettings

PASSWORD = "Str0ng!Passw0rd"


def _test_settings(**overrides: Any) -> RbacSettings:
    values: dict[str, Any] = {"JWT_SECRET": "session-test-secret-long-enough-for-hs256"}
    values.update(overrides)
    return RbacSettings(**values)


@pytest.fixture
def jwt_service() -> JWTService:
    return JWTService(_test_settings())


@pytest.fixture
def sessions(jwt_service: JWTService, hasher: BcryptPasswordHasher) -> SessionService:
    return SessionService(jwt_service, hasher)


@pytest.fixture
async def user_id(session: AsyncSession, hasher: BcryptPasswordHasher, role_ids: dict[str, str]) -> str:
    created = await UserService(hasher).create_user(
        UserCreate(email="Alice@Example.com", username="alice", password=PASSWORD, display_name="Alice"),
        session,
    )
    return created.id


async def _audit_rows(session: AsyncSession, action: AuditAction) -> list[AuditLog]:
    result = await session.execute(select(AuditLog).where(AuditLog.action == action.value))
    return list(result.scalars().all())


class TestAuthenticate:
    """Credential verification and session creation."""

    async def test_login_by_email_case_insensitive(
        self, session: AsyncSession, sessions: SessionService, jwt_service: JWTService, user_id: str
    ) -> None:
        result = await sessions.authenticate("  ALICE@example.com ", PASSWORD, session, ip_address="10.0.0.1")

        assert result.user.id == user_id
        assert result.user.roles == ["viewer"]
        assert "table:select" in result.user.permissions
        assert result.user.last_login_at is not None

        payload = jwt_service.verify_access_token(result.tokens.access_token)
        assert payload.sub == user_id
        assert payload.session_id == result.session_id
        assert payload.roles == ["viewer"]

        stored = await session.get(UserSession, result.session_id)
        assert stored is not None
        assert stored.refresh_token == result.tokens.refresh_token
        assert stored.ip_address == "10.0.0.1"
        assert stored.revoked_at is None

    async def test_login_by_username(self, session: AsyncSession, sessions: SessionService, user_id: str) -> None:
        result = await sessions.authenticate("alice", PASSWORD, session)
        assert result.user.username == "alice"

    async def test_login_is_audited(self, session: AsyncSession, sessions: SessionService, user_id: str) -> None:
        result = await sessions.authenticate("alice", PASSWORD, session, user_agent="pytest")
        rows = await _audit_rows(session, AuditAction.LOGIN)
        assert len(rows) == 1
        assert rows[0].user_id == user_id
        assert rows[0].resource_id == result.session_id
        assert rows[0].username == "alice"
        assert rows[0].user_agent == "pytest"

    @pytest.mark.parametrize(
        ("identifier", "password"),
        [("alice", "Wr0ng!Passw0rd"), ("nobody", PASSWORD)],
    )
    async def test_failures_are_uniform(
        self, session: AsyncSession, sessions: SessionService, user_id: str, identifier: str, password: str
    ) -> None:
        with pytest.raises(InvalidCredentialsError) as exc_info:
            await sessions.authenticate(identifier, password, session)
        assert exc_info.value.detail == "Invalid credentials"

    async def test_inactive_user_rejected(
        self, session: AsyncSession, sessions: SessionService, hasher: BcryptPasswordHasher, user_id: str
    ) -> None:
        await UserService(hasher).delete_user(user_id, session)
        with pytest.raises(InvalidCredentialsError):
            await sessions.authenticate("alice", PASSWORD, session)

    async def test_failure_is_audited(self, session: AsyncSession, sessions: SessionService, user_id: str) -> None:
        with pytest.raises(InvalidCredentialsError):
            await sessions.authenticate("alice", "Wr0ng!Passw0rd", session, ip_address="10.0.0.9")

        rows = await _audit_rows(session, AuditAction.LOGIN_FAILED)
        assert len(rows) == 1
        assert rows[0].status == AuditStatus.FAILURE
        assert rows[0].error_message == "Invalid credentials"
        assert rows[0].user_id == user_id
        assert rows[0].ip_address == "10.0.0.9"
        assert await session.scalar(select(UserSession.id)) is None

    async def test_unknown_identifier_audited_anonymously(
        self, session: AsyncSession, sessions: SessionService
    ) -> None:
        with pytest.raises(InvalidCredentialsError):
            await sessions.authenticate("ghost", PASSWORD, session)
        rows = await _audit_rows(session, AuditAction.LOGIN_FAILED)
        assert rows[0].user_id is None
        assert rows[0].details == {"identifier": "ghost"}

    async def test_weak_hash_is_upgraded(
        self, session: AsyncSession, jwt_service: JWTService, hasher: BcryptPasswordHasher, user_id: str
    ) -> None:
        stronger = SessionService(jwt_service, BcryptPasswordHasher(rounds=5))
        await stronger.authenticate("alice", PASSWORD, session)
        user = await session.get(User, user_id)
        assert user is not None
        assert user.password_hash.startswith("$2b$05$")


class TestRefresh:
    """Refresh-token rotation."""

    async def test_rotation_issues_new_session(
        self, session: AsyncSession, sessions: SessionService, jwt_service: JWTService, user_id: str
    ) -> None:
        login = await sessions.authenticate("alice", PASSWORD, session)
        refreshed = await sessions.refresh_access_token(login.tokens.refresh_token, session)

        assert refreshed.session_id != login.session_id
        assert refreshed.tokens.refresh_token != login.tokens.refresh_token
        assert jwt_service.verify_access_token(refreshed.tokens.access_token).session_id == refreshed.session_id

        old = await session.get(UserSession, login.session_id)
        new = await session.get(UserSession, refreshed.session_id)
        assert old is not None and old.revoked_at is not None
        assert new is not None and new.revoked_at is None
        assert new.last_used_at is not None

    async def test_replayed_token_rejected(self, session: AsyncSession, sessions: SessionService, user_id: str) -> None:
        login = await sessions.authenticate("alice", PASSWORD, session)
        await sessions.refresh_access_token(login.tokens.refresh_token, session)
        with pytest.raises(InvalidRefreshTokenError):
            await sessions.refresh_access_token(login.tokens.refresh_token, session)

    async def test_concurrent_rotation_loses(
        self, session: AsyncSession, sessions: SessionService, user_id: str, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A session revoked between the lookup and the revoke cannot be rotated a second time."""
        login = await sessions.authenticate("alice", PASSWORD, session)
        original_get = session.get

        async def get_after_competing_rotation(entity: Any, ident: Any, **kwargs: Any) -> Any:
            if entity is User:
                await session.execute(
                    update(UserSession).where(UserSession.id == login.session_id).values(revoked_at=utc_now())
                )
            return await original_get(entity, ident, **kwargs)

        monkeypatch.setattr(session, "get", get_after_competing_rotation)
        with pytest.raises(InvalidRefreshTokenError):
            await sessions.refresh_access_token(login.tokens.refresh_token, session)
        monkeypatch.undo()

        active = await session.execute(
            select(UserSession).where(UserSession.user_id == user_id, UserSession.revoked_at.is_(None))
        )
        assert active.scalars().all() == []

    async def test_access_token_rejected(self, session: AsyncSession, sessions: SessionService, user_id: str) -> None:
        login = await sessions.authenticate("alice", PASSWORD, session)
        with pytest.raises(InvalidRefreshTokenError):
            await sessions.refresh_access_token(login.tokens.access_token, session)

    async def test_garbage_rejected(self, session: AsyncSession, sessions: SessionService) -> None:
        with pytest.raises(InvalidRefreshTokenError):
            await sessions.refresh_access_token("not-a-token", session)

    async def test_expired_session_rejected(
        self, session: AsyncSession, sessions: SessionService, user_id: str
    ) -> None:
        login = await sessions.authenticate("alice", PASSWORD, session)
        stored = await session.get(UserSession, login.session_id)
        assert stored is not None
        stored.expires_at = utc_now() - timedelta(minutes=1)
        await session.flush()

        with pytest.raises(InvalidRefreshTokenError):
            await sessions.refresh_access_token(login.tokens.refresh_token, session)

    async def test_inactive_user_rejected(
        self, session: AsyncSession, sessions: SessionService, hasher: BcryptPasswordHasher, user_id: str
    ) -> None:
        login = await sessions.authenticate("alice", PASSWORD, session)
        await UserService(hasher).delete_user(user_id, session)
        with pytest.raises(InvalidRefreshTokenError):
            await sessions.refresh_access_token(login.tokens.refresh_token, session)

    async def test_role_changes_picked_up(
        self,
        session: AsyncSession,
        sessions: SessionService,
        hasher: BcryptPasswordHasher,
        role_ids: dict[str, str],
        user_id: str,
    ) -> None:
        login = await sessions.authenticate("alice", PASSWORD, session)
        await UserService(hasher).set_user_roles(user_id, [role_ids["analyst"]], session)
        refreshed = await sessions.refresh_access_token(login.tokens.refresh_token, session)
        assert refreshed.user.roles == ["analyst"]
        assert "table:insert" in refreshed.user.permissions


class TestLogout:
    """Single-session and all-session revocation."""

    async def test_logout_revokes_session(self, session: AsyncSession, sessions: SessionService, user_id: str) -> None:
        login = await sessions.authenticate("alice", PASSWORD, session)

        assert await sessions.logout_user(login.session_id, session) is True
        assert await sessions.logout_user(login.session_id, session) is False
        with pytest.raises(InvalidRefreshTokenError):
            await sessions.refresh_access_token(login.tokens.refresh_token, session)
        assert len(await _audit_rows(session, AuditAction.LOGOUT)) == 1

    async def test_logout_unknown_session(self, session: AsyncSession, sessions: SessionService) -> None:
        assert await sessions.logout_user("missing", session) is False

    async def test_logout_all(self, session: AsyncSession, sessions: SessionService, user_id: str) -> None:
        await sessions.authenticate("alice", PASSWORD, session)
        await sessions.authenticate("alice", PASSWORD, session)

        assert await sessions.logout_all_sessions(user_id, session) == 2
        assert await sessions.list_active_sessions(user_id, session) == []
        assert await sessions.logout_all_sessions(user_id, session) == 0


class TestListActiveSessions:
    """Only non-revoked, unexpired sessions are listed."""

    async def test_lists_active_only(self, session: AsyncSession, sessions: SessionService, user_id: str) -> None:
        kept = await sessions.authenticate("alice", PASSWORD, session, user_agent="browser")
        revoked = await sessions.authenticate("alice", PASSWORD, session)
        expired = await sessions.authenticate("alice", PASSWORD, session)

        await sessions.logout_user(revoked.session_id, session)
        row = await session.get(UserSession, expired.session_id)
        assert row is not None
        row.expires_at = utc_now() - timedelta(seconds=1)
        await session.flush()

        listed = await sessions.list_active_sessions(user_id, session)
        assert [s.id for s in listed] == [kept.session_id]
        assert listed[0].user_agent == "browser"
