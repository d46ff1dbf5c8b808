"""Tests for the FastAPI permission dependencies."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import HTTPException

from chouse_rbac.auth.dependencies import PermissionDependencyFactory


def _make_request(user_id: str | None = "user-1", db_session: object | None = None) -> MagicMock:
    """Create a mock Request with the given state attributes."""
    request = MagicMock()
    request.state.user_id = user_id
    request.state.db_session = db_session if db_session is not None else MagicMock()
    return request


def _checker(allowed: bool) -> MagicMock:
    checker = MagicMock()
    checker.has_all_permissions = AsyncMock(return_value=allowed)
    checker.has_any_permission = AsyncMock(return_value=allowed)
    return checker


class TestPermissionDependency:
    """Authentication, session availability and permission outcomes."""

    async def test_unauthenticated_returns_401(self) -> None:
        dep = PermissionDependencyFactory(_checker(True))("users:view")
        with pytest.raises(HTTPException) as exc_info:
            await dep(_make_request(user_id=None))
        assert exc_info.value.status_code == 401

    async def test_missing_session_returns_500(self) -> None:
        dep = PermissionDependencyFactory(_checker(True))("users:view")
        request = _make_request()
        request.state.db_session = None
        with pytest.raises(HTTPException) as exc_info:
            await dep(request)
        assert exc_info.value.status_code == 500

    async def test_denied_returns_403(self) -> None:
        dep = PermissionDependencyFactory(_checker(False))("users:view", "users:delete")
        with pytest.raises(HTTPException) as exc_info:
            await dep(_make_request())
        assert exc_info.value.status_code == 403
        assert "users:view, users:delete" in exc_info.value.detail

    async def test_granted_returns_user_id(self) -> None:
        checker = _checker(True)
        dep = PermissionDependencyFactory(checker)("audit:view")
        request = _make_request(user_id="user-9")

        assert await dep(request) == "user-9"
        checker.has_all_permissions.assert_awaited_once_with("user-9", ("audit:view",), request.state.db_session)

    async def test_any_mode_uses_any_check(self) -> None:
        checker = _checker(True)
        dep = PermissionDependencyFactory(checker, require_all=False)("a", "b")
        await dep(_make_request())
        checker.has_any_permission.assert_awaited_once()
        checker.has_all_permissions.assert_not_called()

    def test_requires_at_least_one_name(self) -> None:
        with pytest.raises(ValueError, match="At least one permission"):
            PermissionDependencyFactory(_checker(True))()
