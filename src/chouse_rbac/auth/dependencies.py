"""FastAPI dependencies that enforce permission checks.

The returned dependencies expect ``request.state.user_id`` and
``request.state.db_session`` to be set by upstream middleware that has already
verified the caller's access token.

Usage::

    @router.get("/users", dependencies=[Depends(require_permission("users:view"))])
    async def list_users(): ...

    @router.delete("/audit", dependencies=[Depends(require_all_permissions("audit:view", "audit:delete"))])
    async def purge(): ...
"""

import logging
from collections.abc import Callable, Coroutine
from typing import Any

from fastapi import HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from chouse_rbac.auth.permissions import PermissionChecker

logger = logging.getLogger(__name__)


class PermissionDependencyFactory:
    """Creates FastAPI dependencies that return the caller's user id once authorised.

    ``require_all=True`` demands every listed permission; otherwise any one suffices.
    """

    def __init__(self, checker: PermissionChecker, require_all: bool = True) -> None:
        self._checker = checker
        self._require_all = require_all

    def __call__(self, *names: str) -> Callable[..., Coroutine[Any, Any, str]]:
        """Return an async dependency that checks for *names* and returns the user_id."""
        if not names:
            raise ValueError("At least one permission name is required")

        async def _dependency(request: Request) -> str:
            user_id: str | None = getattr(request.state, "user_id", None)
            if user_id is None:
                raise HTTPException(status_code=401, detail="Authentication required")

            db_session: AsyncSession | None = getattr(request.state, "db_session", None)
            if db_session is None:
                raise HTTPException(status_code=500, detail="Database session not available")

            if self._require_all:
                allowed = await self._checker.has_all_permissions(user_id, names, db_session)
            else:
                allowed = await self._checker.has_any_permission(user_id, names, db_session)

            if not allowed:
                logger.warning("Permission denied: user %s lacks %s", user_id, ", ".join(names))
                raise HTTPException(status_code=403, detail=f"Permission required: {', '.join(names)}")

            return user_id

        return _dependency


_permission_checker = PermissionChecker()

require_permission = PermissionDependencyFactory(_permission_checker)
require_all_permissions = require_permission
require_any_permission = PermissionDependencyFactory(_permission_checker, require_all=False)
