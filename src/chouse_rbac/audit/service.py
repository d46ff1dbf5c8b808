"""Audit recorder: append-only log of sensitive actions with identity snapshots."""

import logging
from typing import Any

from sqlalchemy import Select, delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from chouse_rbac.audit.schemas import (
    AuditLogEntry,
    AuditLogFilter,
    AuditMetadata,
    IdentitySnapshot,
    SnapshotResult,
)
from chouse_rbac.constants import DEFAULT_AUDIT_PAGE_LIMIT, MAX_AUDIT_PAGE_LIMIT
from chouse_rbac.db.enums import AuditAction, AuditStatus
from chouse_rbac.db.models.audit import AuditLog
from chouse_rbac.db.models.identity import User
from chouse_rbac.schemas import PaginatedResult, clamp_page

logger = logging.getLogger(__name__)


class AuditRecorder:
    """Stateless service that writes and queries audit rows.

    Every write snapshots the actor's username, email and display name so the
    entry stays legible after the user is renamed, deactivated or deleted.
    """

    async def create_audit_log(
        self,
        action: AuditAction | str,
        user_id: str | None,
        session: AsyncSession,
        *,
        resource_type: str | None = None,
        resource_id: str | None = None,
        details: dict[str, Any] | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        status: AuditStatus = AuditStatus.SUCCESS,
        error_message: str | None = None,
    ) -> AuditLog:
        """Append one audit row. Snapshot enrichment is best-effort."""
        snapshot = await self.resolve_snapshot(user_id, session) if user_id else SnapshotResult(None, "anonymous")
        if not snapshot.available and user_id:
            logger.info("Audit snapshot unavailable for user %s: %s", user_id, snapshot.reason)

        identity = snapshot.snapshot or IdentitySnapshot(None, None, None)
        entry = AuditLog(
            user_id=user_id,
            action=str(action),
            resource_type=resource_type,
            resource_id=resource_id,
            details=details,
            ip_address=ip_address,
            user_agent=user_agent,
            status=status,
            error_message=error_message,
            username=identity.username,
            email=identity.email,
            display_name=identity.display_name,
        )
        session.add(entry)
        await session.flush()
        return entry

    async def resolve_snapshot(self, user_id: str, session: AsyncSession) -> SnapshotResult:
        """Read the live user row inside a SAVEPOINT so a failure cannot poison the caller's transaction."""
        try:
            async with session.begin_nested():
                row = (
                    await session.execute(
                        select(User.username, User.email, User.display_name).where(User.id == user_id)
                    )
                ).one_or_none()
        except SQLAlchemyError as exc:
            return SnapshotResult(None, f"lookup failed: {exc.__class__.__name__}")

        if row is None:
            return SnapshotResult(None, "user not found")
        return SnapshotResult(IdentitySnapshot(row.username, row.email, row.display_name))

    async def get_audit_logs(
        self,
        session: AsyncSession,
        filters: AuditLogFilter | None = None,
        page: int = 1,
        limit: int = DEFAULT_AUDIT_PAGE_LIMIT,
    ) -> PaginatedResult[AuditLogEntry]:
        """Return matching rows, newest first."""
        page, limit = clamp_page(page, limit, MAX_AUDIT_PAGE_LIMIT)
        filters = filters or AuditLogFilter()

        base = self._apply_filters(select(AuditLog), filters)
        count_base = self._apply_filters(select(func.count(AuditLog.id)), filters)

        total = (await session.execute(count_base)).scalar() or 0
        stmt = base.order_by(AuditLog.created_at.desc()).limit(limit).offset((page - 1) * limit)
        rows = (await session.execute(stmt)).scalars().all()

        return PaginatedResult([self._to_entry(row) for row in rows], total)

    async def delete_audit_logs(
        self,
        session: AsyncSession,
        filters: AuditLogFilter | None = None,
        actor_id: str | None = None,
    ) -> int:
        """Delete rows matching *filters* (retention) and record the purge. Returns the number deleted."""
        filters = filters or AuditLogFilter()
        stmt = delete(AuditLog)
        for condition in self._conditions(filters):
            stmt = stmt.where(condition)
        cursor = await session.execute(stmt)
        await session.flush()
        deleted: int = cursor.rowcount  # type: ignore[attr-defined]

        await self.create_audit_log(
            AuditAction.AUDIT_LOG_DELETE,
            actor_id,
            session,
            resource_type="audit_log",
            details={"deleted_count": deleted, "filters": filters.model_dump(mode="json", exclude_none=True)},
        )
        logger.info("Deleted %d audit log entries", deleted)
        return deleted

    async def get_audit_metadata(self, session: AsyncSession) -> AuditMetadata:
        """Distinct snapshot usernames, emails and statuses present in the log."""

        async def _distinct(column: Any) -> list[str]:
            result = await session.execute(select(column).where(column.is_not(None)).distinct().order_by(column))
            return [str(value) for value in result.scalars().all()]

        return AuditMetadata(
            usernames=await _distinct(AuditLog.username),
            emails=await _distinct(AuditLog.email),
            statuses=await _distinct(AuditLog.status),
        )

    @staticmethod
    def _conditions(filters: AuditLogFilter) -> list[Any]:
        conditions: list[Any] = []
        if filters.user_id is not None:
            conditions.append(AuditLog.user_id == filters.user_id)
        if filters.username:
            conditions.append(AuditLog.username.icontains(filters.username, autoescape=True))
        if filters.email:
            conditions.append(AuditLog.email.icontains(filters.email, autoescape=True))
        if filters.action is not None:
            conditions.append(AuditLog.action == filters.action)
        if filters.status is not None:
            conditions.append(AuditLog.status == filters.status)
        if filters.start_date is not None:
            conditions.append(AuditLog.created_at >= filters.start_date)
        if filters.end_date is not None:
            conditions.append(AuditLog.created_at <= filters.end_date)
        return conditions

    def _apply_filters(self, stmt: Select[Any], filters: AuditLogFilter) -> Select[Any]:
        for condition in self._conditions(filters):
            stmt = stmt.where(condition)
        return stmt

    @staticmethod
    def _to_entry(row: AuditLog) -> AuditLogEntry:
        return AuditLogEntry(
            id=row.id,
            user_id=row.user_id,
            action=row.action,
            resource_type=row.resource_type,
            resource_id=row.resource_id,
            details=row.details,
            ip_address=row.ip_address,
            user_agent=row.user_agent,
            status=row.status.value,
            error_message=row.error_message,
            username=row.username,
            email=row.email,
            display_name=row.display_name,
            created_at=row.created_at,
        )
