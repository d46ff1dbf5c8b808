"""Audit log model."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String, Text
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from chouse_rbac.db.base import Base, enum_values, new_id, utc_now
from chouse_rbac.db.enums import AuditStatus


class AuditLog(Base):
    """Append-only record of a sensitive action.

    ``username``, ``email`` and ``display_name`` are a snapshot taken at write
    time; they are never joined from the live user row.
    """

    __tablename__ = "rbac_audit_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("rbac_users.id", ondelete="SET NULL"))
    action: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    resource_type: Mapped[str | None] = mapped_column(String(100))
    resource_id: Mapped[str | None] = mapped_column(String(255))
    details: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    ip_address: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
    status: Mapped[AuditStatus] = mapped_column(
        SQLEnum(AuditStatus, values_callable=enum_values, name="audit_status"),
        nullable=False,
        default=AuditStatus.SUCCESS,
    )
    error_message: Mapped[str | None] = mapped_column(Text)
    username: Mapped[str | None] = mapped_column(String(100))
    email: Mapped[str | None] = mapped_column(String(255))
    display_name: Mapped[str | None] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utc_now, index=True)

    __table_args__ = (Index("ix_rbac_audit_logs_user_id", "user_id"),)
