"""Data access rule model."""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from chouse_rbac.db.base import Base, enum_values, new_id, utc_now
from chouse_rbac.db.enums import AccessType

if TYPE_CHECKING:
    from chouse_rbac.db.models.identity import Role, User


class DataAccessRule(Base):
    """Pattern-based allow/deny statement scoped to exactly one role or one user.

    ``connection_id`` of ``None`` applies the rule to every external connection.
    """

    __tablename__ = "rbac_data_access_rules"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    role_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("rbac_roles.id", ondelete="CASCADE"))
    user_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("rbac_users.id", ondelete="CASCADE"))
    connection_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("rbac_connections.id", ondelete="CASCADE")
    )
    database_pattern: Mapped[str] = mapped_column(String(255), nullable=False)
    table_pattern: Mapped[str] = mapped_column(String(255), nullable=False)
    access_type: Mapped[AccessType] = mapped_column(
        SQLEnum(AccessType, values_callable=enum_values, name="access_type"),
        nullable=False,
        default=AccessType.READ,
    )
    is_allowed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    description: Mapped[str | None] = mapped_column(Text)
    created_by: Mapped[str | None] = mapped_column(String(36))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    # Relationships
    role: Mapped["Role | None"] = relationship("Role", back_populates="data_access_rules")
    user: Mapped["User | None"] = relationship("User", back_populates="data_access_rules")

    __table_args__ = (
        CheckConstraint(
            "(role_id IS NULL) <> (user_id IS NULL)",
            name="ck_data_access_rules_single_scope",
        ),
        Index("ix_data_access_rules_role_id", "role_id"),
        Index("ix_data_access_rules_user_id", "user_id"),
        Index("ix_data_access_rules_connection_id", "connection_id"),
    )
