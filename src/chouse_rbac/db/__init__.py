"""Database package -- convenience re-exports.

Importing this module registers all models with Base.metadata.
"""

from chouse_rbac.db.base import Base
from chouse_rbac.db.enums import AccessType, AiProviderType, AuditAction, AuditStatus, DatabaseType
from chouse_rbac.db.models import (
    AiConfig,
    AiModel,
    AiProvider,
    AuditLog,
    Connection,
    DataAccessRule,
    Permission,
    Role,
    RolePermission,
    User,
    UserRole,
    UserSession,
)
from chouse_rbac.db.session import DatabaseManager

__all__ = [
    # Base
    "Base",
    # Enums
    "AccessType",
    "AiProviderType",
    "AuditAction",
    "AuditStatus",
    "DatabaseType",
    # Models
    "AiConfig",
    "AiModel",
    "AiProvider",
    "AuditLog",
    "Connection",
    "DataAccessRule",
    "Permission",
    "Role",
    "RolePermission",
    "User",
    "UserRole",
    "UserSession",
    # Session
    "DatabaseManager",
]
