"""Re-export all model classes."""

from chouse_rbac.db.models.access import DataAccessRule
from chouse_rbac.db.models.ai import AiConfig, AiModel, AiProvider
from chouse_rbac.db.models.audit import AuditLog
from chouse_rbac.db.models.connection import Connection
from chouse_rbac.db.models.identity import Permission, Role, RolePermission, User, UserRole
from chouse_rbac.db.models.session import UserSession

__all__ = [
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
]
