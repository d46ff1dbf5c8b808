"""Identity and role store: users, roles and the permission catalogue."""

from chouse_rbac.identity.roles import RoleService, normalize_role_name
from chouse_rbac.identity.schemas import (
    PermissionResponse,
    RoleCreate,
    RoleResponse,
    RoleUpdate,
    UserCreate,
    UserResponse,
    UserUpdate,
)
from chouse_rbac.identity.users import UserService, normalize_identifier

__all__ = [
    "PermissionResponse",
    "RoleCreate",
    "RoleResponse",
    "RoleService",
    "RoleUpdate",
    "UserCreate",
    "UserResponse",
    "UserService",
    "UserUpdate",
    "normalize_identifier",
    "normalize_role_name",
]
