"""Authorization core: identities, roles, data access policy, sessions, audit and credential encryption."""

from chouse_rbac.core import RbacCore
from chouse_rbac.settings import RbacSettings, get_settings

__all__ = ["RbacCore", "RbacSettings", "get_settings"]
