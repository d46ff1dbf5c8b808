"""Centralized constants for the authorization core."""

import enum
from types import MappingProxyType

# --- Service identity ---


class ServiceName(enum.StrEnum):
    """Service names used for logging and identification."""

    RBAC = "rbac"


class Environment(enum.StrEnum):
    """Deployment environment."""

    DEVELOPMENT = "development"
    PRODUCTION = "production"


# --- Persistence ---

DEFAULT_SQLITE_PATH = "./data/rbac.db"
DEFAULT_POSTGRES_POOL_SIZE = 10

# --- Tokens ---

DEFAULT_JWT_ISSUER = "clickstudio"
DEFAULT_JWT_AUDIENCE = "clickstudio-client"
DEFAULT_ACCESS_TOKEN_EXPIRE_MINUTES = 15
DEFAULT_REFRESH_TOKEN_EXPIRE_DAYS = 7
DEFAULT_EXPIRY_THRESHOLD_SECONDS = 300
TOKEN_TYPE_BEARER = "Bearer"

# Development-only fallbacks; refused when ENVIRONMENT=production.
DEV_JWT_SECRET = "change-me-in-production-please-use-a-long-random-string"
DEV_ENCRYPTION_SALT = "chouse-rbac-dev-salt"

# --- Credential cipher ---

CIPHER_IV_LENGTH = 16
CIPHER_TAG_LENGTH = 16
CIPHER_KEY_LENGTH = 32
DEFAULT_KDF_ITERATIONS = 310_000

# --- Password hashing ---

DEFAULT_BCRYPT_ROUNDS = 12
BCRYPT_MAX_PASSWORD_BYTES = 72
MIN_PASSWORD_LENGTH = 8
COMMON_PASSWORD_PATTERNS = ("password", "123456", "qwerty", "abc123", "letmein", "welcome", "admin")

# --- Pagination ---

DEFAULT_USER_PAGE_LIMIT = 20
MAX_USER_PAGE_LIMIT = 1000
DEFAULT_AUDIT_PAGE_LIMIT = 50
MAX_AUDIT_PAGE_LIMIT = 5000
DEFAULT_RULE_PAGE_LIMIT = 100
MAX_RULE_PAGE_LIMIT = 1000

# --- Roles ---

CUSTOM_ROLE_PRIORITY = 50


class SystemRole(enum.StrEnum):
    """Built-in roles seeded on first start."""

    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    DEVELOPER = "developer"
    ANALYST = "analyst"
    VIEWER = "viewer"
    GUEST = "guest"


ROLE_HIERARCHY: MappingProxyType[SystemRole, int] = MappingProxyType(
    {
        SystemRole.SUPER_ADMIN: 100,
        SystemRole.ADMIN: 80,
        SystemRole.DEVELOPER: 60,
        SystemRole.ANALYST: 40,
        SystemRole.VIEWER: 20,
        SystemRole.GUEST: 10,
    }
)

DEFAULT_SYSTEM_ROLE = SystemRole.VIEWER

ROLE_DEFINITIONS: MappingProxyType[SystemRole, tuple[str, str]] = MappingProxyType(
    {
        SystemRole.SUPER_ADMIN: ("Super Administrator", "Full system access with all permissions"),
        SystemRole.ADMIN: ("Administrator", "User management and full ClickHouse access"),
        SystemRole.DEVELOPER: ("Developer", "DDL and DML access for development"),
        SystemRole.ANALYST: ("Analyst", "Read/write access for data analysis"),
        SystemRole.VIEWER: ("Viewer", "Read-only access to data"),
        SystemRole.GUEST: ("Guest", "Read-only access to all tabs and data"),
    }
)


# --- Permissions ---


class Perm(enum.StrEnum):
    """Capability strings granted to roles."""

    USERS_VIEW = "users:view"
    USERS_CREATE = "users:create"
    USERS_UPDATE = "users:update"
    USERS_DELETE = "users:delete"

    ROLES_VIEW = "roles:view"
    ROLES_CREATE = "roles:create"
    ROLES_UPDATE = "roles:update"
    ROLES_DELETE = "roles:delete"
    ROLES_ASSIGN = "roles:assign"

    CH_USERS_VIEW = "clickhouse:users:view"
    CH_USERS_CREATE = "clickhouse:users:create"
    CH_USERS_UPDATE = "clickhouse:users:update"
    CH_USERS_DELETE = "clickhouse:users:delete"

    DB_VIEW = "database:view"
    DB_CREATE = "database:create"
    DB_DROP = "database:drop"

    TABLE_VIEW = "table:view"
    TABLE_CREATE = "table:create"
    TABLE_ALTER = "table:alter"
    TABLE_DROP = "table:drop"
    TABLE_SELECT = "table:select"
    TABLE_INSERT = "table:insert"
    TABLE_UPDATE = "table:update"
    TABLE_DELETE = "table:delete"

    QUERY_EXECUTE = "query:execute"
    QUERY_EXECUTE_DDL = "query:execute:ddl"
    QUERY_EXECUTE_DML = "query:execute:dml"
    QUERY_EXECUTE_MISC = "query:execute:misc"
    QUERY_HISTORY_VIEW = "query:history:view"
    QUERY_HISTORY_VIEW_ALL = "query:history:view:all"

    SAVED_QUERIES_VIEW = "saved_queries:view"
    SAVED_QUERIES_CREATE = "saved_queries:create"
    SAVED_QUERIES_UPDATE = "saved_queries:update"
    SAVED_QUERIES_DELETE = "saved_queries:delete"
    SAVED_QUERIES_SHARE = "saved_queries:share"

    METRICS_VIEW = "metrics:view"
    METRICS_VIEW_ADVANCED = "metrics:view:advanced"

    SETTINGS_VIEW = "settings:view"
    SETTINGS_UPDATE = "settings:update"

    AUDIT_VIEW = "audit:view"
    AUDIT_EXPORT = "audit:export"
    AUDIT_DELETE = "audit:delete"

    LIVE_QUERIES_VIEW = "live_queries:view"
    LIVE_QUERIES_KILL = "live_queries:kill"
    LIVE_QUERIES_KILL_ALL = "live_queries:kill_all"

    CONNECTIONS_VIEW = "connections:view"
    CONNECTIONS_EDIT = "connections:edit"
    CONNECTIONS_DELETE = "connections:delete"

    AI_OPTIMIZE = "ai:optimize"
    AI_CHAT = "ai:chat"

    AI_MODELS_VIEW = "ai_models:view"
    AI_MODELS_CREATE = "ai_models:create"
    AI_MODELS_UPDATE = "ai_models:update"
    AI_MODELS_DELETE = "ai_models:delete"


PERMISSION_CATEGORIES: MappingProxyType[str, tuple[Perm, ...]] = MappingProxyType(
    {
        "User Management": (Perm.USERS_VIEW, Perm.USERS_CREATE, Perm.USERS_UPDATE, Perm.USERS_DELETE),
        "Role Management": (
            Perm.ROLES_VIEW,
            Perm.ROLES_CREATE,
            Perm.ROLES_UPDATE,
            Perm.ROLES_DELETE,
            Perm.ROLES_ASSIGN,
        ),
        "ClickHouse Users": (
            Perm.CH_USERS_VIEW,
            Perm.CH_USERS_CREATE,
            Perm.CH_USERS_UPDATE,
            Perm.CH_USERS_DELETE,
        ),
        "Database Operations": (Perm.DB_VIEW, Perm.DB_CREATE, Perm.DB_DROP),
        "Table Operations": (
            Perm.TABLE_VIEW,
            Perm.TABLE_CREATE,
            Perm.TABLE_ALTER,
            Perm.TABLE_DROP,
            Perm.TABLE_SELECT,
            Perm.TABLE_INSERT,
            Perm.TABLE_UPDATE,
            Perm.TABLE_DELETE,
        ),
        "Query Operations": (
            Perm.QUERY_EXECUTE,
            Perm.QUERY_EXECUTE_DDL,
            Perm.QUERY_EXECUTE_DML,
            Perm.QUERY_EXECUTE_MISC,
            Perm.QUERY_HISTORY_VIEW,
            Perm.QUERY_HISTORY_VIEW_ALL,
        ),
        "Saved Queries": (
            Perm.SAVED_QUERIES_VIEW,
            Perm.SAVED_QUERIES_CREATE,
            Perm.SAVED_QUERIES_UPDATE,
            Perm.SAVED_QUERIES_DELETE,
            Perm.SAVED_QUERIES_SHARE,
        ),
        "Metrics & Monitoring": (Perm.METRICS_VIEW, Perm.METRICS_VIEW_ADVANCED),
        "Settings": (Perm.SETTINGS_VIEW, Perm.SETTINGS_UPDATE),
        "Audit": (Perm.AUDIT_VIEW, Perm.AUDIT_EXPORT, Perm.AUDIT_DELETE),
        "Live Queries": (Perm.LIVE_QUERIES_VIEW, Perm.LIVE_QUERIES_KILL, Perm.LIVE_QUERIES_KILL_ALL),
        "Connections": (Perm.CONNECTIONS_VIEW, Perm.CONNECTIONS_EDIT, Perm.CONNECTIONS_DELETE),
        "AI Features": (Perm.AI_OPTIMIZE, Perm.AI_CHAT),
        "AI Models": (Perm.AI_MODELS_VIEW, Perm.AI_MODELS_CREATE, Perm.AI_MODELS_UPDATE, Perm.AI_MODELS_DELETE),
    }
)

_VIEWER_PERMISSIONS = (
    Perm.DB_VIEW,
    Perm.TABLE_VIEW,
    Perm.TABLE_SELECT,
    Perm.QUERY_EXECUTE,
    Perm.QUERY_HISTORY_VIEW,
    Perm.SAVED_QUERIES_VIEW,
    Perm.METRICS_VIEW,
)

_ANALYST_PERMISSIONS = (
    Perm.DB_VIEW,
    Perm.TABLE_VIEW,
    Perm.TABLE_SELECT,
    Perm.TABLE_INSERT,
    Perm.TABLE_UPDATE,
    Perm.TABLE_DELETE,
    Perm.QUERY_EXECUTE,
    Perm.QUERY_EXECUTE_DML,
    Perm.QUERY_EXECUTE_MISC,
    Perm.QUERY_HISTORY_VIEW,
    Perm.SAVED_QUERIES_VIEW,
    Perm.SAVED_QUERIES_CREATE,
    Perm.SAVED_QUERIES_UPDATE,
    Perm.SAVED_QUERIES_DELETE,
    Perm.METRICS_VIEW,
    Perm.AI_OPTIMIZE,
    Perm.AI_CHAT,
)

_DEVELOPER_PERMISSIONS = (
    *_ANALYST_PERMISSIONS,
    Perm.DB_CREATE,
    Perm.DB_DROP,
    Perm.TABLE_CREATE,
    Perm.TABLE_ALTER,
    Perm.TABLE_DROP,
    Perm.QUERY_EXECUTE_DDL,
)

_GUEST_PERMISSIONS = (
    Perm.USERS_VIEW,
    Perm.ROLES_VIEW,
    Perm.CH_USERS_VIEW,
    Perm.DB_VIEW,
    Perm.TABLE_VIEW,
    Perm.TABLE_SELECT,
    Perm.QUERY_EXECUTE,
    Perm.QUERY_HISTORY_VIEW,
    Perm.SAVED_QUERIES_VIEW,
    Perm.METRICS_VIEW,
    Perm.METRICS_VIEW_ADVANCED,
    Perm.SETTINGS_VIEW,
    Perm.AUDIT_VIEW,
)

# Admin gets everything except role definition edits, audit export/delete and connection management.
_ADMIN_EXCLUDED = frozenset(
    {
        Perm.ROLES_CREATE,
        Perm.ROLES_UPDATE,
        Perm.ROLES_DELETE,
        Perm.AUDIT_EXPORT,
        Perm.AUDIT_DELETE,
        Perm.CONNECTIONS_VIEW,
        Perm.CONNECTIONS_EDIT,
        Perm.CONNECTIONS_DELETE,
    }
)

DEFAULT_ROLE_PERMISSIONS: MappingProxyType[SystemRole, tuple[Perm, ...]] = MappingProxyType(
    {
        SystemRole.SUPER_ADMIN: tuple(Perm),
        SystemRole.ADMIN: tuple(p for p in Perm if p not in _ADMIN_EXCLUDED),
        SystemRole.DEVELOPER: _DEVELOPER_PERMISSIONS,
        SystemRole.ANALYST: _ANALYST_PERMISSIONS,
        SystemRole.VIEWER: _VIEWER_PERMISSIONS,
        SystemRole.GUEST: _GUEST_PERMISSIONS,
    }
)


def permission_display_name(name: str) -> str:
    """Derive a human-readable label, e.g. ``table:select`` -> ``Table Select``."""
    return " ".join(part.replace("_", " ").title() for part in name.split(":"))


# --- Data access ---

SYSTEM_DATABASES = frozenset({"system", "information_schema", "INFORMATION_SCHEMA"})
WILDCARD = "*"

# --- Seeding ---

DEFAULT_ADMIN_EMAIL = "admin@localhost"
DEFAULT_ADMIN_USERNAME = "admin"
DEFAULT_ADMIN_PASSWORD = "admin123!"
SYSTEM_ADMIN_DISPLAY_NAME = "System Administrator"

# --- External connections ---

DEFAULT_CLICKHOUSE_PORT = 8123
DEFAULT_CONNECTION_TEST_TIMEOUT_SECONDS = 10.0
