"""Database enums for the authorization core."""

import enum


class DatabaseType(enum.StrEnum):
    """Supported persistence backends."""

    SQLITE = "sqlite"
    POSTGRES = "postgres"


class AccessType(enum.StrEnum):
    """Access category carried on a data access rule (informational)."""

    READ = "read"
    WRITE = "write"
    ADMIN = "admin"
    MISC = "misc"


class AuditStatus(enum.StrEnum):
    """Outcome recorded on an audit entry."""

    SUCCESS = "success"
    FAILURE = "failure"


class AuditAction(enum.StrEnum):
    """Sensitive actions written to the audit log."""

    # Auth
    LOGIN = "auth.login"
    LOGOUT = "auth.logout"
    LOGIN_FAILED = "auth.login_failed"
    PASSWORD_CHANGE = "auth.password_change"

    # Users
    USER_CREATE = "user.create"
    USER_UPDATE = "user.update"
    USER_DELETE = "user.delete"
    USER_ROLE_ASSIGN = "user.role_assign"
    USER_ROLE_REVOKE = "user.role_revoke"

    # Roles
    ROLE_CREATE = "role.create"
    ROLE_UPDATE = "role.update"
    ROLE_DELETE = "role.delete"

    # Audit retention
    AUDIT_LOG_DELETE = "audit.delete"

    # AI providers, models, configs
    AI_PROVIDER_CREATE = "ai_provider.create"
    AI_PROVIDER_UPDATE = "ai_provider.update"
    AI_PROVIDER_DELETE = "ai_provider.delete"
    AI_MODEL_CREATE = "ai_model.create"
    AI_MODEL_UPDATE = "ai_model.update"
    AI_MODEL_DELETE = "ai_model.delete"
    AI_CONFIG_CREATE = "ai_config.create"
    AI_CONFIG_UPDATE = "ai_config.update"
    AI_CONFIG_DELETE = "ai_config.delete"

    # Connections
    CONNECTION_CREATE = "connection.create"
    CONNECTION_UPDATE = "connection.update"
    CONNECTION_DELETE = "connection.delete"
    CONNECTION_CONNECT = "connection.connect"

    # Data access rules
    DATA_ACCESS_CREATE = "data_access.create"
    DATA_ACCESS_UPDATE = "data_access.update"
    DATA_ACCESS_DELETE = "data_access.delete"
    DATA_ACCESS_BULK_SET = "data_access.bulk_set"


class AiProviderType(enum.StrEnum):
    """Supported AI provider families."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    HUGGINGFACE = "huggingface"
    OPENAI_COMPATIBLE = "openai-compatible"
