"""Create authorization core tables

Revision ID: 001_rbac_core
Revises:
Create Date: 2026-10-19

"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "001_rbac_core"
down_revision = None
branch_labels = None
depends_on = None

_ACCESS_TYPES = ("read", "write", "admin", "misc")
_AUDIT_STATUSES = ("success", "failure")
_AI_PROVIDER_TYPES = ("openai", "anthropic", "google", "huggingface", "openai-compatible")


def _timestamps(with_updated: bool = True) -> list[sa.Column]:
    columns = [sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())]
    if with_updated:
        columns.append(
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())
        )
    return columns


def upgrade() -> None:
    """Create identity, policy, session, audit, connection and AI tables.

    Seed data is not inserted here; ``chouse_rbac.seed.seed_database`` fills the
    catalogue idempotently on start.
    """

    # -- Users --
    op.create_table(
        "rbac_users",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("username", sa.String(100), nullable=False),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=True),
        sa.Column("avatar_url", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_system_user", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("password_changed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.String(36), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_rbac_users_email", "rbac_users", ["email"], unique=True)
    op.create_index("ix_rbac_users_username", "rbac_users", ["username"], unique=True)

    # -- Permissions --
    op.create_table(
        "rbac_permissions",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(100), nullable=False),
        sa.Column("is_system", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(with_updated=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_rbac_permissions_name", "rbac_permissions", ["name"], unique=True)
    op.create_index("ix_rbac_permissions_category", "rbac_permissions", ["category"])

    # -- Roles --
    op.create_table(
        "rbac_roles",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_system", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("metadata", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_rbac_roles_name", "rbac_roles", ["name"], unique=True)

    # -- Junctions --
    op.create_table(
        "rbac_role_permissions",
        sa.Column("role_id", sa.String(36), sa.ForeignKey("rbac_roles.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "permission_id",
            sa.String(36),
            sa.ForeignKey("rbac_permissions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        *_timestamps(with_updated=False),
        sa.PrimaryKeyConstraint("role_id", "permission_id"),
    )
    op.create_table(
        "rbac_user_roles",
        sa.Column("user_id", sa.String(36), sa.ForeignKey("rbac_users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role_id", sa.String(36), sa.ForeignKey("rbac_roles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("assigned_by", sa.String(36), nullable=True),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("user_id", "role_id"),
    )

    # -- Connections --
    op.create_table(
        "rbac_connections",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("host", sa.String(255), nullable=False),
        sa.Column("port", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(255), nullable=False),
        sa.Column("password_encrypted", sa.Text(), nullable=True),
        sa.Column("database", sa.String(255), nullable=True),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("ssl_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_by", sa.String(36), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    # -- Data access rules --
    op.create_table(
        "rbac_data_access_rules",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("role_id", sa.String(36), sa.ForeignKey("rbac_roles.id", ondelete="CASCADE"), nullable=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("rbac_users.id", ondelete="CASCADE"), nullable=True),
        sa.Column(
            "connection_id",
            sa.String(36),
            sa.ForeignKey("rbac_connections.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("database_pattern", sa.String(255), nullable=False),
        sa.Column("table_pattern", sa.String(255), nullable=False),
        sa.Column("access_type", sa.Enum(*_ACCESS_TYPES, name="access_type"), nullable=False, server_default="read"),
        sa.Column("is_allowed", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(36), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("(role_id IS NULL) <> (user_id IS NULL)", name="ck_data_access_rules_single_scope"),
    )
    op.create_index("ix_data_access_rules_role_id", "rbac_data_access_rules", ["role_id"])
    op.create_index("ix_data_access_rules_user_id", "rbac_data_access_rules", ["user_id"])
    op.create_index("ix_data_access_rules_connection_id", "rbac_data_access_rules", ["connection_id"])

    # -- Sessions --
    op.create_table(
        "rbac_sessions",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("rbac_users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("refresh_token", sa.Text(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("refresh_token", name="uq_rbac_sessions_refresh_token"),
    )
    op.create_index("ix_rbac_sessions_user_id", "rbac_sessions", ["user_id"])

    # -- Audit log --
    op.create_table(
        "rbac_audit_logs",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("rbac_users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("resource_type", sa.String(100), nullable=True),
        sa.Column("resource_id", sa.String(255), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("status", sa.Enum(*_AUDIT_STATUSES, name="audit_status"), nullable=False, server_default="success"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("username", sa.String(100), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("display_name", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_rbac_audit_logs_user_id", "rbac_audit_logs", ["user_id"])
    op.create_index("ix_rbac_audit_logs_action", "rbac_audit_logs", ["action"])
    op.create_index("ix_rbac_audit_logs_created_at", "rbac_audit_logs", ["created_at"])

    # -- AI providers, models, configs --
    op.create_table(
        "rbac_ai_providers",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("provider_type", sa.Enum(*_AI_PROVIDER_TYPES, name="ai_provider_type"), nullable=False),
        sa.Column("base_url", sa.Text(), nullable=True),
        sa.Column("api_key_encrypted", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name", name="uq_rbac_ai_providers_name"),
    )
    op.create_table(
        "rbac_ai_models",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column(
            "provider_id",
            sa.String(36),
            sa.ForeignKey("rbac_ai_providers.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("model_id", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(with_updated=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_rbac_ai_models_provider_id", "rbac_ai_models", ["provider_id"])
    op.create_table(
        "rbac_ai_configs",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("model_id", sa.String(36), sa.ForeignKey("rbac_ai_models.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("system_prompt", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_rbac_ai_configs_model_id", "rbac_ai_configs", ["model_id"])


def downgrade() -> None:
    """Drop every table (dependents first for FK ordering) and the enum types."""
    op.drop_table("rbac_ai_configs")
    op.drop_table("rbac_ai_models")
    op.drop_table("rbac_ai_providers")
    op.drop_table("rbac_audit_logs")
    op.drop_table("rbac_sessions")
    op.drop_table("rbac_data_access_rules")
    op.drop_table("rbac_connections")
    op.drop_table("rbac_user_roles")
    op.drop_table("rbac_role_permissions")
    op.drop_table("rbac_roles")
    op.drop_table("rbac_permissions")
    op.drop_table("rbac_users")
    for enum_name in ("ai_provider_type", "audit_status", "access_type"):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
