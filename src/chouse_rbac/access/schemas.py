"""Data access rule schemas."""

from datetime import datetime

from pydantic import BaseModel, Field

from chouse_rbac.db.enums import AccessType


class RuleDefinition(BaseModel):
    """Pattern part of a rule, used on its own for bulk replacement."""

    connection_id: str | None = None
    database_pattern: str = Field(min_length=1, max_length=255)
    table_pattern: str = Field(default="*", min_length=1, max_length=255)
    access_type: AccessType = AccessType.READ
    is_allowed: bool = True
    priority: int = 0
    description: str | None = None


class RuleCreate(RuleDefinition):
    """A rule scoped to exactly one of ``role_id`` or ``user_id``."""

    role_id: str | None = None
    user_id: str | None = None


class RuleUpdate(BaseModel):
    """Partial update; scope (role/user) is immutable."""

    connection_id: str | None = None
    database_pattern: str | None = Field(default=None, min_length=1, max_length=255)
    table_pattern: str | None = Field(default=None, min_length=1, max_length=255)
    access_type: AccessType | None = None
    is_allowed: bool | None = None
    priority: int | None = None
    description: str | None = None


class RuleResponse(BaseModel):
    """Stored rule."""

    id: str
    role_id: str | None
    user_id: str | None
    connection_id: str | None
    database_pattern: str
    table_pattern: str
    access_type: AccessType
    is_allowed: bool
    priority: int
    description: str | None
    created_by: str | None
    created_at: datetime
    updated_at: datetime


class AccessCheckResult(BaseModel):
    """Outcome of a principal access check."""

    allowed: bool
    reason: str
    rule: RuleResponse | None = None
