"""Pydantic schemas for users, roles and permissions."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

USERNAME_PATTERN = r"^[A-Za-z0-9_.-]+$"
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+$"


# --- Users ---


class UserCreate(BaseModel):
    """Input for creating a user. ``role_ids=None`` assigns the current default role."""

    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    username: str = Field(min_length=3, max_length=50, pattern=USERNAME_PATTERN)
    password: str = Field(min_length=1)
    display_name: str | None = Field(default=None, max_length=255)
    avatar_url: str | None = None
    role_ids: list[str] | None = None
    is_active: bool = True
    metadata: dict[str, Any] | None = None


class UserUpdate(BaseModel):
    """Partial update; ``None`` leaves a field unchanged. ``role_ids`` replaces the role set."""

    email: str | None = Field(default=None, min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    username: str | None = Field(default=None, min_length=3, max_length=50, pattern=USERNAME_PATTERN)
    display_name: str | None = Field(default=None, max_length=255)
    avatar_url: str | None = None
    is_active: bool | None = None
    role_ids: list[str] | None = None
    metadata: dict[str, Any] | None = None


class UserResponse(BaseModel):
    """User with resolved role and permission names."""

    id: str
    email: str
    username: str
    display_name: str | None
    avatar_url: str | None
    is_active: bool
    is_system_user: bool
    roles: list[str]
    permissions: list[str]
    last_login_at: datetime | None
    password_changed_at: datetime | None
    created_at: datetime
    updated_at: datetime


# --- Roles ---


class RoleCreate(BaseModel):
    """Input for creating a custom role. ``permissions`` holds permission names."""

    name: str = Field(min_length=1, max_length=100)
    display_name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    permissions: list[str] = Field(default_factory=list)
    is_default: bool = False
    priority: int | None = None
    metadata: dict[str, Any] | None = None


class RoleUpdate(BaseModel):
    """Partial update; ``permissions`` replaces the permission set when given."""

    display_name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    permissions: list[str] | None = None
    is_default: bool | None = None
    priority: int | None = None
    metadata: dict[str, Any] | None = None


class RoleResponse(BaseModel):
    """Role with its permission names and member count."""

    id: str
    name: str
    display_name: str
    description: str | None
    is_system: bool
    is_default: bool
    priority: int
    permissions: list[str]
    user_count: int
    created_at: datetime
    updated_at: datetime


# --- Permissions ---


class PermissionResponse(BaseModel):
    """Seeded permission."""

    id: str
    name: str
    display_name: str
    description: str | None
    category: str
