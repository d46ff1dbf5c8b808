"""Connection profile schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from chouse_rbac.constants import DEFAULT_CLICKHOUSE_PORT


class ConnectionCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    host: str = Field(min_length=1, max_length=255)
    port: int = Field(default=DEFAULT_CLICKHOUSE_PORT, ge=1, le=65535)
    username: str = Field(min_length=1, max_length=255)
    password: str | None = None
    database: str | None = None
    ssl_enabled: bool = False
    is_default: bool = False
    metadata: dict[str, Any] | None = None


class ConnectionUpdate(BaseModel):
    """Partial update. ``password=""`` clears the stored password."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    host: str | None = Field(default=None, min_length=1, max_length=255)
    port: int | None = Field(default=None, ge=1, le=65535)
    username: str | None = Field(default=None, min_length=1, max_length=255)
    password: str | None = None
    database: str | None = None
    ssl_enabled: bool | None = None
    is_active: bool | None = None
    is_default: bool | None = None
    metadata: dict[str, Any] | None = None


class ConnectionResponse(BaseModel):
    """Stored connection. The password never leaves the service in this shape."""

    id: str
    name: str
    host: str
    port: int
    username: str
    database: str | None
    is_default: bool
    is_active: bool
    ssl_enabled: bool
    has_password: bool
    created_by: str | None
    metadata: dict[str, Any] | None
    created_at: datetime
    updated_at: datetime


class ConnectionWithPassword(ConnectionResponse):
    password: str | None


class ConnectionTestResult(BaseModel):
    """Outcome of a connectivity probe. Failures are reported, not raised."""

    success: bool
    version: str | None = None
    databases: list[str] = Field(default_factory=list)
    latency_ms: int | None = None
    error: str | None = None
