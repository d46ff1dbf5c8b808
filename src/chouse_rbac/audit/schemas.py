"""Audit log query and response schemas."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import BaseModel


@dataclass(frozen=True, slots=True)
class IdentitySnapshot:
    """Actor identity as of the moment an audit row was written."""

    username: str | None
    email: str | None
    display_name: str | None


@dataclass(frozen=True, slots=True)
class SnapshotResult:
    """Outcome of snapshot enrichment.

    ``snapshot`` is ``None`` when enrichment was unavailable; ``reason`` says why.
    An unavailable snapshot never prevents the audit row from being written.
    """

    snapshot: IdentitySnapshot | None
    reason: str | None = None

    @property
    def available(self) -> bool:
        return self.snapshot is not None


class AuditLogFilter(BaseModel):
    """Filter surface shared by audit queries and retention deletes."""

    user_id: str | None = None
    username: str | None = None  # substring, case-insensitive
    email: str | None = None  # substring, case-insensitive
    action: str | None = None
    status: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None


class AuditLogEntry(BaseModel):
    """Audit row as returned to callers."""

    id: str
    user_id: str | None
    action: str
    resource_type: str | None
    resource_id: str | None
    details: dict[str, Any] | None
    ip_address: str | None
    user_agent: str | None
    status: str
    error_message: str | None
    username: str | None
    email: str | None
    display_name: str | None
    created_at: datetime


class AuditMetadata(BaseModel):
    """Distinct values available for audit filter pickers."""

    usernames: list[str]
    emails: list[str]
    statuses: list[str]
