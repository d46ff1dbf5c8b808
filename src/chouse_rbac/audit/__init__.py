"""Audit recorder."""

from chouse_rbac.audit.schemas import AuditLogEntry, AuditLogFilter, AuditMetadata, IdentitySnapshot, SnapshotResult
from chouse_rbac.audit.service import AuditRecorder

__all__ = ["AuditLogEntry", "AuditLogFilter", "AuditMetadata", "AuditRecorder", "IdentitySnapshot", "SnapshotResult"]
