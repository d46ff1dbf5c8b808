"""Saved external data connections."""

from chouse_rbac.connections.schemas import (
    ConnectionCreate,
    ConnectionResponse,
    ConnectionTestResult,
    ConnectionUpdate,
    ConnectionWithPassword,
)
from chouse_rbac.connections.service import ConnectionService

__all__ = [
    "ConnectionCreate",
    "ConnectionResponse",
    "ConnectionService",
    "ConnectionTestResult",
    "ConnectionUpdate",
    "ConnectionWithPassword",
]
