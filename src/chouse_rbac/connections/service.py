"""Saved ClickHouse connection profiles and the connectivity probe."""

import logging
import time

import httpx
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from chouse_rbac.audit.service import AuditRecorder
from chouse_rbac.connections.schemas import (
    ConnectionCreate,
    ConnectionResponse,
    ConnectionTestResult,
    ConnectionUpdate,
    ConnectionWithPassword,
)
from chouse_rbac.constants import DEFAULT_CONNECTION_TEST_TIMEOUT_SECONDS
from chouse_rbac.crypto import CredentialCipher
from chouse_rbac.db.enums import AuditAction
from chouse_rbac.db.models.connection import Connection
from chouse_rbac.db.operations import set_default_flag
from chouse_rbac.exceptions import NotFoundError
from chouse_rbac.schemas import PaginatedResult

logger = logging.getLogger(__name__)

VERSION_QUERY = "SELECT version() AS version FORMAT JSON"
DATABASES_QUERY = "SHOW DATABASES FORMAT JSON"


def to_connection_response(connection: Connection) -> ConnectionResponse:
    return ConnectionResponse(
        id=connection.id,
        name=connection.name,
        host=connection.host,
        port=connection.port,
        username=connection.username,
        database=connection.database,
        is_default=connection.is_default,
        is_active=connection.is_active,
        ssl_enabled=connection.ssl_enabled,
        has_password=connection.password_encrypted is not None,
        created_by=connection.created_by,
        metadata=connection.connection_metadata,
        created_at=connection.created_at,
        updated_at=connection.updated_at,
    )


class ConnectionService:
    """CRUD for connection profiles. Passwords are stored only as cipher output.

    Args:
        cipher: Encrypts passwords on write and decrypts them on explicit request.
        timeout: Seconds allowed for each probe request.
        audit: Recorder for mutations.
    """

    def __init__(
        self,
        cipher: CredentialCipher,
        timeout: float = DEFAULT_CONNECTION_TEST_TIMEOUT_SECONDS,
        audit: AuditRecorder | None = None,
    ) -> None:
        self._cipher = cipher
        self._timeout = timeout
        self._audit = audit or AuditRecorder()

    async def create_connection(
        self,
        data: ConnectionCreate,
        session: AsyncSession,
        actor_id: str | None = None,
    ) -> ConnectionResponse:
        connection = Connection(
            name=data.name,
            host=data.host,
            port=data.port,
            username=data.username,
            password_encrypted=self._cipher.encrypt(data.password) if data.password else None,
            database=data.database,
            ssl_enabled=data.ssl_enabled,
            is_default=False,
            created_by=actor_id,
            connection_metadata=data.metadata,
        )
        session.add(connection)
        await session.flush()
        if data.is_default:
            await set_default_flag(session, Connection, connection)

        await self._audit.create_audit_log(
            AuditAction.CONNECTION_CREATE,
            actor_id,
            session,
            resource_type="connection",
            resource_id=connection.id,
            details={"name": data.name, "host": data.host, "port": data.port},
        )
        logger.info("Created connection %s (%s:%d)", data.name, data.host, data.port)
        return to_connection_response(connection)

    async def get_connection(self, connection_id: str, session: AsyncSession) -> ConnectionResponse | None:
        connection = await session.get(Connection, connection_id)
        return to_connection_response(connection) if connection else None

    async def get_connection_with_password(
        self, connection_id: str, session: AsyncSession
    ) -> ConnectionWithPassword | None:
        """Return the connection with its decrypted password.

        Raises:
            CredentialDecryptionError: The stored ciphertext fails authentication.
        """
        connection = await session.get(Connection, connection_id)
        if connection is None:
            return None
        password = self._cipher.decrypt(connection.password_encrypted) if connection.password_encrypted else None
        return ConnectionWithPassword(**to_connection_response(connection).model_dump(), password=password)

    async def list_connections(
        self,
        session: AsyncSession,
        active_only: bool = False,
        search: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> PaginatedResult[ConnectionResponse]:
        """Connections with the default first, then by name."""
        base = select(Connection)
        count_base = select(func.count(Connection.id))
        if active_only:
            base = base.where(Connection.is_active.is_(True))
            count_base = count_base.where(Connection.is_active.is_(True))
        if search:
            term = or_(
                Connection.name.icontains(search, autoescape=True),
                Connection.host.icontains(search, autoescape=True),
            )
            base = base.where(term)
            count_base = count_base.where(term)

        total = (await session.execute(count_base)).scalar() or 0
        stmt = base.order_by(Connection.is_default.desc(), Connection.name).offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        rows = (await session.execute(stmt)).scalars().all()
        return PaginatedResult([to_connection_response(c) for c in rows], total)

    async def update_connection(
        self,
        connection_id: str,
        data: ConnectionUpdate,
        session: AsyncSession,
        actor_id: str | None = None,
    ) -> ConnectionResponse:
        connection = await self._get_or_raise(connection_id, session)
        changes = data.model_dump(exclude_unset=True)

        for field in ("name", "host", "port", "username", "database", "ssl_enabled", "is_active"):
            if field in changes and (changes[field] is not None or field == "database"):
                setattr(connection, field, changes[field])
        if "metadata" in changes:
            connection.connection_metadata = data.metadata
        if "password" in changes:
            connection.password_encrypted = self._cipher.encrypt(data.password) if data.password else None

        if data.is_default is True:
            await set_default_flag(session, Connection, connection)
        elif data.is_default is False:
            connection.is_default = False
        await session.flush()

        await self._audit.create_audit_log(
            AuditAction.CONNECTION_UPDATE,
            actor_id,
            session,
            resource_type="connection",
            resource_id=connection_id,
            details={"fields": sorted(changes)},
        )
        await session.refresh(connection)
        return to_connection_response(connection)

    async def delete_connection(self, connection_id: str, session: AsyncSession, actor_id: str | None = None) -> bool:
        """Delete a connection and its connection-scoped data access rules."""
        connection = await session.get(Connection, connection_id)
        if connection is None:
            return False
        name = connection.name
        await session.delete(connection)
        await session.flush()

        await self._audit.create_audit_log(
            AuditAction.CONNECTION_DELETE,
            actor_id,
            session,
            resource_type="connection",
            resource_id=connection_id,
            details={"name": name},
        )
        return True

    async def set_default_connection(
        self, connection_id: str, session: AsyncSession, actor_id: str | None = None
    ) -> ConnectionResponse:
        return await self.update_connection(connection_id, ConnectionUpdate(is_default=True), session, actor_id)

    async def get_default_connection(self, session: AsyncSession) -> ConnectionResponse | None:
        """The active default connection, else the oldest active one."""
        stmt = select(Connection).where(Connection.is_default.is_(True), Connection.is_active.is_(True))
        connection = (await session.execute(stmt)).scalars().first()
        if connection is None:
            fallback = select(Connection).where(Connection.is_active.is_(True)).order_by(Connection.created_at)
            connection = (await session.execute(fallback)).scalars().first()
        return to_connection_response(connection) if connection else None

    # --- Probe ---

    async def test_connection(self, data: ConnectionCreate) -> ConnectionTestResult:
        """Probe a ClickHouse server over its HTTP interface without saving anything."""
        scheme = "https" if data.ssl_enabled else "http"
        url = f"{scheme}://{data.host}:{data.port}/"
        headers = {"X-ClickHouse-User": data.username, "X-ClickHouse-Key": data.password or ""}
        params = {"database": data.database or "default"}

        started = time.monotonic()
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                version_response = await client.get(url, params={**params, "query": VERSION_QUERY}, headers=headers)
                version_response.raise_for_status()
                databases_response = await client.get(
                    url, params={**params, "query": DATABASES_QUERY}, headers=headers
                )
                databases_response.raise_for_status()
            version_rows = version_response.json()["data"]
            database_rows = databases_response.json()["data"]
            version = version_rows[0]["version"] if version_rows else None
            databases = [row["name"] for row in database_rows]
        except httpx.HTTPStatusError as exc:
            logger.info("Connection probe to %s rejected: HTTP %d", data.host, exc.response.status_code)
            return self._failure(started, exc.response.text.strip() or f"HTTP {exc.response.status_code}")
        except httpx.HTTPError as exc:
            logger.info("Connection probe to %s failed: %s", data.host, exc)
            return self._failure(started, str(exc) or exc.__class__.__name__)
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            logger.info("Connection probe to %s returned an unexpected payload: %r", data.host, exc)
            return self._failure(started, f"Unexpected response from server: {exc!r}")

        return ConnectionTestResult(
            success=True,
            version=version,
            databases=databases,
            latency_ms=self._elapsed_ms(started),
        )

    async def test_saved_connection(self, connection_id: str, session: AsyncSession) -> ConnectionTestResult:
        """Probe a stored connection using its decrypted password."""
        connection = await self.get_connection_with_password(connection_id, session)
        if connection is None:
            return ConnectionTestResult(success=False, error="Connection not found")
        return await self.test_connection(
            ConnectionCreate(
                name=connection.name,
                host=connection.host,
                port=connection.port,
                username=connection.username,
                password=connection.password,
                database=connection.database,
                ssl_enabled=connection.ssl_enabled,
            )
        )

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.monotonic() - started) * 1000)

    def _failure(self, started: float, error: str) -> ConnectionTestResult:
        return ConnectionTestResult(success=False, error=error, latency_ms=self._elapsed_ms(started))

    async def _get_or_raise(self, connection_id: str, session: AsyncSession) -> Connection:
        connection = await session.get(Connection, connection_id)
        if connection is None:
            raise NotFoundError("Connection", connection_id)
        return connection
