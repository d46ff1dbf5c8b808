"""Database session management via DatabaseManager class."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Protocol, Self

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from chouse_rbac.db.base import Base
from chouse_rbac.db.enums import DatabaseType
from chouse_rbac.exceptions import ConfigurationError
from chouse_rbac.settings import RbacSettings

logger = logging.getLogger(__name__)

SQLITE_MEMORY = ":memory:"


class DatabaseBackend(Protocol):
    """Engine-specific construction details; everything above it is backend-agnostic."""

    kind: DatabaseType

    @property
    def url(self) -> str: ...

    def engine_options(self) -> dict[str, Any]: ...

    def configure(self, engine: AsyncEngine) -> None: ...


def configure_sqlite_engine(engine: AsyncEngine) -> None:
    """Enable FK enforcement (and ON DELETE actions) and SAVEPOINT support on every SQLite connection.

    The driver's own transaction handling is switched off and SQLAlchemy emits
    ``BEGIN`` itself, otherwise ``begin_nested()`` can commit the outer transaction.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection: Any, _record: Any) -> None:
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN")


class SQLiteBackend:
    """File-backed (or in-memory) SQLite via aiosqlite."""

    kind = DatabaseType.SQLITE

    def __init__(self, path: str, echo: bool = False) -> None:
        self._path = path
        self._echo = echo

    @property
    def url(self) -> str:
        if self._path == SQLITE_MEMORY:
            return "sqlite+aiosqlite://"
        return f"sqlite+aiosqlite:///{self._path}"

    def engine_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {"echo": self._echo}
        if self._path == SQLITE_MEMORY:
            # One shared connection, otherwise each checkout sees an empty database.
            options["poolclass"] = StaticPool
            options["connect_args"] = {"check_same_thread": False}
        else:
            Path(self._path).parent.mkdir(parents=True, exist_ok=True)
        return options

    def configure(self, engine: AsyncEngine) -> None:
        configure_sqlite_engine(engine)


class PostgresBackend:
    """PostgreSQL via asyncpg with a bounded connection pool."""

    kind = DatabaseType.POSTGRES

    def __init__(self, url: str, pool_size: int, echo: bool = False) -> None:
        if not url:
            raise ConfigurationError("RBAC_POSTGRES_URL or DATABASE_URL is required for the postgres backend")
        self._url = url
        self._pool_size = pool_size
        self._echo = echo

    @property
    def url(self) -> str:
        # Accept plain postgres:// URLs and route them to the async driver.
        for prefix in ("postgresql://", "postgres://"):
            if self._url.startswith(prefix):
                return "postgresql+asyncpg://" + self._url[len(prefix) :]
        return self._url

    def engine_options(self) -> dict[str, Any]:
        return {"echo": self._echo, "pool_size": self._pool_size, "pool_pre_ping": True}

    def configure(self, engine: AsyncEngine) -> None:
        return None


def build_backend(settings: RbacSettings) -> DatabaseBackend:
    """Select the backend named by ``RBAC_DB_TYPE``."""
    if settings.RBAC_DB_TYPE == DatabaseType.POSTGRES:
        return PostgresBackend(settings.postgres_url, settings.RBAC_POSTGRES_POOL_SIZE, echo=settings.RBAC_DB_ECHO)
    return SQLiteBackend(settings.RBAC_SQLITE_PATH, echo=settings.RBAC_DB_ECHO)


class DatabaseManager:
    """Manages async database engine and session lifecycle.

    Usage:
        db = DatabaseManager.from_settings(settings)

        # As context manager
        async with db.session() as session:
            result = await session.execute(query)

        # As FastAPI dependency
        app.dependency_overrides[db.dependency] = ...

        # Cleanup
        await db.dispose()
    """

    def __init__(self, backend: DatabaseBackend) -> None:
        self._backend = backend
        self._engine = create_async_engine(backend.url, **backend.engine_options())
        backend.configure(self._engine)
        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        logger.info("Authorization store initialised (backend=%s)", backend.kind.value)

    @classmethod
    def from_settings(cls, settings: RbacSettings) -> Self:
        """Create a DatabaseManager for the configured backend."""
        return cls(build_backend(settings))

    @property
    def backend(self) -> DatabaseType:
        return self._backend.kind

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession]:
        """Get a database session with automatic commit/rollback.

        Commits on success, rolls back on exception.
        """
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def dependency(self) -> AsyncGenerator[AsyncSession]:
        """FastAPI Depends() compatible session provider."""
        async with self.session() as session:
            yield session

    async def create_all(self) -> None:
        """Create every table (development and tests; production uses Alembic)."""
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        """Dispose of the engine and release all connections."""
        await self._engine.dispose()
