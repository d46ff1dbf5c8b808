"""Composition root: one explicit handle per authorization store."""

import logging
from typing import Self

from chouse_rbac.access.service import DataAccessService
from chouse_rbac.ai.service import AiConfigService
from chouse_rbac.audit.service import AuditRecorder
from chouse_rbac.auth.jwt import JWTService
from chouse_rbac.auth.passwords import BcryptPasswordHasher, PasswordHasher
from chouse_rbac.auth.permissions import PermissionChecker
from chouse_rbac.auth.service import SessionService
from chouse_rbac.connections.service import ConnectionService
from chouse_rbac.crypto import CredentialCipher
from chouse_rbac.db.session import DatabaseManager
from chouse_rbac.identity.roles import RoleService
from chouse_rbac.identity.users import UserService
from chouse_rbac.logging import configure_logging
from chouse_rbac.seed import seed_database
from chouse_rbac.settings import RbacSettings

logger = logging.getLogger(__name__)


class RbacCore:
    """Every service of the authorization core bound to one store.

    Instances share nothing, so several can coexist in one process::

        core = RbacCore.from_settings(get_settings())
        await core.init_schema()
        async with core.db.session() as session:
            decision = await core.access.check_user_access(user_id, "sales", session)
        await core.dispose()
    """

    def __init__(
        self,
        settings: RbacSettings,
        db: DatabaseManager,
        cipher: CredentialCipher,
        hasher: PasswordHasher | None = None,
    ) -> None:
        self.settings = settings
        self.db = db
        self.cipher = cipher
        self.hasher = hasher or BcryptPasswordHasher(settings.BCRYPT_ROUNDS)
        self.jwt = JWTService(settings)

        self.audit = AuditRecorder()
        self.permissions = PermissionChecker()
        self.users = UserService(self.hasher, self.audit)
        self.roles = RoleService(self.audit)
        self.access = DataAccessService(self.audit)
        self.sessions = SessionService(self.jwt, self.hasher, self.permissions, self.audit)
        self.connections = ConnectionService(cipher, settings.CONNECTION_TEST_TIMEOUT_SECONDS, self.audit)
        self.ai = AiConfigService(cipher, self.audit)

    @classmethod
    def from_settings(cls, settings: RbacSettings, configure_logs: bool = False) -> Self:
        """Build the core, failing fast on unsafe production configuration.

        With *configure_logs* the root logger is switched to JSON output at
        ``LOG_LEVEL``; hosts that own their logging setup leave it off.

        Raises:
            ConfigurationError: Missing secrets in production, or an unusable backend URL.
        """
        if configure_logs:
            configure_logging(level=settings.LOG_LEVEL.upper())
        cipher = CredentialCipher.from_settings(settings)
        return cls(settings, DatabaseManager.from_settings(settings), cipher)

    async def init_schema(self, seed: bool = True) -> None:
        """Create missing tables and, optionally, seed the catalogue and first admin."""
        await self.db.create_all()
        if seed:
            async with self.db.session() as session:
                await seed_database(session, self.hasher, self.settings)
        logger.info("Authorization store ready (backend=%s)", self.db.backend.value)

    async def dispose(self) -> None:
        await self.db.dispose()
