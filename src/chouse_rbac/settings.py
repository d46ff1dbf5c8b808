"""Authorization core settings loaded from environment variables."""

import functools
import logging
from typing import Literal

from pydantic_settings import BaseSettings

from chouse_rbac.constants import (
    DEFAULT_ACCESS_TOKEN_EXPIRE_MINUTES,
    DEFAULT_ADMIN_EMAIL,
    DEFAULT_ADMIN_PASSWORD,
    DEFAULT_ADMIN_USERNAME,
    DEFAULT_BCRYPT_ROUNDS,
    DEFAULT_CONNECTION_TEST_TIMEOUT_SECONDS,
    DEFAULT_JWT_AUDIENCE,
    DEFAULT_JWT_ISSUER,
    DEFAULT_KDF_ITERATIONS,
    DEFAULT_POSTGRES_POOL_SIZE,
    DEFAULT_REFRESH_TOKEN_EXPIRE_DAYS,
    DEFAULT_SQLITE_PATH,
    DEV_JWT_SECRET,
    Environment,
)
from chouse_rbac.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class RbacSettings(BaseSettings):
    """Authorization core configuration.

    Values are resolved once per process; changing them requires a restart.
    """

    ENVIRONMENT: Environment = Environment.DEVELOPMENT

    # Persistence backend
    RBAC_DB_TYPE: Literal["sqlite", "postgres"] = "sqlite"
    RBAC_SQLITE_PATH: str = DEFAULT_SQLITE_PATH
    RBAC_POSTGRES_URL: str = ""
    DATABASE_URL: str = ""  # fallback for RBAC_POSTGRES_URL
    RBAC_POSTGRES_POOL_SIZE: int = DEFAULT_POSTGRES_POOL_SIZE
    RBAC_DB_ECHO: bool = False

    # Credential cipher
    RBAC_ENCRYPTION_KEY: str = ""  # falls back to JWT_SECRET
    RBAC_ENCRYPTION_SALT: str = ""
    RBAC_ENCRYPTION_ITERATIONS: int = DEFAULT_KDF_ITERATIONS

    # Tokens
    JWT_SECRET: str = ""
    JWT_ISSUER: str = DEFAULT_JWT_ISSUER
    JWT_AUDIENCE: str = DEFAULT_JWT_AUDIENCE
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = DEFAULT_ACCESS_TOKEN_EXPIRE_MINUTES
    JWT_REFRESH_TOKEN_EXPIRE_DAYS: int = DEFAULT_REFRESH_TOKEN_EXPIRE_DAYS

    # Password hashing
    BCRYPT_ROUNDS: int = DEFAULT_BCRYPT_ROUNDS

    # External connections
    CONNECTION_TEST_TIMEOUT_SECONDS: float = DEFAULT_CONNECTION_TEST_TIMEOUT_SECONDS

    # Seeding
    RBAC_ADMIN_EMAIL: str = DEFAULT_ADMIN_EMAIL
    RBAC_ADMIN_USERNAME: str = DEFAULT_ADMIN_USERNAME
    RBAC_ADMIN_PASSWORD: str = DEFAULT_ADMIN_PASSWORD

    # Logging
    LOG_LEVEL: str = "INFO"

    model_config = {"env_prefix": ""}

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == Environment.PRODUCTION

    @property
    def postgres_url(self) -> str:
        return self.RBAC_POSTGRES_URL or self.DATABASE_URL

    @property
    def jwt_secret(self) -> str:
        """Signing secret, with a development-only fallback.

        Raises:
            ConfigurationError: If running in production without ``JWT_SECRET``.
        """
        if self.JWT_SECRET.strip():
            return self.JWT_SECRET
        if self.is_production:
            raise ConfigurationError("JWT_SECRET must be set in production")
        logger.warning("JWT_SECRET is not set; using the development signing secret")
        return DEV_JWT_SECRET


@functools.lru_cache(maxsize=1)
def get_settings() -> RbacSettings:
    """Return cached settings singleton."""
    return RbacSettings()
