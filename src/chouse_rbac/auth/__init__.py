"""Authentication: passwords, JWTs, sessions and permission checks."""

from chouse_rbac.auth.exceptions import (
    AuthError,
    InvalidCredentialsError,
    InvalidRefreshTokenError,
    JWTError,
    JWTExpiredError,
    JWTInvalidError,
)
from chouse_rbac.auth.jwt import JWTService, extract_token_from_header
from chouse_rbac.auth.passwords import BcryptPasswordHasher, PasswordHasher, validate_password_strength
from chouse_rbac.auth.permissions import PermissionChecker
from chouse_rbac.auth.schemas import AuthResult, TokenPair, TokenPayload
from chouse_rbac.auth.service import SessionService

__all__ = [
    "AuthError",
    "AuthResult",
    "BcryptPasswordHasher",
    "InvalidCredentialsError",
    "InvalidRefreshTokenError",
    "JWTError",
    "JWTExpiredError",
    "JWTInvalidError",
    "JWTService",
    "PasswordHasher",
    "PermissionChecker",
    "SessionService",
    "TokenPair",
    "TokenPayload",
    "extract_token_from_header",
    "validate_password_strength",
]
