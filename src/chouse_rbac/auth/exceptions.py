"""Domain exceptions for the auth module.

Messages are deliberately uniform: the caller learns that authentication failed,
never why. The specific cause is logged server-side.
"""

from chouse_rbac.exceptions import RbacError


class AuthError(RbacError):
    """Base exception for authentication failures."""


class InvalidCredentialsError(AuthError):
    """Unknown identifier, wrong password, or inactive account."""

    def __init__(self) -> None:
        super().__init__("Invalid credentials")


class InvalidRefreshTokenError(AuthError):
    """Refresh token is unknown, revoked, expired, or belongs to an inactive user."""

    def __init__(self) -> None:
        super().__init__("Invalid refresh token")


class JWTError(AuthError):
    """Base exception for JWT operations."""


class JWTExpiredError(JWTError):
    """Token has expired."""


class JWTInvalidError(JWTError):
    """Token is invalid (bad signature, malformed, wrong type, etc.)."""
