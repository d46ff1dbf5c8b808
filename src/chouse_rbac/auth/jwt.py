"""JWT token creation and validation."""

import logging
import uuid
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt
from pydantic import ValidationError as PydanticValidationError

from chouse_rbac.auth.exceptions import JWTExpiredError, JWTInvalidError
from chouse_rbac.auth.schemas import DecodedToken, TokenPair, TokenPayload
from chouse_rbac.constants import DEFAULT_EXPIRY_THRESHOLD_SECONDS, TOKEN_TYPE_BEARER
from chouse_rbac.settings import RbacSettings

logger = logging.getLogger(__name__)


def extract_token_from_header(auth_header: str | None) -> str | None:
    """Return the token from an ``Authorization: Bearer <token>`` header, or ``None``."""
    if not auth_header:
        return None
    parts = auth_header.split(" ")
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1]:
        return None
    return parts[1]


def get_token_expiration(token: str) -> datetime | None:
    """Read ``exp`` without verifying the signature. ``None`` if absent or unreadable."""
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError:
        return None
    exp = claims.get("exp")
    if not isinstance(exp, int | float):
        return None
    return datetime.fromtimestamp(exp, tz=UTC)


def is_token_expiring_soon(token: str, threshold_seconds: int = DEFAULT_EXPIRY_THRESHOLD_SECONDS) -> bool:
    """True if *token* expires within *threshold_seconds* (or its expiry cannot be read)."""
    expires_at = get_token_expiration(token)
    if expires_at is None:
        return True
    return expires_at - datetime.now(UTC) < timedelta(seconds=threshold_seconds)


class JWTService:
    """Creates and validates JWT access and refresh tokens.

    Tokens are signed with HMAC-SHA256. Verification enforces issuer, audience,
    expiry and the ``type`` discriminator, so an access token can never be used
    where a refresh token is expected and vice versa.
    """

    ALGORITHM = "HS256"

    def __init__(self, settings: RbacSettings) -> None:
        self._secret = settings.jwt_secret
        self._issuer = settings.JWT_ISSUER
        self._audience = settings.JWT_AUDIENCE
        self._access_expire_minutes = settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES
        self._refresh_expire_days = settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS

    @property
    def access_expire_seconds(self) -> int:
        """Access token lifetime in seconds."""
        return self._access_expire_minutes * 60

    @property
    def refresh_expire_seconds(self) -> int:
        """Refresh token lifetime in seconds."""
        return self._refresh_expire_days * 86400

    def create_access_token(
        self,
        user_id: str,
        email: str,
        username: str,
        roles: list[str],
        permissions: list[str],
        session_id: str,
    ) -> str:
        """Create a short-lived access token carrying identity, roles and permissions."""
        now = datetime.now(UTC)
        payload: dict[str, Any] = {
            "sub": user_id,
            "email": email,
            "username": username,
            "roles": roles,
            "permissions": permissions,
            "sessionId": session_id,
            "type": "access",
            "iss": self._issuer,
            "aud": self._audience,
            "iat": now,
            "exp": now + timedelta(minutes=self._access_expire_minutes),
        }
        return jwt.encode(payload, self._secret, algorithm=self.ALGORITHM)

    def create_refresh_token(self, user_id: str, session_id: str) -> str:
        """Create a long-lived refresh token. ``jti`` makes every token unique."""
        now = datetime.now(UTC)
        payload: dict[str, Any] = {
            "sub": user_id,
            "sessionId": session_id,
            "type": "refresh",
            "jti": str(uuid.uuid4()),
            "iss": self._issuer,
            "aud": self._audience,
            "iat": now,
            "exp": now + timedelta(days=self._refresh_expire_days),
        }
        return jwt.encode(payload, self._secret, algorithm=self.ALGORITHM)

    def create_token_pair(
        self,
        user_id: str,
        email: str,
        username: str,
        roles: list[str],
        permissions: list[str],
        session_id: str,
    ) -> TokenPair:
        """Create both tokens for one session."""
        return TokenPair(
            access_token=self.create_access_token(user_id, email, username, roles, permissions, session_id),
            refresh_token=self.create_refresh_token(user_id, session_id),
            expires_in=self.access_expire_seconds,
            token_type=TOKEN_TYPE_BEARER,
        )

    def verify_access_token(self, token: str) -> TokenPayload:
        """Verify an access token.

        Raises:
            JWTExpiredError: If the token has expired.
            JWTInvalidError: If the token is malformed, forged, or not an access token.
        """
        return self._verify_typed(token, "access")

    def verify_refresh_token(self, token: str) -> TokenPayload:
        """Verify a refresh token.

        Raises:
            JWTExpiredError: If the token has expired.
            JWTInvalidError: If the token is malformed, forged, or not a refresh token.
        """
        return self._verify_typed(token, "refresh")

    def verify_token(self, token: str) -> DecodedToken:
        """Verify *token*, tolerating expiry.

        An expired but otherwise well-formed token is decoded without trusting
        its signature and returned with ``expired=True`` so callers can tell
        "expired" apart from "forged". Any other failure raises
        :class:`JWTInvalidError`.
        """
        try:
            return DecodedToken(payload=self._to_payload(self._decode(token)))
        except JWTExpiredError:
            try:
                claims = jwt.decode(token, options={"verify_signature": False})
            except jwt.InvalidTokenError as exc:
                raise JWTInvalidError("Invalid token") from exc
            return DecodedToken(payload=self._to_payload(claims), expired=True)

    def _verify_typed(self, token: str, expected: str) -> TokenPayload:
        payload = self._to_payload(self._decode(token))
        if payload.type != expected:
            logger.warning("Rejected %s token presented as %s token", payload.type, expected)
            raise JWTInvalidError("Invalid token type")
        return payload

    @staticmethod
    def _to_payload(claims: dict[str, Any]) -> TokenPayload:
        try:
            return TokenPayload.model_validate(claims)
        except PydanticValidationError as exc:
            raise JWTInvalidError("Invalid token") from exc

    def _decode(self, token: str) -> dict[str, Any]:
        """Decode a JWT, raising typed exceptions on failure."""
        try:
            payload: dict[str, Any] = jwt.decode(
                token,
                self._secret,
                algorithms=[self.ALGORITHM],
                issuer=self._issuer,
                audience=self._audience,
                options={"require": ["exp", "iat", "sub"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise JWTExpiredError("Token has expired") from exc
        except jwt.InvalidTokenError as exc:
            logger.debug("Token rejected: %s", exc)
            raise JWTInvalidError("Invalid token") from exc
        return payload
