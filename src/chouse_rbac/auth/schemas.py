"""Pydantic schemas for tokens and authentication results."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from chouse_rbac.constants import TOKEN_TYPE_BEARER


class TokenPayload(BaseModel):
    """Claims carried by access and refresh tokens.

    Access tokens carry identity, roles and permissions; refresh tokens carry
    only ``sub``, ``session_id`` and ``jti``.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    sub: str
    type: Literal["access", "refresh"]
    session_id: str | None = Field(default=None, alias="sessionId")
    email: str | None = None
    username: str | None = None
    roles: list[str] = Field(default_factory=list)
    permissions: list[str] = Field(default_factory=list)
    jti: str | None = None
    iss: str | None = None
    aud: str | None = None
    iat: int | None = None
    exp: int | None = None


class DecodedToken(BaseModel):
    """Outcome of lenient verification: a trusted payload, or an expired best-effort one."""

    payload: TokenPayload
    expired: bool = False


class TokenPair(BaseModel):
    """Access and refresh token issued together."""

    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = TOKEN_TYPE_BEARER


class AuthenticatedUser(BaseModel):
    """User fields returned after a successful login or refresh."""

    id: str
    email: str
    username: str
    display_name: str | None
    avatar_url: str | None
    roles: list[str]
    permissions: list[str]
    last_login_at: datetime | None


class AuthResult(BaseModel):
    """Successful authentication or refresh."""

    user: AuthenticatedUser
    tokens: TokenPair
    session_id: str


class SessionInfo(BaseModel):
    """Active session listing entry (the refresh token itself is never exposed)."""

    id: str
    ip_address: str | None
    user_agent: str | None
    created_at: datetime
    last_used_at: datetime | None
    expires_at: datetime
