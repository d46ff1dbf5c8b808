"""Password hashing boundary and strength validation."""

import re
from dataclasses import dataclass, field
from typing import Protocol

import bcrypt

from chouse_rbac.constants import (
    BCRYPT_MAX_PASSWORD_BYTES,
    COMMON_PASSWORD_PATTERNS,
    DEFAULT_BCRYPT_ROUNDS,
    MIN_PASSWORD_LENGTH,
)

_BCRYPT_HASH = re.compile(r"^\$2[aby]\$(\d{2})\$")
_SPECIAL_CHARACTER = re.compile(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?]")


class PasswordHasher(Protocol):
    """Swappable hashing algorithm used by authentication."""

    def hash(self, password: str) -> str: ...

    def verify(self, password: str, password_hash: str) -> bool: ...

    def needs_rehash(self, password_hash: str) -> bool: ...


class BcryptPasswordHasher:
    """bcrypt-backed :class:`PasswordHasher`.

    bcrypt only reads the first 72 bytes of input; longer passwords are
    truncated before hashing and verification.
    """

    def __init__(self, rounds: int = DEFAULT_BCRYPT_ROUNDS) -> None:
        self._rounds = rounds

    @staticmethod
    def _encode(password: str) -> bytes:
        return password.encode("utf-8")[:BCRYPT_MAX_PASSWORD_BYTES]

    def hash(self, password: str) -> str:
        return bcrypt.hashpw(self._encode(password), bcrypt.gensalt(rounds=self._rounds)).decode("utf-8")

    def verify(self, password: str, password_hash: str) -> bool:
        try:
            return bcrypt.checkpw(self._encode(password), password_hash.encode("utf-8"))
        except ValueError:
            # Malformed stored hash
            return False

    def needs_rehash(self, password_hash: str) -> bool:
        """True for non-bcrypt hashes or a cost factor below the configured one."""
        match = _BCRYPT_HASH.match(password_hash)
        if match is None:
            return True
        return int(match.group(1)) < self._rounds


@dataclass(slots=True)
class PasswordStrength:
    """Result of :func:`validate_password_strength`."""

    errors: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def validate_password_strength(password: str) -> PasswordStrength:
    """Check length, character classes and common patterns."""
    result = PasswordStrength()
    if len(password) < MIN_PASSWORD_LENGTH:
        result.errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if not re.search(r"[a-z]", password):
        result.errors.append("Password must contain at least one lowercase letter")
    if not re.search(r"[A-Z]", password):
        result.errors.append("Password must contain at least one uppercase letter")
    if not re.search(r"\d", password):
        result.errors.append("Password must contain at least one number")
    if not _SPECIAL_CHARACTER.search(password):
        result.errors.append("Password must contain at least one special character")

    lowered = password.lower()
    if any(pattern in lowered for pattern in COMMON_PASSWORD_PATTERNS):
        result.errors.append("Password contains a common pattern")
    return result
