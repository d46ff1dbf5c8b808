"""Credential encryption for secrets stored at rest (connection passwords, provider API keys)."""

import logging
import os
from typing import Self

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from chouse_rbac.constants import (
    CIPHER_IV_LENGTH,
    CIPHER_KEY_LENGTH,
    CIPHER_TAG_LENGTH,
    DEFAULT_KDF_ITERATIONS,
    DEV_ENCRYPTION_SALT,
)
from chouse_rbac.exceptions import ConfigurationError, CredentialDecryptionError
from chouse_rbac.settings import RbacSettings

logger = logging.getLogger(__name__)

_SEPARATOR = ":"


def derive_key(secret: str, salt: str, iterations: int = DEFAULT_KDF_ITERATIONS) -> bytes:
    """Derive a 256-bit key from an operator secret with PBKDF2-HMAC-SHA256."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=CIPHER_KEY_LENGTH,
        salt=salt.encode(),
        iterations=iterations,
    )
    return kdf.derive(secret.encode())


class CredentialCipher:
    """Encrypts and decrypts credentials with AES-256-GCM.

    Ciphertext is serialised as ``iv:authTag:ciphertext`` with each component
    hex-encoded. Every call to :meth:`encrypt` draws a fresh 16-byte IV, so the
    same plaintext never produces the same output. :meth:`decrypt` validates the
    IV and tag lengths before decrypting and raises
    :class:`CredentialDecryptionError` on any failure; it never returns garbage.
    """

    def __init__(self, secret: str, salt: str, iterations: int = DEFAULT_KDF_ITERATIONS) -> None:
        if not secret:
            raise ConfigurationError("Encryption secret must be a non-empty string")
        if not salt:
            raise ConfigurationError("Encryption salt must be a non-empty string")
        self._aesgcm = AESGCM(derive_key(secret, salt, iterations))

    @classmethod
    def from_settings(cls, settings: RbacSettings) -> Self:
        """Build the cipher from ``RBAC_ENCRYPTION_KEY`` and ``RBAC_ENCRYPTION_SALT``.

        Outside production a missing key falls back to ``JWT_SECRET`` and a
        missing salt to the development salt.

        Raises:
            ConfigurationError: In production, if ``JWT_SECRET``, the key or the salt is missing.
        """
        if settings.is_production:
            required = {
                "JWT_SECRET": settings.JWT_SECRET,
                "RBAC_ENCRYPTION_KEY": settings.RBAC_ENCRYPTION_KEY,
                "RBAC_ENCRYPTION_SALT": settings.RBAC_ENCRYPTION_SALT,
            }
            missing = [name for name, value in required.items() if not value]
            if missing:
                raise ConfigurationError(f"{', '.join(missing)} must be set in production")
            return cls(settings.RBAC_ENCRYPTION_KEY, settings.RBAC_ENCRYPTION_SALT, settings.RBAC_ENCRYPTION_ITERATIONS)

        secret = settings.RBAC_ENCRYPTION_KEY or settings.jwt_secret
        salt = settings.RBAC_ENCRYPTION_SALT
        if not salt:
            logger.warning("RBAC_ENCRYPTION_SALT is not set; using the development salt")
            salt = DEV_ENCRYPTION_SALT
        return cls(secret, salt, settings.RBAC_ENCRYPTION_ITERATIONS)

    def encrypt(self, plaintext: str) -> str:
        """Encrypt *plaintext*, returning ``iv:authTag:ciphertext`` in hex."""
        iv = os.urandom(CIPHER_IV_LENGTH)
        sealed = self._aesgcm.encrypt(iv, plaintext.encode(), None)
        ciphertext, tag = sealed[:-CIPHER_TAG_LENGTH], sealed[-CIPHER_TAG_LENGTH:]
        return _SEPARATOR.join((iv.hex(), tag.hex(), ciphertext.hex()))

    def decrypt(self, encrypted: str) -> str:
        """Decrypt an ``iv:authTag:ciphertext`` string.

        Raises:
            CredentialDecryptionError: If the format, lengths or authentication tag are invalid.
        """
        parts = encrypted.split(_SEPARATOR)
        if len(parts) != 3:
            raise CredentialDecryptionError("Invalid encrypted data format")

        try:
            iv, tag, ciphertext = (bytes.fromhex(part) for part in parts)
        except ValueError as exc:
            raise CredentialDecryptionError("Encrypted data is not valid hex") from exc

        if len(iv) != CIPHER_IV_LENGTH:
            raise CredentialDecryptionError("Invalid IV length")
        if len(tag) != CIPHER_TAG_LENGTH:
            raise CredentialDecryptionError("Invalid auth tag length")

        try:
            plaintext = self._aesgcm.decrypt(iv, ciphertext + tag, None)
        except InvalidTag as exc:
            logger.warning("Credential decryption failed: authentication tag mismatch")
            raise CredentialDecryptionError("Failed to decrypt credential") from exc

        try:
            return plaintext.decode()
        except UnicodeDecodeError as exc:
            raise CredentialDecryptionError("Decrypted credential is not valid UTF-8") from exc

    def is_encrypted(self, value: str) -> bool:
        """Return ``True`` if *value* has the shape of this cipher's output."""
        parts = value.split(_SEPARATOR)
        if len(parts) != 3:
            return False
        try:
            iv, tag, _ = (bytes.fromhex(part) for part in parts)
        except ValueError:
            return False
        return len(iv) == CIPHER_IV_LENGTH and len(tag) == CIPHER_TAG_LENGTH
