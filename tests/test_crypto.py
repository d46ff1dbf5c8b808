"""Tests for CredentialCipher: AES-256-GCM round trips, tamper detection and configuration."""

from typing import Any

import pytest

from chouse_rbac.constants import Environment
from chouse_rbac.crypto import CredentialCipher, derive_key
from chouse_rbac.exceptions import ConfigurationError, CredentialDecryptionError
from chouse_rbac.settings import RbacSettings


def _test_settings(**overrides: Any) -> RbacSettings:
    values: dict[str, Any] = {
        "JWT_SECRET": "crypto-test-secret",
        "RBAC_ENCRYPTION_SALT": "crypto-test-salt",
        "RBAC_ENCRYPTION_ITERATIONS": 1000,
    }
    values.update(overrides)
    return RbacSettings(**values)


@pytest.fixture
def cipher() -> CredentialCipher:
    return CredentialCipher("secret", "salt", iterations=1000)


class TestRoundTrip:
    """Encrypt then decrypt returns the original."""

    @pytest.mark.parametrize("plaintext", ["", "p@ssw0rd", "ключ-🔑", "x" * 4096])
    def test_round_trip(self, cipher: CredentialCipher, plaintext: str) -> None:
        assert cipher.decrypt(cipher.encrypt(plaintext)) == plaintext

    def test_output_format(self, cipher: CredentialCipher) -> None:
        iv, tag, ciphertext = cipher.encrypt("hello").split(":")
        assert len(iv) == 32
        assert len(tag) == 32
        assert len(ciphertext) == 10

    def test_fresh_iv_every_call(self, cipher: CredentialCipher) -> None:
        first, second = cipher.encrypt("same"), cipher.encrypt("same")
        assert first != second
        assert first.split(":")[0] != second.split(":")[0]

    def test_is_encrypted(self, cipher: CredentialCipher) -> None:
        assert cipher.is_encrypted(cipher.encrypt("value")) is True
        assert cipher.is_encrypted("plain-text-password") is False
        assert cipher.is_encrypted("zz:zz:zz") is False


class TestTamperDetection:
    """Any modification or wrong key fails loudly."""

    def test_flipped_ciphertext(self, cipher: CredentialCipher) -> None:
        iv, tag, ciphertext = cipher.encrypt("secret value").split(":")
        flipped = format(int(ciphertext[:2], 16) ^ 0x01, "02x") + ciphertext[2:]
        with pytest.raises(CredentialDecryptionError, match="Failed to decrypt"):
            cipher.decrypt(f"{iv}:{tag}:{flipped}")

    def test_wrong_key(self, cipher: CredentialCipher) -> None:
        other = CredentialCipher("other-secret", "salt", iterations=1000)
        with pytest.raises(CredentialDecryptionError):
            other.decrypt(cipher.encrypt("value"))

    def test_wrong_salt(self, cipher: CredentialCipher) -> None:
        other = CredentialCipher("secret", "other-salt", iterations=1000)
        with pytest.raises(CredentialDecryptionError):
            other.decrypt(cipher.encrypt("value"))

    @pytest.mark.parametrize(
        ("value", "message"),
        [
            ("no-separators", "Invalid encrypted data format"),
            ("a:b:c:d", "Invalid encrypted data format"),
            ("zz:00:00", "not valid hex"),
            ("00:" + "00" * 16 + ":00", "Invalid IV length"),
            ("00" * 16 + ":00:00", "Invalid auth tag length"),
        ],
    )
    def test_malformed_input(self, cipher: CredentialCipher, value: str, message: str) -> None:
        with pytest.raises(CredentialDecryptionError, match=message):
            cipher.decrypt(value)


class TestConfiguration:
    """Key derivation and settings-driven construction."""

    def test_derive_key_deterministic(self) -> None:
        assert derive_key("s", "salt", 1000) == derive_key("s", "salt", 1000)
        assert len(derive_key("s", "salt", 1000)) == 32
        assert derive_key("s", "salt", 1000) != derive_key("s", "salt2", 1000)

    @pytest.mark.parametrize(("secret", "salt"), [("", "salt"), ("secret", "")])
    def test_empty_inputs_rejected(self, secret: str, salt: str) -> None:
        with pytest.raises(ConfigurationError):
            CredentialCipher(secret, salt)

    def test_from_settings_prefers_encryption_key(self) -> None:
        cipher = CredentialCipher.from_settings(_test_settings(RBAC_ENCRYPTION_KEY="dedicated-key"))
        expected = CredentialCipher("dedicated-key", "crypto-test-salt", iterations=1000)
        assert expected.decrypt(cipher.encrypt("v")) == "v"

    def test_from_settings_falls_back_to_jwt_secret(self) -> None:
        cipher = CredentialCipher.from_settings(_test_settings())
        expected = CredentialCipher("crypto-test-secret", "crypto-test-salt", iterations=1000)
        assert expected.decrypt(cipher.encrypt("v")) == "v"

    def test_development_uses_fallback_salt(self) -> None:
        cipher = CredentialCipher.from_settings(_test_settings(RBAC_ENCRYPTION_SALT=""))
        assert cipher.decrypt(cipher.encrypt("v")) == "v"

    @pytest.mark.parametrize("missing", ["RBAC_ENCRYPTION_KEY", "RBAC_ENCRYPTION_SALT", "JWT_SECRET"])
    def test_production_requires_secret_and_salt(self, missing: str) -> None:
        values = {"ENVIRONMENT": Environment.PRODUCTION, "RBAC_ENCRYPTION_KEY": "at-rest-key", missing: ""}
        with pytest.raises(ConfigurationError, match=f"{missing} must be set in production"):
            CredentialCipher.from_settings(_test_settings(**values))

    def test_production_does_not_reuse_jwt_secret(self) -> None:
        settings = _test_settings(ENVIRONMENT=Environment.PRODUCTION, RBAC_ENCRYPTION_KEY="at-rest-key")
        cipher = CredentialCipher.from_settings(settings)
        expected = CredentialCipher("at-rest-key", "crypto-test-salt", iterations=1000)
        assert expected.decrypt(cipher.encrypt("v")) == "v"
