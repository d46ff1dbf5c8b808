"""Domain exceptions shared across the authorization core."""


class RbacError(Exception):
    """Base exception for the authorization core."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(detail)


class ValidationError(RbacError, ValueError):
    """Input rejected before any write was attempted."""


class NotFoundError(RbacError, LookupError):
    """A referenced entity does not exist."""

    def __init__(self, entity: str, entity_id: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class StateError(RbacError):
    """Operation forbidden by the current state of the target."""


class ConfigurationError(RbacError):
    """Startup configuration is missing or unsafe."""


class CredentialDecryptionError(RbacError):
    """Stored ciphertext could not be authenticated or decoded."""


class ConflictError(RbacError):
    """A unique value (email, username, role name) is already taken."""
