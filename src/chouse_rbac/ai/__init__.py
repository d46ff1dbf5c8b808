"""AI provider, model and config management."""

from chouse_rbac.ai.schemas import (
    ConfigCreate,
    ConfigResponse,
    ConfigUpdate,
    ConfigWithKey,
    ModelCreate,
    ModelResponse,
    ProviderCreate,
    ProviderResponse,
    ProviderUpdate,
)
from chouse_rbac.ai.service import AiConfigService

__all__ = [
    "AiConfigService",
    "ConfigCreate",
    "ConfigResponse",
    "ConfigUpdate",
    "ConfigWithKey",
    "ModelCreate",
    "ModelResponse",
    "ProviderCreate",
    "ProviderResponse",
    "ProviderUpdate",
]
