"""AI provider, model and config schemas."""

from datetime import datetime

from pydantic import BaseModel, Field

from chouse_rbac.db.enums import AiProviderType


class ProviderCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    provider_type: AiProviderType
    base_url: str | None = None
    api_key: str | None = None
    is_active: bool = True


class ProviderUpdate(BaseModel):
    """Partial update. ``api_key=""`` clears the stored key."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    provider_type: AiProviderType | None = None
    base_url: str | None = None
    api_key: str | None = None
    is_active: bool | None = None


class ProviderResponse(BaseModel):
    id: str
    name: str
    provider_type: AiProviderType
    base_url: str | None
    has_api_key: bool
    is_active: bool
    created_at: datetime
    updated_at: datetime


class ModelCreate(BaseModel):
    provider_id: str
    name: str = Field(min_length=1, max_length=255)
    model_id: str = Field(min_length=1, max_length=255)
    is_active: bool = True


class ModelResponse(BaseModel):
    id: str
    provider_id: str
    name: str
    model_id: str
    is_active: bool
    created_at: datetime


class ConfigCreate(BaseModel):
    model_id: str
    name: str = Field(min_length=1, max_length=255)
    system_prompt: str | None = None
    is_active: bool = True
    is_default: bool = False


class ConfigUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    system_prompt: str | None = None
    is_active: bool | None = None
    is_default: bool | None = None


class ConfigResponse(BaseModel):
    id: str
    model_id: str
    name: str
    system_prompt: str | None
    is_active: bool
    is_default: bool
    created_at: datetime
    updated_at: datetime


class ConfigWithKey(BaseModel):
    """A config resolved down to everything a caller needs to reach the provider."""

    config: ConfigResponse
    model: ModelResponse
    provider: ProviderResponse
    api_key: str | None
