"""AI provider configuration: providers, their models, and named usage configs."""

import logging
from typing import Any

from sqlalchemy import exists, select, update
from sqlalchemy.ext.asyncio import AsyncSession

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
from chouse_rbac.audit.service import AuditRecorder
from chouse_rbac.crypto import CredentialCipher
from chouse_rbac.db.enums import AuditAction
from chouse_rbac.db.models.ai import AiConfig, AiModel, AiProvider
from chouse_rbac.db.operations import set_default_flag
from chouse_rbac.exceptions import ConflictError, NotFoundError, StateError

logger = logging.getLogger(__name__)


def to_provider_response(provider: AiProvider) -> ProviderResponse:
    return ProviderResponse(
        id=provider.id,
        name=provider.name,
        provider_type=provider.provider_type,
        base_url=provider.base_url,
        has_api_key=provider.api_key_encrypted is not None,
        is_active=provider.is_active,
        created_at=provider.created_at,
        updated_at=provider.updated_at,
    )


def to_model_response(model: AiModel) -> ModelResponse:
    return ModelResponse(
        id=model.id,
        provider_id=model.provider_id,
        name=model.name,
        model_id=model.model_id,
        is_active=model.is_active,
        created_at=model.created_at,
    )


def to_config_response(config: AiConfig) -> ConfigResponse:
    return ConfigResponse(
        id=config.id,
        model_id=config.model_id,
        name=config.name,
        system_prompt=config.system_prompt,
        is_active=config.is_active,
        is_default=config.is_default,
        created_at=config.created_at,
        updated_at=config.updated_at,
    )


class AiConfigService:
    """Manages the provider -> model -> config chain.

    Deletion is bottom-up: a provider with models, or a model with configs,
    cannot be deleted. A config can only be active while its provider is.
    """

    def __init__(self, cipher: CredentialCipher, audit: AuditRecorder | None = None) -> None:
        self._cipher = cipher
        self._audit = audit or AuditRecorder()

    # --- Providers ---

    async def create_provider(
        self, data: ProviderCreate, session: AsyncSession, actor_id: str | None = None
    ) -> ProviderResponse:
        if (await session.execute(select(AiProvider.id).where(AiProvider.name == data.name))).first():
            raise ConflictError(f"AI provider already exists: {data.name}")
        provider = AiProvider(
            name=data.name,
            provider_type=data.provider_type,
            base_url=data.base_url,
            api_key_encrypted=self._cipher.encrypt(data.api_key) if data.api_key else None,
            is_active=data.is_active,
        )
        session.add(provider)
        await session.flush()
        await self._audit.create_audit_log(
            AuditAction.AI_PROVIDER_CREATE,
            actor_id,
            session,
            resource_type="ai_provider",
            resource_id=provider.id,
            details={"name": data.name, "provider_type": data.provider_type.value},
        )
        return to_provider_response(provider)

    async def update_provider(
        self, provider_id: str, data: ProviderUpdate, session: AsyncSession, actor_id: str | None = None
    ) -> ProviderResponse:
        """Apply a partial update. Deactivating a provider deactivates every config beneath it."""
        provider = await self._get(AiProvider, provider_id, session)
        changes = data.model_dump(exclude_unset=True)

        if data.name is not None:
            provider.name = data.name
        if data.provider_type is not None:
            provider.provider_type = data.provider_type
        if "base_url" in changes:
            provider.base_url = data.base_url
        if "api_key" in changes:
            provider.api_key_encrypted = self._cipher.encrypt(data.api_key) if data.api_key else None
        if data.is_active is not None:
            provider.is_active = data.is_active
        await session.flush()

        if data.is_active is False:
            model_ids = select(AiModel.id).where(AiModel.provider_id == provider_id)
            cursor = await session.execute(
                update(AiConfig).where(AiConfig.model_id.in_(model_ids)).values(is_active=False)
            )
            deactivated: int = cursor.rowcount  # type: ignore[attr-defined]
            if deactivated:
                logger.info("Deactivated %d AI config(s) with provider %s", deactivated, provider_id)

        await self._audit.create_audit_log(
            AuditAction.AI_PROVIDER_UPDATE,
            actor_id,
            session,
            resource_type="ai_provider",
            resource_id=provider_id,
            details={"fields": sorted(changes)},
        )
        await session.refresh(provider)
        return to_provider_response(provider)

    async def delete_provider(self, provider_id: str, session: AsyncSession, actor_id: str | None = None) -> bool:
        """Delete a provider that has no models.

        Raises:
            StateError: The provider still has models.
        """
        provider = await session.get(AiProvider, provider_id)
        if provider is None:
            return False
        if await self._has_children(AiModel.provider_id == provider_id, session):
            raise StateError("Cannot delete provider because it has dependent models. Please delete them first.")
        await session.delete(provider)
        await session.flush()
        await self._audit.create_audit_log(
            AuditAction.AI_PROVIDER_DELETE,
            actor_id,
            session,
            resource_type="ai_provider",
            resource_id=provider_id,
        )
        return True

    async def list_providers(self, session: AsyncSession) -> list[ProviderResponse]:
        rows = (await session.execute(select(AiProvider).order_by(AiProvider.name))).scalars().all()
        return [to_provider_response(p) for p in rows]

    # --- Models ---

    async def create_model(
        self, data: ModelCreate, session: AsyncSession, actor_id: str | None = None
    ) -> ModelResponse:
        await self._get(AiProvider, data.provider_id, session)
        model = AiModel(provider_id=data.provider_id, name=data.name, model_id=data.model_id, is_active=data.is_active)
        session.add(model)
        await session.flush()
        await self._audit.create_audit_log(
            AuditAction.AI_MODEL_CREATE,
            actor_id,
            session,
            resource_type="ai_model",
            resource_id=model.id,
            details={"provider_id": data.provider_id, "model_id": data.model_id},
        )
        return to_model_response(model)

    async def delete_model(self, model_id: str, session: AsyncSession, actor_id: str | None = None) -> bool:
        """Delete a model that has no configs.

        Raises:
            StateError: The model still has configs.
        """
        model = await session.get(AiModel, model_id)
        if model is None:
            return False
        if await self._has_children(AiConfig.model_id == model_id, session):
            raise StateError("Cannot delete model because it has dependent configurations. Please delete them first.")
        await session.delete(model)
        await session.flush()
        await self._audit.create_audit_log(
            AuditAction.AI_MODEL_DELETE,
            actor_id,
            session,
            resource_type="ai_model",
            resource_id=model_id,
        )
        return True

    async def list_models(self, session: AsyncSession, provider_id: str | None = None) -> list[ModelResponse]:
        stmt = select(AiModel).order_by(AiModel.name)
        if provider_id is not None:
            stmt = stmt.where(AiModel.provider_id == provider_id)
        return [to_model_response(m) for m in (await session.execute(stmt)).scalars().all()]

    # --- Configs ---

    async def create_config(
        self, data: ConfigCreate, session: AsyncSession, actor_id: str | None = None
    ) -> ConfigResponse:
        """Create a config.

        Raises:
            NotFoundError: The model does not exist.
            StateError: The config would be active under an inactive provider.
        """
        model = await self._get(AiModel, data.model_id, session)
        if data.is_active:
            await self._require_active_provider(model, session, "create active config")

        config = AiConfig(
            model_id=data.model_id,
            name=data.name,
            system_prompt=data.system_prompt,
            is_active=data.is_active,
            is_default=False,
        )
        session.add(config)
        await session.flush()
        if data.is_default:
            await set_default_flag(session, AiConfig, config)

        await self._audit.create_audit_log(
            AuditAction.AI_CONFIG_CREATE,
            actor_id,
            session,
            resource_type="ai_config",
            resource_id=config.id,
            details={"name": data.name, "model_id": data.model_id, "is_default": data.is_default},
        )
        return to_config_response(config)

    async def update_config(
        self, config_id: str, data: ConfigUpdate, session: AsyncSession, actor_id: str | None = None
    ) -> ConfigResponse:
        """Apply a partial update.

        Raises:
            StateError: Activating a config whose provider is inactive.
        """
        config = await self._get(AiConfig, config_id, session)
        if data.is_active is True:
            model = await self._get(AiModel, config.model_id, session)
            await self._require_active_provider(model, session, "activate config")

        changes = data.model_dump(exclude_unset=True)
        if data.name is not None:
            config.name = data.name
        if "system_prompt" in changes:
            config.system_prompt = data.system_prompt
        if data.is_active is not None:
            config.is_active = data.is_active

        if data.is_default is True:
            await set_default_flag(session, AiConfig, config)
        elif data.is_default is False:
            config.is_default = False
        await session.flush()

        await self._audit.create_audit_log(
            AuditAction.AI_CONFIG_UPDATE,
            actor_id,
            session,
            resource_type="ai_config",
            resource_id=config_id,
            details={"fields": sorted(changes)},
        )
        await session.refresh(config)
        return to_config_response(config)

    async def set_default_config(
        self, config_id: str, session: AsyncSession, actor_id: str | None = None
    ) -> ConfigResponse:
        return await self.update_config(config_id, ConfigUpdate(is_default=True), session, actor_id)

    async def delete_config(self, config_id: str, session: AsyncSession, actor_id: str | None = None) -> bool:
        config = await session.get(AiConfig, config_id)
        if config is None:
            return False
        await session.delete(config)
        await session.flush()
        await self._audit.create_audit_log(
            AuditAction.AI_CONFIG_DELETE,
            actor_id,
            session,
            resource_type="ai_config",
            resource_id=config_id,
        )
        return True

    async def list_configs(self, session: AsyncSession, active_only: bool = False) -> list[ConfigResponse]:
        stmt = select(AiConfig).order_by(AiConfig.is_default.desc(), AiConfig.name)
        if active_only:
            stmt = stmt.where(AiConfig.is_active.is_(True))
        return [to_config_response(c) for c in (await session.execute(stmt)).scalars().all()]

    async def get_config_with_key(self, config_id: str, session: AsyncSession) -> ConfigWithKey | None:
        """Resolve a config to its model, provider and decrypted API key.

        Raises:
            CredentialDecryptionError: The stored key fails authentication.
        """
        stmt = (
            select(AiConfig, AiModel, AiProvider)
            .join(AiModel, AiModel.id == AiConfig.model_id)
            .join(AiProvider, AiProvider.id == AiModel.provider_id)
            .where(AiConfig.id == config_id)
        )
        row = (await session.execute(stmt)).one_or_none()
        if row is None:
            return None
        config, model, provider = row
        api_key = self._cipher.decrypt(provider.api_key_encrypted) if provider.api_key_encrypted else None
        return ConfigWithKey(
            config=to_config_response(config),
            model=to_model_response(model),
            provider=to_provider_response(provider),
            api_key=api_key,
        )

    async def get_default_config_with_key(self, session: AsyncSession) -> ConfigWithKey | None:
        """The active default config, else the oldest active one, with its decrypted key."""
        stmt = select(AiConfig.id).where(AiConfig.is_default.is_(True), AiConfig.is_active.is_(True))
        config_id = (await session.execute(stmt)).scalars().first()
        if config_id is None:
            fallback = select(AiConfig.id).where(AiConfig.is_active.is_(True)).order_by(AiConfig.created_at)
            config_id = (await session.execute(fallback)).scalars().first()
        if config_id is None:
            return None
        return await self.get_config_with_key(config_id, session)

    # --- Helpers ---

    @staticmethod
    async def _get(model: type[Any], entity_id: str, session: AsyncSession) -> Any:
        entity = await session.get(model, entity_id)
        if entity is None:
            raise NotFoundError(model.__name__, entity_id)
        return entity

    @staticmethod
    async def _has_children(criterion: object, session: AsyncSession) -> bool:
        return bool((await session.execute(select(exists().where(criterion)))).scalar())

    @staticmethod
    async def _require_active_provider(model: AiModel, session: AsyncSession, action: str) -> None:
        provider = await session.get(AiProvider, model.provider_id)
        if provider is None or not provider.is_active:
            name = provider.name if provider else model.provider_id
            raise StateError(f"Cannot {action} because the provider {name!r} is inactive. Activate the provider first.")
