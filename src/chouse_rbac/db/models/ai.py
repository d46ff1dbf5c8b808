"""AI provider, model and configuration models."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from chouse_rbac.db.base import Base, enum_values, new_id, utc_now
from chouse_rbac.db.enums import AiProviderType


class AiProvider(Base):
    """Upstream AI vendor endpoint. The API key is stored encrypted."""

    __tablename__ = "rbac_ai_providers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    provider_type: Mapped[AiProviderType] = mapped_column(
        SQLEnum(AiProviderType, values_callable=enum_values, name="ai_provider_type"), nullable=False
    )
    base_url: Mapped[str | None] = mapped_column(Text)
    api_key_encrypted: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    # Relationships
    models: Mapped[list["AiModel"]] = relationship("AiModel", back_populates="provider")


class AiModel(Base):
    """A model offered by a provider."""

    __tablename__ = "rbac_ai_models"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    provider_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("rbac_ai_providers.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    model_id: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utc_now)

    # Relationships
    provider: Mapped["AiProvider"] = relationship("AiProvider", back_populates="models")
    configs: Mapped[list["AiConfig"]] = relationship("AiConfig", back_populates="model")


class AiConfig(Base):
    """Named usage profile bound to a model. At most one is the default."""

    __tablename__ = "rbac_ai_configs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    model_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("rbac_ai_models.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    system_prompt: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    # Relationships
    model: Mapped["AiModel"] = relationship("AiModel", back_populates="configs")
