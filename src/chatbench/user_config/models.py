"""
User Configuration Models

Model configurations selectable for a run, and the process-level app settings.
"""

import os
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ..constants import STORAGE_KEY, get_database_path
from ..utils import generate_id


class ProviderId(str, Enum):
    """Available provider adapters."""

    OPENAI_COMPATIBLE = "openai-compatible"
    DEEPSEEK_OFFICIAL = "deepseek-official"
    TEST_MOCK = "test-mock"


class ModelSettings(BaseModel):
    """
    Connection and generation parameters for one model.
    Unknown keys are kept so provider adapters can read extra settings.
    """

    endpoint: str | None = Field(default=None, title="API Endpoint")
    api_key: str | None = Field(default=None, alias="apiKey", title="API Key")
    model_name: str | None = Field(default=None, alias="modelName", title="Model Name")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0, title="Temperature")
    context_window: int = Field(default=4096, gt=0, alias="contextWindow", title="Context Window Size")

    model_config = ConfigDict(populate_by_name=True, extra="allow", protected_namespaces=())


class ModelConfig(BaseModel):
    """A saved model configuration instance (e.g. "My DeepSeek")."""

    id: str = Field(default_factory=generate_id)
    name: str = Field(default="New Model", title="Display Name")
    provider_id: ProviderId = Field(default=ProviderId.OPENAI_COMPATIBLE, alias="providerId")
    settings: ModelSettings = Field(default_factory=ModelSettings)

    model_config = ConfigDict(populate_by_name=True)

    def to_export(self) -> dict[str, Any]:
        """Serialize with the camelCase field names used by exports and persistence."""
        return self.model_dump(mode="json", by_alias=True)


def create_model_config(
    name: str = "New Model",
    provider_id: ProviderId | str = ProviderId.OPENAI_COMPATIBLE,
    **settings_overrides,
) -> ModelConfig:
    """Create a model config seeded with the provider's default settings."""
    from ..llm.factory import get_provider

    provider_id = ProviderId(provider_id)
    provider = get_provider(provider_id)
    settings = dict(provider.get_default_settings()) if provider else {}
    settings.update(settings_overrides)
    return ModelConfig(name=name, provider_id=provider_id, settings=ModelSettings(**settings))


class AppConfig(BaseModel):
    """Process-level settings for the server and its storage."""

    db_path: str = Field(default_factory=get_database_path, title="SQLite Database Path")
    storage_key: str = Field(default=STORAGE_KEY, title="Persistence Key")
    log_level: str = Field(default="INFO", title="Log Level")
    host: str = Field(default="127.0.0.1", title="Host")
    port: int = Field(default=8010, title="Port")
    seed_default_session: bool = Field(
        default=True,
        title="Seed Default Session",
        description="Create a 'New Chat' session with a system prompt when the store is empty",
    )


def load_app_config_from_env() -> AppConfig:
    """Load app configuration from CHATBENCH_* environment variables (fallback to defaults)."""
    overrides: dict[str, Any] = {}
    env_map = {
        "CHATBENCH_DB_PATH": "db_path",
        "CHATBENCH_STORAGE_KEY": "storage_key",
        "CHATBENCH_LOG_LEVEL": "log_level",
        "CHATBENCH_HOST": "host",
        "CHATBENCH_PORT": "port",
    }
    for env_name, field_name in env_map.items():
        value = os.getenv(env_name)
        if value:
            overrides[field_name] = value

    seed = os.getenv("CHATBENCH_SEED_DEFAULT_SESSION")
    if seed:
        overrides["seed_default_session"] = seed.lower() in ["true", "1", "yes"]

    return AppConfig(**overrides)
