"""Chat configuration.

`ChatSettings` is the validated, immutable snapshot handed to the chat core
for each turn. `SettingsManager` owns the mutable "current settings" and
persists them under a fixed key of the key-value store.
"""

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import PersistenceError
from .llm.catalog import ProviderKind, get_provider_info
from .storage import KeyValueStore

logger = logging.getLogger(__name__)

SETTINGS_KEY = "ChatSettings"

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."

# Environment variables holding fallback API keys per provider
API_KEY_ENV_VARS: dict[ProviderKind, str] = {
    ProviderKind.OPENAI: "OPENAI_API_KEY",
    ProviderKind.SILICONFLOW: "SILICONFLOW_API_KEY",
    ProviderKind.DEEPSEEK: "DEEPSEEK_API_KEY",
    ProviderKind.ANTHROPIC: "ANTHROPIC_API_KEY",
    ProviderKind.GEMINI: "GEMINI_API_KEY",
}


class ChatSettings(BaseModel):
    """Provider selection and generation parameters for one turn."""

    model_config = ConfigDict(frozen=True)

    provider: ProviderKind = Field(default=ProviderKind.OPENAI, description="Provider adapter to use")
    model: str = Field(default="gpt-4o-mini", min_length=1, description="Model identifier")
    api_key: str = Field(default="", repr=False, description="Provider API key")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0, description="Sampling temperature")
    max_tokens: int = Field(default=2048, ge=1, description="Maximum output tokens")
    system_prompt: str = Field(default=DEFAULT_SYSTEM_PROMPT, description="System prompt; empty disables it")
    base_url: str | None = Field(default=None, description="Override for the provider base URL")

    @field_validator("model")
    @classmethod
    def validate_model(cls, v: str) -> str:
        """Reject blank model identifiers."""
        if not v.strip():
            raise ValueError("model must not be blank")
        return v.strip()

    @field_validator("base_url")
    @classmethod
    def normalize_base_url(cls, v: str | None) -> str | None:
        """Treat a blank override as no override."""
        if v is None or not v.strip():
            return None
        return v.strip()

    @property
    def provider_display_name(self) -> str:
        return get_provider_info(self.provider).display_name


class SettingsManager:
    """Loads, updates and persists the current ChatSettings.

    Usage:
        manager = SettingsManager(store)
        await manager.load()
        await manager.update_provider(ProviderKind.ANTHROPIC)
        settings = manager.settings  # immutable snapshot
    """

    def __init__(self, store: KeyValueStore):
        self._store = store
        self._settings = ChatSettings()

    @property
    def settings(self) -> ChatSettings:
        return self._settings

    async def load(self) -> ChatSettings:
        """Load persisted settings, falling back to defaults."""
        try:
            data = await self._store.get(SETTINGS_KEY)
        except PersistenceError as e:
            logger.warning("Could not read settings, using defaults: %s", e)
            return self._settings

        if data is None:
            return self._settings

        try:
            self._settings = ChatSettings.model_validate_json(data)
        except ValidationError as e:
            logger.warning("Stored settings are invalid, using defaults: %s", e.error_count())
        return self._settings

    async def save(self) -> None:
        """Persist the current settings; failures are logged, not raised."""
        try:
            await self._store.set(SETTINGS_KEY, self._settings.model_dump_json().encode("utf-8"))
        except PersistenceError as e:
            logger.error("Could not save settings: %s", e)

    async def update(self, **changes: Any) -> ChatSettings:
        """Apply field changes, validate and persist.

        Raises:
            ValidationError: If the resulting settings are invalid
        """
        self._settings = ChatSettings.model_validate({**self._settings.model_dump(), **changes})
        await self.save()
        return self._settings

    async def update_provider(self, provider: ProviderKind | str) -> ChatSettings:
        """Switch provider and select its first catalog model."""
        info = get_provider_info(provider)
        return await self.update(provider=info.kind, model=info.default_model, base_url=None)
