from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from ..errors import ConfigurationError
from .base import LLMProvider
from .catalog import ProviderKind, get_provider_info
from .providers import (
    AnthropicProvider,
    DeepSeekProvider,
    OpenAIProvider,
    PlaceholderProvider,
    SiliconFlowProvider,
)

if TYPE_CHECKING:
    from ..settings import ChatSettings

ProviderBuilder = Callable[..., LLMProvider]

PROVIDER_REGISTRY: dict[ProviderKind, ProviderBuilder] = {
    ProviderKind.OPENAI: OpenAIProvider,
    ProviderKind.SILICONFLOW: SiliconFlowProvider,
    ProviderKind.DEEPSEEK: DeepSeekProvider,
    ProviderKind.ANTHROPIC: AnthropicProvider,
    ProviderKind.GEMINI: lambda **config: PlaceholderProvider(ProviderKind.GEMINI, **config),
    ProviderKind.OLLAMA: lambda **config: PlaceholderProvider(ProviderKind.OLLAMA, **config),
}


def create_llm_provider(provider: ProviderKind | str, **config: Any) -> LLMProvider:
    """Create an LLM provider instance.

    This factory function hides the instantiation logic for different providers.

    Args:
        provider: Provider kind ('openai', 'siliconflow', 'deepseek', 'anthropic',
            'gemini', 'ollama')
        **config: Provider configuration
            - api_key: str (required unless the provider is local or a stub)
            - model: str (default: first model in the provider catalog)
            - base_url: str | None (default: catalog base URL)
            - transport: httpx.AsyncBaseTransport | None (HTTP providers only)

    Returns:
        Initialized LLM provider instance

    Raises:
        ValueError: If provider type is not supported
        ConfigurationError: If a required API key is missing or the base URL is invalid

    Examples:
        >>> provider = create_llm_provider(
        ...     "deepseek",
        ...     api_key="sk-...",
        ...     model="deepseek-chat"
        ... )

        >>> provider = create_llm_provider(
        ...     "anthropic",
        ...     api_key="sk-ant-...",
        ...     model="claude-3-5-sonnet-latest"
        ... )
    """
    info = get_provider_info(provider)

    if info.requires_api_key and info.streaming_implemented and not config.get("api_key"):
        raise ConfigurationError(f"{info.display_name} API key is not configured")

    return PROVIDER_REGISTRY[info.kind](**config)


def provider_from_settings(settings: "ChatSettings", **overrides: Any) -> LLMProvider:
    """Create the provider selected by a settings snapshot.

    Args:
        settings: Validated chat settings
        **overrides: Extra provider kwargs (e.g. transport)
    """
    config: dict[str, Any] = {
        "api_key": settings.api_key,
        "model": settings.model,
    }
    if settings.base_url:
        config["base_url"] = settings.base_url
    config.update(overrides)
    return create_llm_provider(settings.provider, **config)
