from .base import HTTPProvider, LLMProvider
from .catalog import PROVIDER_CATALOG, ProviderInfo, ProviderKind, get_provider_info
from .factory import PROVIDER_REGISTRY, create_llm_provider, provider_from_settings
from .models import ChatMessage, LLMResponse, StreamDelta, StreamingResponse
from .providers import (
    AnthropicProvider,
    DeepSeekProvider,
    OpenAICompatibleProvider,
    OpenAIProvider,
    PlaceholderProvider,
    SiliconFlowProvider,
)

__all__ = [
    "HTTPProvider",
    "LLMProvider",
    "PROVIDER_CATALOG",
    "PROVIDER_REGISTRY",
    "ProviderInfo",
    "ProviderKind",
    "get_provider_info",
    "create_llm_provider",
    "provider_from_settings",
    "ChatMessage",
    "LLMResponse",
    "StreamDelta",
    "StreamingResponse",
    "AnthropicProvider",
    "DeepSeekProvider",
    "OpenAICompatibleProvider",
    "OpenAIProvider",
    "PlaceholderProvider",
    "SiliconFlowProvider",
]
