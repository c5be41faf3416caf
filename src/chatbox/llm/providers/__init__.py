from .anthropic import AnthropicProvider
from .deepseek import DeepSeekProvider
from .openai import OpenAICompatibleProvider, OpenAIProvider
from .placeholder import PlaceholderProvider
from .siliconflow import SiliconFlowProvider

__all__ = [
    "AnthropicProvider",
    "DeepSeekProvider",
    "OpenAICompatibleProvider",
    "OpenAIProvider",
    "PlaceholderProvider",
    "SiliconFlowProvider",
]
