from ..catalog import ProviderKind
from .openai import OpenAICompatibleProvider


class DeepSeekProvider(OpenAICompatibleProvider):
    """DeepSeek LLM provider using the OpenAI-compatible API.

    Same wire protocol as OpenAI; only the base URL
    (https://api.deepseek.com) and model catalog differ.
    """

    provider_kind = ProviderKind.DEEPSEEK
