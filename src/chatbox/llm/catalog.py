"""Provider catalog.

Hides which vendors exist, where they live and which models they offer.
Adding a provider means adding a `ProviderKind` member, a `PROVIDER_CATALOG`
entry and an adapter registered in `chatbox.llm.factory`.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ProviderKind(str, Enum):
    """Tag selecting the provider adapter."""

    OPENAI = "openai"
    SILICONFLOW = "siliconflow"
    DEEPSEEK = "deepseek"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    OLLAMA = "ollama"


class ProviderInfo(BaseModel):
    """Static metadata about one provider."""

    model_config = ConfigDict(frozen=True)

    kind: ProviderKind
    display_name: str
    base_url: str
    models: tuple[str, ...] = Field(min_length=1)
    requires_api_key: bool = True
    streaming_implemented: bool = True

    @property
    def default_model(self) -> str:
        return self.models[0]


PROVIDER_CATALOG: dict[ProviderKind, ProviderInfo] = {
    ProviderKind.OPENAI: ProviderInfo(
        kind=ProviderKind.OPENAI,
        display_name="OpenAI",
        base_url="https://api.openai.com/v1",
        models=("gpt-4o", "gpt-4o-mini", "gpt-3.5-turbo", "gpt-4-turbo"),
    ),
    ProviderKind.SILICONFLOW: ProviderInfo(
        kind=ProviderKind.SILICONFLOW,
        display_name="Silicon Flow",
        base_url="https://api.siliconflow.cn/v1",
        models=("deepseek-ai/DeepSeek-R1", "deepseek-ai/DeepSeek-V3"),
    ),
    ProviderKind.DEEPSEEK: ProviderInfo(
        kind=ProviderKind.DEEPSEEK,
        display_name="DeepSeek",
        base_url="https://api.deepseek.com",
        models=("deepseek-chat", "deepseek-reasoner"),
    ),
    ProviderKind.ANTHROPIC: ProviderInfo(
        kind=ProviderKind.ANTHROPIC,
        display_name="Anthropic",
        base_url="https://api.anthropic.com/v1",
        models=(
            "claude-3-5-sonnet-latest",
            "claude-3-opus-latest",
            "claude-3-haiku-20240307",
        ),
    ),
    ProviderKind.GEMINI: ProviderInfo(
        kind=ProviderKind.GEMINI,
        display_name="Google Gemini",
        base_url="https://generativelanguage.googleapis.com/v1",
        models=("gemini-pro", "gemini-pro-vision"),
        streaming_implemented=False,
    ),
    ProviderKind.OLLAMA: ProviderInfo(
        kind=ProviderKind.OLLAMA,
        display_name="Ollama",
        base_url="http://localhost:11434/v1",
        models=("llama2", "codellama", "mistral", "vicuna"),
        requires_api_key=False,
        streaming_implemented=False,
    ),
}


def get_provider_info(kind: ProviderKind | str) -> ProviderInfo:
    """Look up catalog metadata for a provider.

    Raises:
        ValueError: If the provider is unknown
    """
    try:
        return PROVIDER_CATALOG[ProviderKind(kind)]
    except ValueError:
        supported = ", ".join(f"'{k.value}'" for k in ProviderKind)
        raise ValueError(
            f"Unsupported provider: {kind}. Supported providers: {supported}"
        ) from None
