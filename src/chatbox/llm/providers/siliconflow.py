from ..catalog import ProviderKind
from .openai import OpenAICompatibleProvider


class SiliconFlowProvider(OpenAICompatibleProvider):
    """Silicon Flow provider (OpenAI-compatible, https://api.siliconflow.cn/v1).

    Silicon Flow reports errors as a top-level `message` field, which the
    shared error-body parser already understands. It does not accept
    `stream_options`, so no usage chunk is requested.
    """

    provider_kind = ProviderKind.SILICONFLOW
    include_usage = False
