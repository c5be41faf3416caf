from collections.abc import AsyncIterator

from ..base import LLMProvider
from ..catalog import ProviderKind, get_provider_info
from ..models import ChatMessage, StreamingResponse


class PlaceholderProvider(LLMProvider):
    """Stand-in for providers whose streaming protocol is not implemented.

    Yields one fixed fragment naming the provider and terminates. No network
    request is made and no API key is needed.
    """

    def __init__(self, kind: ProviderKind | str, model: str | None = None, **_: object):
        self._info = get_provider_info(kind)
        self._model = model or self._info.default_model

    @property
    def model(self) -> str:
        return self._model

    @property
    def placeholder_text(self) -> str:
        return f"{self._info.display_name} streaming is not implemented yet."

    async def chat_completion_stream(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> StreamingResponse:
        return StreamingResponse(self._stream_generator())

    async def _stream_generator(self) -> AsyncIterator[str]:
        yield self.placeholder_text

    async def close(self) -> None:
        """Nothing to release."""
