from typing import Any

import httpx
from pydantic import ValidationError

from ...errors import ProtocolError, TransportError
from ..base import HTTPProvider
from ..catalog import ProviderKind, get_provider_info
from ..models import ChatMessage, StreamDelta
from ..schemas import OpenAIChatRequest, OpenAIMessage, OpenAIStreamChunk, OpenAIStreamOptions


class OpenAICompatibleProvider(HTTPProvider):
    """Provider for any endpoint that speaks the OpenAI chat completions protocol.

    Hidden design decisions:
    - Bearer token authentication
    - System prompt sent as the leading `system` message
    - Fragment extracted from choices[0].delta.content
    - Stream terminated by the `[DONE]` sentinel

    Third-party vendors (DeepSeek, Silicon Flow) subclass this with a different
    default base URL and model.
    """

    chat_path = "chat/completions"
    provider_kind = ProviderKind.OPENAI
    # Ask for a final usage chunk via stream_options
    include_usage = True

    def __init__(
        self,
        api_key: str,
        model: str | None = None,
        base_url: str | None = None,
        **client_kwargs: Any
    ):
        """Initialize an OpenAI-compatible provider.

        Args:
            api_key: API key sent as a bearer token
            model: Default model (catalog default when omitted)
            base_url: Custom API base URL (catalog default when omitted)
            **client_kwargs: Passed through to HTTPProvider
        """
        info = get_provider_info(self.provider_kind)
        super().__init__(
            api_key=api_key,
            model=model or info.default_model,
            base_url=base_url or info.base_url,
            **client_kwargs
        )

    def build_request(
        self,
        messages: list[ChatMessage],
        model: str,
        temperature: float,
        max_tokens: int | None,
    ) -> httpx.Request:
        body = OpenAIChatRequest(
            model=model,
            messages=[OpenAIMessage(role=msg.role, content=msg.content) for msg in messages],
            temperature=temperature,
            max_tokens=max_tokens,
            stream=True,
            stream_options=OpenAIStreamOptions() if self.include_usage else None,
        )
        headers = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        return self._client.build_request(
            "POST",
            self.endpoint,
            headers=headers,
            content=body.model_dump_json(exclude_none=True),
        )

    def parse_event(self, payload: dict[str, Any]) -> StreamDelta:
        try:
            chunk = OpenAIStreamChunk.model_validate(payload)
        except ValidationError as e:
            raise ProtocolError(f"Unexpected stream chunk from provider: {e.error_count()} invalid field(s)") from e

        if chunk.error is not None:
            raise TransportError(chunk.error.message, provider_message=chunk.error.message)

        usage = None
        if chunk.usage is not None:
            usage = {
                "prompt_tokens": chunk.usage.prompt_tokens,
                "completion_tokens": chunk.usage.completion_tokens,
                "total_tokens": chunk.usage.total_tokens,
            }
        return StreamDelta(text=chunk.text, usage=usage)


class OpenAIProvider(OpenAICompatibleProvider):
    """OpenAI (api.openai.com) provider."""

    provider_kind = ProviderKind.OPENAI
