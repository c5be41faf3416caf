"""Anthropic Messages API provider implementation.

Speaks the streaming Messages API over httpx.
Reference: https://docs.anthropic.com/en/api/messages-streaming
"""

from typing import Any

import httpx
from pydantic import ValidationError

from ...errors import ProtocolError, TransportError
from ..base import HTTPProvider
from ..catalog import ProviderKind, get_provider_info
from ..models import ChatMessage, StreamDelta
from ..schemas import AnthropicMessage, AnthropicMessagesRequest, AnthropicStreamEvent

ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 4096


class AnthropicProvider(HTTPProvider):
    """Anthropic Claude provider implementation.

    Hidden design decisions:
    - `x-api-key` + `anthropic-version` headers instead of a bearer token
    - System message moved to the top-level `system` field
    - max_tokens is mandatory for this API
    - Fragment extracted from content_block_delta events at delta.text
    - Stream ends on message_stop
    """

    chat_path = "messages"

    def __init__(
        self,
        api_key: str,
        model: str | None = None,
        base_url: str | None = None,
        **client_kwargs: Any
    ):
        """Initialize Anthropic provider.

        Args:
            api_key: Anthropic API key
            model: Default model to use (catalog default when omitted)
            base_url: Optional custom API base URL
            **client_kwargs: Passed through to HTTPProvider
        """
        info = get_provider_info(ProviderKind.ANTHROPIC)
        super().__init__(
            api_key=api_key,
            model=model or info.default_model,
            base_url=base_url or info.base_url,
            **client_kwargs
        )
        self._input_tokens = 0

    def build_request(
        self,
        messages: list[ChatMessage],
        model: str,
        temperature: float,
        max_tokens: int | None,
    ) -> httpx.Request:
        self._input_tokens = 0

        # Extract system message and convert to Anthropic format
        system_parts = []
        anthropic_messages = []

        for msg in messages:
            if msg.role == "system":
                system_parts.append(msg.content)
            else:
                anthropic_messages.append(AnthropicMessage(role=msg.role, content=msg.content))

        body = AnthropicMessagesRequest(
            model=model,
            messages=anthropic_messages,
            max_tokens=max_tokens or DEFAULT_MAX_TOKENS,
            temperature=temperature,
            system="\n\n".join(system_parts) or None,
            stream=True,
        )
        headers = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
            "x-api-key": self._api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }

        return self._client.build_request(
            "POST",
            self.endpoint,
            headers=headers,
            content=body.model_dump_json(exclude_none=True),
        )

    def parse_event(self, payload: dict[str, Any]) -> StreamDelta:
        try:
            event = AnthropicStreamEvent.model_validate(payload)
        except ValidationError as e:
            raise ProtocolError(f"Unexpected stream event from provider: {e.error_count()} invalid field(s)") from e

        if event.type == "error":
            message = event.error.message if event.error else "Unknown error"
            raise TransportError(message, provider_message=message)

        # message_start contains input_tokens
        if event.type == "message_start":
            if event.message and event.message.usage and event.message.usage.input_tokens is not None:
                self._input_tokens = event.message.usage.input_tokens
            return StreamDelta()

        # message_delta contains output_tokens (cumulative)
        if event.type == "message_delta" and event.usage and event.usage.output_tokens is not None:
            output_tokens = event.usage.output_tokens
            return StreamDelta(usage={
                "prompt_tokens": self._input_tokens,
                "completion_tokens": output_tokens,
                "total_tokens": self._input_tokens + output_tokens,
            })

        if event.type == "message_stop":
            return StreamDelta(done=True)

        return StreamDelta(text=event.text)
