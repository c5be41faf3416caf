"""Typed wire schemas for each provider protocol.

Request bodies are built from these models instead of loose dictionaries,
and every streamed payload is validated against the matching event model
before a fragment is extracted from it.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["system", "user", "assistant"]


class _WireModel(BaseModel):
    # Providers add fields over time; unknown keys are ignored.
    model_config = ConfigDict(extra="ignore")


# OpenAI-compatible (OpenAI, DeepSeek, Silicon Flow)

class OpenAIMessage(_WireModel):
    role: Role
    content: str


class OpenAIStreamOptions(_WireModel):
    include_usage: bool = True


class OpenAIChatRequest(_WireModel):
    """Body of POST {base_url}/chat/completions."""

    model: str
    messages: list[OpenAIMessage]
    temperature: float
    max_tokens: int | None = None
    stream: bool = True
    stream_options: OpenAIStreamOptions | None = None


class OpenAIDelta(_WireModel):
    role: str | None = None
    content: str | None = None


class OpenAIStreamChoice(_WireModel):
    index: int = 0
    delta: OpenAIDelta = Field(default_factory=OpenAIDelta)
    finish_reason: str | None = None


class OpenAIUsage(_WireModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class OpenAIErrorInfo(_WireModel):
    type: str | None = None
    message: str = "Unknown error"


class OpenAIStreamChunk(_WireModel):
    """One `data:` payload of an OpenAI-style stream."""

    id: str | None = None
    model: str | None = None
    choices: list[OpenAIStreamChoice] = Field(default_factory=list)
    usage: OpenAIUsage | None = None
    # Some vendors report failures inside a 200 stream instead of a status code
    error: OpenAIErrorInfo | None = None

    @property
    def text(self) -> str | None:
        """The fragment carried at choices[0].delta.content, if any."""
        if not self.choices:
            return None
        return self.choices[0].delta.content


# Anthropic Messages API

class AnthropicMessage(_WireModel):
    role: Literal["user", "assistant"]
    content: str


class AnthropicMessagesRequest(_WireModel):
    """Body of POST {base_url}/messages.

    The system prompt is a top-level field, not a message.
    """

    model: str
    messages: list[AnthropicMessage]
    max_tokens: int
    temperature: float
    system: str | None = None
    stream: bool = True


class AnthropicDelta(_WireModel):
    type: str | None = None
    text: str | None = None
    stop_reason: str | None = None


class AnthropicUsage(_WireModel):
    input_tokens: int | None = None
    output_tokens: int | None = None


class AnthropicMessageInfo(_WireModel):
    id: str | None = None
    model: str | None = None
    usage: AnthropicUsage | None = None


class AnthropicErrorInfo(_WireModel):
    type: str | None = None
    message: str = "Unknown error"


class AnthropicStreamEvent(_WireModel):
    """One `data:` payload of an Anthropic stream.

    Relevant event types: message_start (input usage), content_block_delta
    (text fragment at delta.text), message_delta (output usage),
    message_stop (end of stream) and error.
    """

    type: str
    index: int | None = None
    delta: AnthropicDelta | None = None
    message: AnthropicMessageInfo | None = None
    usage: AnthropicUsage | None = None
    error: AnthropicErrorInfo | None = None

    @property
    def text(self) -> str | None:
        if self.type != "content_block_delta" or self.delta is None:
            return None
        return self.delta.text
