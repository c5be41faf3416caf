"""Unit tests for the HTTP provider adapters.

All network traffic goes through httpx.MockTransport; no real endpoints
are contacted.
"""
import json

import httpx
import pytest

from chatbox.errors import ConfigurationError, ProtocolError, TransportError
from chatbox.llm import (
    AnthropicProvider,
    ChatMessage,
    DeepSeekProvider,
    OpenAIProvider,
    PlaceholderProvider,
    ProviderKind,
    SiliconFlowProvider,
)
from chatbox.llm.providers.anthropic import ANTHROPIC_VERSION, DEFAULT_MAX_TOKENS

MESSAGES = [
    ChatMessage(role="system", content="You are a helpful assistant."),
    ChatMessage(role="user", content="Hello"),
]


def sse_body(*payloads, event_names: list[str] | None = None) -> bytes:
    """Frame payloads as a server-sent-event body."""
    blocks = []
    for i, payload in enumerate(payloads):
        data = payload if isinstance(payload, str) else json.dumps(payload)
        prefix = f"event: {event_names[i]}\n" if event_names else ""
        blocks.append(f"{prefix}data: {data}\n\n")
    return "".join(blocks).encode()


def openai_chunk(content: str | None = None, role: str | None = None) -> dict:
    delta = {}
    if role is not None:
        delta["role"] = role
    if content is not None:
        delta["content"] = content
    return {"id": "chatcmpl-1", "model": "gpt-4o-mini", "choices": [{"index": 0, "delta": delta}]}


class RecordingTransport:
    """Builds a MockTransport that answers with a fixed response and records requests."""

    def __init__(self, status_code: int = 200, body: bytes = b"", error: Exception | None = None):
        self.status_code = status_code
        self.body = body
        self.error = error
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(
            self.status_code,
            content=self.body,
            headers={"content-type": "text/event-stream"},
        )

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def last_body(self) -> dict:
        return json.loads(self.requests[-1].content)


async def collect(provider, messages=MESSAGES, **kwargs):
    stream = await provider.chat_completion_stream(messages, **kwargs)
    fragments = [fragment async for fragment in stream]
    return fragments, stream


class TestOpenAIProvider:
    """Tests for the OpenAI-compatible adapter."""

    @pytest.mark.asyncio
    async def test_request_shape(self):
        """Test endpoint, headers and body of the streaming request."""
        recording = RecordingTransport(body=sse_body(openai_chunk("Hi"), "[DONE]"))

        async with OpenAIProvider(api_key="sk-test", transport=recording.transport) as provider:
            await collect(provider, temperature=0.2, max_tokens=64)

        request = recording.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "https://api.openai.com/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-test"
        assert request.headers["Accept"] == "text/event-stream"

        body = recording.last_body
        assert body["model"] == "gpt-4o"
        assert body["stream"] is True
        assert body["temperature"] == 0.2
        assert body["max_tokens"] == 64
        assert body["stream_options"] == {"include_usage": True}
        assert body["messages"] == [
            {"role": "system", "content": "You are a helpful assistant."},
            {"role": "user", "content": "Hello"},
        ]

    @pytest.mark.asyncio
    async def test_model_override(self):
        """Test that a per-call model replaces the default."""
        recording = RecordingTransport(body=sse_body("[DONE]"))

        async with OpenAIProvider(api_key="sk-test", model="gpt-4o", transport=recording.transport) as provider:
            await collect(provider, model="gpt-4o-mini")

        assert recording.last_body["model"] == "gpt-4o-mini"
        assert "max_tokens" not in recording.last_body

    @pytest.mark.asyncio
    async def test_fragments_in_order_until_done(self):
        """Test that fragments arrive in order and [DONE] ends the stream."""
        recording = RecordingTransport(body=sse_body(
            openai_chunk(role="assistant"),
            openai_chunk("Hel"),
            openai_chunk("lo, "),
            openai_chunk("world!"),
            "[DONE]",
            openai_chunk("ignored"),
        ))

        async with OpenAIProvider(api_key="sk-test", transport=recording.transport) as provider:
            fragments, _ = await collect(provider)

        assert fragments == ["Hel", "lo, ", "world!"]
        assert "".join(fragments) == "Hello, world!"

    @pytest.mark.asyncio
    async def test_malformed_lines_are_skipped(self):
        """Test that a broken line does not abort the stream."""
        recording = RecordingTransport(body=sse_body(
            openai_chunk("A"),
            "{not valid json",
            openai_chunk("B"),
            "[DONE]",
        ))

        async with OpenAIProvider(api_key="sk-test", transport=recording.transport) as provider:
            fragments, _ = await collect(provider)

        assert fragments == ["A", "B"]

    @pytest.mark.asyncio
    async def test_usage_chunk_is_captured(self):
        """Test that the final usage chunk is exposed after iteration."""
        usage_chunk = {
            "id": "chatcmpl-1",
            "choices": [],
            "usage": {"prompt_tokens": 12, "completion_tokens": 3, "total_tokens": 15},
        }
        recording = RecordingTransport(body=sse_body(openai_chunk("ok"), usage_chunk, "[DONE]"))

        async with OpenAIProvider(api_key="sk-test", transport=recording.transport) as provider:
            fragments, stream = await collect(provider)

        assert fragments == ["ok"]
        assert stream.usage == {"prompt_tokens": 12, "completion_tokens": 3, "total_tokens": 15}

    @pytest.mark.asyncio
    async def test_chat_completion_drains_stream(self):
        """Test the non-incremental convenience call."""
        recording = RecordingTransport(body=sse_body(openai_chunk("Hi "), openai_chunk("there"), "[DONE]"))

        async with OpenAIProvider(api_key="sk-test", transport=recording.transport) as provider:
            response = await provider.chat_completion(MESSAGES)

        assert response.content == "Hi there"
        assert response.model == "gpt-4o"

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        """Test that a non-2xx status raises before any fragment."""
        body = json.dumps({"error": {"message": "Incorrect API key provided", "type": "invalid_request_error"}})
        recording = RecordingTransport(status_code=401, body=body.encode())

        async with OpenAIProvider(api_key="sk-bad", transport=recording.transport) as provider:
            with pytest.raises(TransportError) as exc_info:
                await provider.chat_completion_stream(MESSAGES)

        error = exc_info.value
        assert error.status_code == 401
        assert error.provider_message == "Incorrect API key provided"
        assert "HTTP 401" in str(error)
        assert "Incorrect API key provided" in str(error)

    @pytest.mark.asyncio
    async def test_http_error_without_body(self):
        """Test a non-2xx status whose body is not JSON."""
        recording = RecordingTransport(status_code=502, body=b"<html>Bad Gateway</html>")

        async with OpenAIProvider(api_key="sk-test", transport=recording.transport) as provider:
            with pytest.raises(TransportError) as exc_info:
                await provider.chat_completion_stream(MESSAGES)

        assert exc_info.value.status_code == 502
        assert exc_info.value.provider_message is None
        assert str(exc_info.value).startswith("HTTP 502")

    @pytest.mark.asyncio
    async def test_network_error(self):
        """Test that connection failures become TransportError without a status."""
        recording = RecordingTransport(error=httpx.ConnectError("connection refused"))

        async with OpenAIProvider(api_key="sk-test", transport=recording.transport) as provider:
            with pytest.raises(TransportError) as exc_info:
                await provider.chat_completion_stream(MESSAGES)

        assert exc_info.value.status_code is None
        assert "connection refused" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_empty_success_stream_is_protocol_error(self):
        """Test that a 2xx response with no events is rejected."""
        recording = RecordingTransport(body=b"")

        async with OpenAIProvider(api_key="sk-test", transport=recording.transport) as provider:
            stream = await provider.chat_completion_stream(MESSAGES)
            with pytest.raises(ProtocolError):
                async for _ in stream:
                    pass

    @pytest.mark.asyncio
    async def test_schema_violation_is_protocol_error(self):
        """Test that a well-formed JSON event of the wrong shape is rejected."""
        recording = RecordingTransport(body=sse_body({"choices": "not-a-list"}, "[DONE]"))

        async with OpenAIProvider(api_key="sk-test", transport=recording.transport) as provider:
            stream = await provider.chat_completion_stream(MESSAGES)
            with pytest.raises(ProtocolError):
                async for _ in stream:
                    pass

    @pytest.mark.asyncio
    async def test_in_stream_error_payload(self):
        """Test that an error object inside a 200 stream fails the stream."""
        recording = RecordingTransport(body=sse_body(
            openai_chunk("Hel"),
            {"error": {"message": "rate limited", "type": "rate_limit_error"}},
            "[DONE]",
        ))

        async with OpenAIProvider(api_key="sk-test", transport=recording.transport) as provider:
            stream = await provider.chat_completion_stream(MESSAGES)
            received = []
            with pytest.raises(TransportError) as exc_info:
                async for fragment in stream:
                    received.append(fragment)

        assert received == ["Hel"]
        assert exc_info.value.status_code is None
        assert exc_info.value.provider_message == "rate limited"

    @pytest.mark.asyncio
    async def test_truncated_stream_is_protocol_error(self):
        """Test that a stream closed before [DONE] is not treated as complete."""
        recording = RecordingTransport(body=sse_body(openai_chunk("Hel"), openai_chunk("lo")))

        async with OpenAIProvider(api_key="sk-test", transport=recording.transport) as provider:
            stream = await provider.chat_completion_stream(MESSAGES)
            received = []
            with pytest.raises(ProtocolError, match="before the provider signalled completion"):
                async for fragment in stream:
                    received.append(fragment)

        assert received == ["Hel", "lo"]

    @pytest.mark.asyncio
    async def test_custom_base_url(self):
        """Test that a base URL override is used and its trailing slash dropped."""
        recording = RecordingTransport(body=sse_body("[DONE]"))

        async with OpenAIProvider(
            api_key="sk-test",
            base_url="http://localhost:8080/v1/",
            transport=recording.transport,
        ) as provider:
            assert provider.endpoint == "http://localhost:8080/v1/chat/completions"
            await collect(provider)

        assert str(recording.requests[0].url) == "http://localhost:8080/v1/chat/completions"

    @pytest.mark.parametrize("base_url", ["ftp://example.com", "not a url", "   "])
    def test_invalid_base_url(self, base_url: str):
        """Test that unusable base URLs are rejected at construction."""
        with pytest.raises(ConfigurationError):
            OpenAIProvider(api_key="sk-test", base_url=base_url)


class TestOpenAICompatibleVendors:
    """Tests for DeepSeek and Silicon Flow."""

    @pytest.mark.asyncio
    async def test_deepseek_endpoint(self):
        """Test DeepSeek's base URL and default model."""
        recording = RecordingTransport(body=sse_body(openai_chunk("ok"), "[DONE]"))

        async with DeepSeekProvider(api_key="sk-ds", transport=recording.transport) as provider:
            fragments, _ = await collect(provider)

        assert fragments == ["ok"]
        assert str(recording.requests[0].url) == "https://api.deepseek.com/chat/completions"
        assert recording.last_body["model"] == "deepseek-chat"

    @pytest.mark.asyncio
    async def test_siliconflow_request(self):
        """Test Silicon Flow's endpoint and that no usage chunk is requested."""
        recording = RecordingTransport(body=sse_body(openai_chunk("ok"), "[DONE]"))

        async with SiliconFlowProvider(api_key="sk-sf", transport=recording.transport) as provider:
            await collect(provider)

        assert str(recording.requests[0].url) == "https://api.siliconflow.cn/v1/chat/completions"
        assert recording.last_body["model"] == "deepseek-ai/DeepSeek-R1"
        assert "stream_options" not in recording.last_body

    @pytest.mark.asyncio
    async def test_siliconflow_error_message(self):
        """Test that Silicon Flow's top-level message is surfaced."""
        body = json.dumps({"code": 20012, "message": "Model does not exist.", "data": None})
        recording = RecordingTransport(status_code=400, body=body.encode())

        async with SiliconFlowProvider(api_key="sk-sf", transport=recording.transport) as provider:
            with pytest.raises(TransportError) as exc_info:
                await provider.chat_completion_stream(MESSAGES)

        assert exc_info.value.status_code == 400
        assert exc_info.value.provider_message == "Model does not exist."


class TestAnthropicProvider:
    """Tests for the Anthropic Messages adapter."""

    EVENTS = [
        ("message_start", {"type": "message_start", "message": {
            "id": "msg_1", "model": "claude-3-5-sonnet-latest",
            "usage": {"input_tokens": 10, "output_tokens": 1},
        }}),
        ("content_block_start", {"type": "content_block_start", "index": 0,
                                 "content_block": {"type": "text", "text": ""}}),
        ("ping", {"type": "ping"}),
        ("content_block_delta", {"type": "content_block_delta", "index": 0,
                                 "delta": {"type": "text_delta", "text": "Hi"}}),
        ("content_block_delta", {"type": "content_block_delta", "index": 0,
                                 "delta": {"type": "text_delta", "text": " there"}}),
        ("content_block_stop", {"type": "content_block_stop", "index": 0}),
        ("message_delta", {"type": "message_delta", "delta": {"stop_reason": "end_turn"},
                           "usage": {"output_tokens": 5}}),
        ("message_stop", {"type": "message_stop"}),
    ]

    def _body(self, events=None) -> bytes:
        events = events or self.EVENTS
        return sse_body(*[payload for _, payload in events], event_names=[name for name, _ in events])

    @pytest.mark.asyncio
    async def test_request_shape(self):
        """Test headers and that the system prompt moves to the top level."""
        recording = RecordingTransport(body=self._body())

        async with AnthropicProvider(api_key="sk-ant", transport=recording.transport) as provider:
            await collect(provider, temperature=0.5, max_tokens=256)

        request = recording.requests[0]
        assert str(request.url) == "https://api.anthropic.com/v1/messages"
        assert request.headers["x-api-key"] == "sk-ant"
        assert request.headers["anthropic-version"] == ANTHROPIC_VERSION
        assert "Authorization" not in request.headers

        body = recording.last_body
        assert body["model"] == "claude-3-5-sonnet-latest"
        assert body["system"] == "You are a helpful assistant."
        assert body["messages"] == [{"role": "user", "content": "Hello"}]
        assert body["max_tokens"] == 256
        assert body["temperature"] == 0.5
        assert body["stream"] is True

    @pytest.mark.asyncio
    async def test_defaults_without_system_prompt(self):
        """Test the mandatory max_tokens default and the absent system field."""
        recording = RecordingTransport(body=self._body())

        async with AnthropicProvider(api_key="sk-ant", transport=recording.transport) as provider:
            await collect(provider, messages=[ChatMessage(role="user", content="Hi")])

        body = recording.last_body
        assert body["max_tokens"] == DEFAULT_MAX_TOKENS
        assert "system" not in body

    @pytest.mark.asyncio
    async def test_fragments_and_usage(self):
        """Test text extraction from content_block_delta events and usage capture."""
        recording = RecordingTransport(body=self._body())

        async with AnthropicProvider(api_key="sk-ant", transport=recording.transport) as provider:
            fragments, stream = await collect(provider)

        assert fragments == ["Hi", " there"]
        assert stream.usage == {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15}

    @pytest.mark.asyncio
    async def test_error_event(self):
        """Test that an in-stream error event fails the stream."""
        events = self.EVENTS[:4] + [
            ("error", {"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}}),
        ]
        recording = RecordingTransport(body=self._body(events))

        async with AnthropicProvider(api_key="sk-ant", transport=recording.transport) as provider:
            stream = await provider.chat_completion_stream(MESSAGES)
            received = []
            with pytest.raises(TransportError, match="Overloaded"):
                async for fragment in stream:
                    received.append(fragment)

        assert received == ["Hi"]

    @pytest.mark.asyncio
    async def test_truncated_stream_is_protocol_error(self):
        """Test that a stream closed before message_stop is not treated as complete."""
        recording = RecordingTransport(body=self._body(self.EVENTS[:5]))

        async with AnthropicProvider(api_key="sk-ant", transport=recording.transport) as provider:
            stream = await provider.chat_completion_stream(MESSAGES)
            received = []
            with pytest.raises(ProtocolError, match="before the provider signalled completion"):
                async for fragment in stream:
                    received.append(fragment)

        assert received == ["Hi", " there"]

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        """Test Anthropic's error body on a non-2xx status."""
        body = json.dumps({"type": "error", "error": {"type": "authentication_error", "message": "invalid x-api-key"}})
        recording = RecordingTransport(status_code=401, body=body.encode())

        async with AnthropicProvider(api_key="bad", transport=recording.transport) as provider:
            with pytest.raises(TransportError) as exc_info:
                await provider.chat_completion_stream(MESSAGES)

        assert exc_info.value.status_code == 401
        assert exc_info.value.provider_message == "invalid x-api-key"


class TestPlaceholderProvider:
    """Tests for providers whose streaming is not implemented."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kind,text", [
        (ProviderKind.GEMINI, "Google Gemini streaming is not implemented yet."),
        (ProviderKind.OLLAMA, "Ollama streaming is not implemented yet."),
    ])
    async def test_yields_single_notice(self, kind: ProviderKind, text: str):
        """Test that the stub yields one fixed fragment and ends."""
        async with PlaceholderProvider(kind) as provider:
            fragments, _ = await collect(provider)

        assert fragments == [text]
