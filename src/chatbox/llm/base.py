import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable
from typing import Any

import httpx

from ..errors import ConfigurationError, ProtocolError, TransportError
from .models import ChatMessage, LLMResponse, StreamDelta, StreamingResponse
from .sse import SSEJsonStream, extract_error_message

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = httpx.Timeout(60.0, connect=10.0)


class LLMProvider(ABC):
    """Abstract base class for LLM providers.

    This module hides the design decision of which LLM provider to use.
    Implementations must handle provider-specific details like:
    - Endpoint and authentication headers
    - Request body format (where the system prompt goes)
    - Extraction of text fragments from the streamed events
    - Mapping of HTTP failures onto the chatbox error taxonomy

    Supports async context manager protocol for proper resource cleanup:
        async with provider:
            stream = await provider.chat_completion_stream(messages)
            async for fragment in stream:
                ...
        # Automatically cleaned up
    """

    @property
    @abstractmethod
    def model(self) -> str:
        """Get the default model name."""

    @abstractmethod
    async def chat_completion_stream(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> StreamingResponse:
        """Generate a streaming chat completion.

        Failures that happen before the first fragment (bad configuration,
        network errors, non-2xx status) are raised from this call, not from
        iteration.

        Args:
            messages: Conversation history, optionally led by a system message
            model: Model to use (None uses provider's default)
            temperature: Sampling temperature (0.0 to 2.0)
            max_tokens: Maximum tokens to generate

        Returns:
            StreamingResponse that yields text fragments and captures usage info.
            After iteration, access usage via stream_response.usage

        Raises:
            ConfigurationError: If the request cannot be built
            TransportError: On network failure or non-2xx status
        """

    async def chat_completion(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate a complete reply by draining the fragment stream."""
        stream = await self.chat_completion_stream(
            messages, model=model, temperature=temperature, max_tokens=max_tokens
        )
        fragments = [fragment async for fragment in stream]
        return LLMResponse(
            content="".join(fragments),
            model=model or self.model,
            usage=stream.usage,
        )

    @abstractmethod
    async def close(self) -> None:
        """Close any open connections or resources."""

    async def __aenter__(self) -> "LLMProvider":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit with automatic cleanup.

        Note: Suppresses "Event loop is closed" errors during cleanup.
        This is a known harmless race condition in httpx/anyio cleanup:
        https://github.com/encode/httpx/issues/914
        """
        try:
            await self.close()
        except RuntimeError as e:
            if "Event loop is closed" not in str(e):
                raise


def validate_base_url(base_url: str) -> str:
    """Check that a base URL is absolute http(s) and strip the trailing slash.

    Raises:
        ConfigurationError: If the URL is empty or not http(s)
    """
    if not base_url or not base_url.strip():
        raise ConfigurationError("Provider base URL is not configured")

    try:
        url = httpx.URL(base_url.strip())
    except (httpx.InvalidURL, TypeError) as e:
        raise ConfigurationError(f"Invalid provider base URL: {base_url!r}") from e

    if url.scheme not in ("http", "https") or not url.host:
        raise ConfigurationError(f"Invalid provider base URL: {base_url!r}")
    return str(url).rstrip("/")


class HTTPProvider(LLMProvider):
    """Shared HTTP + SSE machinery for providers that speak JSON over POST.

    Hidden design decisions:
    - One httpx.AsyncClient per provider instance
    - Status is checked before the stream is handed to the caller
    - httpx failures are re-raised as TransportError
    - A 2xx stream with no usable event is a ProtocolError

    Subclasses supply `chat_path`, `build_request()` and `parse_event()`.
    """

    chat_path: str = ""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str,
        timeout: httpx.Timeout | float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
        **client_kwargs: Any
    ):
        """Initialize the HTTP provider.

        Args:
            api_key: Provider API key (may be empty for local providers)
            model: Default model to use
            base_url: Provider base URL, e.g. https://api.openai.com/v1
            timeout: httpx timeout for the request
            transport: Optional httpx transport (tests use httpx.MockTransport)
            **client_kwargs: Additional kwargs for httpx.AsyncClient

        Raises:
            ConfigurationError: If base_url is not a valid http(s) URL
        """
        self._api_key = api_key
        self._model = model
        self._base_url = validate_base_url(base_url)
        self._client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            **client_kwargs
        )

    @property
    def model(self) -> str:
        """Get the default model name."""
        return self._model

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def endpoint(self) -> str:
        """Full URL of the chat endpoint: {base_url}/{chat_path}."""
        return f"{self._base_url}/{self.chat_path}"

    @abstractmethod
    def build_request(
        self,
        messages: list[ChatMessage],
        model: str,
        temperature: float,
        max_tokens: int | None,
    ) -> httpx.Request:
        """Build the streaming POST request for this provider."""

    @abstractmethod
    def parse_event(self, payload: dict[str, Any]) -> StreamDelta:
        """Turn one decoded SSE payload into a StreamDelta.

        Raises:
            ProtocolError: If the payload does not match the provider schema
            TransportError: If the payload is an in-stream error report
        """

    async def chat_completion_stream(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> StreamingResponse:
        """Send the request and return the fragment stream once the status is known."""
        request = self.build_request(messages, model or self._model, temperature, max_tokens)
        logger.debug("POST %s (model=%s, messages=%d)", request.url, model or self._model, len(messages))

        try:
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise TransportError(f"Request to {request.url.host} failed: {e}") from e

        if not response.is_success:
            try:
                body = await response.aread()
            except httpx.HTTPError:
                body = b""
            finally:
                await response.aclose()
            provider_message = extract_error_message(body)
            raise TransportError(
                provider_message or response.reason_phrase or "Request failed",
                status_code=response.status_code,
                provider_message=provider_message,
            )

        stream: StreamingResponse = StreamingResponse(
            self._stream_generator(response, lambda usage: stream.set_usage(usage))
        )
        return stream

    async def _stream_generator(
        self,
        response: httpx.Response,
        on_usage: Callable[[dict[str, int]], None],
    ) -> AsyncIterator[str]:
        """Internal generator that yields fragments and captures usage."""
        events = SSEJsonStream(response.aiter_lines())
        finished = False

        try:
            async for payload in events:
                delta = self.parse_event(payload)
                if delta.usage:
                    on_usage(delta.usage)
                if delta.text:
                    yield delta.text
                if delta.done:
                    finished = True
                    break
        except httpx.HTTPError as e:
            raise TransportError(f"Stream interrupted: {e}") from e
        finally:
            await response.aclose()

        if not finished and not events.saw_done:
            if events.event_count == 0:
                raise ProtocolError("Empty or unparseable response from provider")
            raise ProtocolError("Stream ended before the provider signalled completion")

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
