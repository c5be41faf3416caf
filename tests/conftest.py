"""Pytest configuration and shared fixtures."""
import asyncio
from collections.abc import AsyncIterator

import pytest

from chatbox.chat import ChatEvent, SessionManager
from chatbox.errors import PersistenceError
from chatbox.llm import ChatMessage, LLMProvider, StreamingResponse
from chatbox.settings import ChatSettings
from chatbox.storage import InMemoryKeyValueStore


class ScriptedProvider(LLMProvider):
    """Provider that streams a fixed list of fragments.

    Args:
        fragments: Fragments yielded in order
        error_before: Raised from chat_completion_stream, before any fragment
        error_after: Raised from iteration after the fragments
        hold: Keep the stream open after the fragments until `release` is set
    """

    def __init__(
        self,
        fragments: list[str] | None = None,
        error_before: Exception | None = None,
        error_after: Exception | None = None,
        hold: bool = False,
    ):
        self.fragments = list(fragments or [])
        self.error_before = error_before
        self.error_after = error_after
        self.hold = hold
        self.waiting = asyncio.Event()
        self.release = asyncio.Event()
        self.calls: list[list[ChatMessage]] = []
        self.close_count = 0

    @property
    def model(self) -> str:
        return "scripted-model"

    async def chat_completion_stream(self, messages, model=None, temperature=0.7, max_tokens=None):
        self.calls.append(list(messages))
        if self.error_before is not None:
            raise self.error_before
        return StreamingResponse(self._generate())

    async def _generate(self) -> AsyncIterator[str]:
        for fragment in self.fragments:
            yield fragment
        if self.hold:
            self.waiting.set()
            await self.release.wait()
        if self.error_after is not None:
            raise self.error_after

    async def close(self) -> None:
        self.close_count += 1


class FailingStore(InMemoryKeyValueStore):
    """In-memory store whose writes always fail."""

    async def set(self, key: str, value: bytes) -> None:
        raise PersistenceError("disk full")


class EventRecorder:
    """Observer that records every ChatEvent it receives."""

    def __init__(self):
        self.events: list[ChatEvent] = []

    def __call__(self, event: ChatEvent) -> None:
        self.events.append(event)

    @property
    def kinds(self) -> list[str]:
        return [event.kind.value for event in self.events]


@pytest.fixture
def store():
    """Return an empty in-memory key-value store."""
    return InMemoryKeyValueStore()


@pytest.fixture
def settings():
    """Return settings with a dummy key and the default system prompt."""
    return ChatSettings(api_key="sk-test")


@pytest.fixture
def recorder():
    """Return a fresh event recorder."""
    return EventRecorder()


@pytest.fixture
def scripted():
    """Return the ScriptedProvider class for building fake providers."""
    return ScriptedProvider


@pytest.fixture
def make_manager(store):
    """Return an async builder for a loaded SessionManager using a given provider."""

    async def _make(provider: LLMProvider, kv_store=None) -> SessionManager:
        manager = SessionManager(kv_store or store, provider_factory=lambda _settings: provider)
        await manager.load()
        return manager

    return _make


@pytest.fixture
def failing_store():
    """Return a store whose writes raise PersistenceError."""
    return FailingStore()
