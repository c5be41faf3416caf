"""Stream reconciler: drives one in-flight assistant turn against the chat state.

Hides how a provider's fragment stream becomes an assistant message:
1. A streaming placeholder is appended and persisted before any network call.
2. Each fragment is appended to that placeholder (held by reference, not
   searched for) and observers see it before the next fragment is awaited.
3. On completion the placeholder stops streaming and the state is persisted.
4. On failure the placeholder is removed if empty or kept as partial content,
   and a separate error message is appended.
5. The session's loading flag is cleared after persisting, on every path.
"""

import asyncio
import logging
from collections.abc import Callable
from enum import Enum

from ..errors import ChatboxError
from ..llm import ChatMessage, LLMProvider, provider_from_settings
from ..settings import ChatSettings
from .models import ChatSession, Message
from .repository import SessionRepository
from .state import ChatState

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[ChatSettings], LLMProvider]


class TurnOutcome(str, Enum):
    """How a turn ended."""

    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


def build_history(session: ChatSession, settings: ChatSettings) -> list[ChatMessage]:
    """Messages sent to the provider for the next assistant turn.

    Skips streaming messages, error reports and empty messages; the system
    prompt leads when it is not blank.
    """
    history: list[ChatMessage] = []
    if settings.system_prompt.strip():
        history.append(ChatMessage(role="system", content=settings.system_prompt))

    for message in session.messages:
        if message.streaming or message.is_error or not message.content:
            continue
        history.append(ChatMessage(role=message.author.value, content=message.content))
    return history


class StreamReconciler:
    """Runs assistant turns and reconciles their streams with ChatState."""

    def __init__(
        self,
        state: ChatState,
        repository: SessionRepository,
        provider_factory: ProviderFactory = provider_from_settings,
    ):
        self._state = state
        self._repository = repository
        self._provider_factory = provider_factory

    async def run(self, session: ChatSession, settings: ChatSettings) -> TurnOutcome:
        """Run one assistant turn for session.

        Per-turn errors never escape; they become an error message in the
        session. A failure before the first fragment replaces the empty
        placeholder with the error message. A failure after some fragments
        keeps the partial reply and appends the error after it, so that send
        adds three messages instead of two. Cancellation finalizes the
        placeholder and is re-raised.
        """
        history = build_history(session, settings)
        placeholder = Message.assistant_placeholder()
        self._state.add_message(session, placeholder)
        self._state.set_loading(session.id, True)

        outcome = TurnOutcome.FAILED
        try:
            await self._repository.save(self._state)
            await self._stream_into(session, placeholder, history, settings)
            self._state.finish_message(session, placeholder)
            outcome = TurnOutcome.COMPLETED
            logger.info(
                "Turn completed in session %s (%d chars)", session.id, len(placeholder.content)
            )
        except asyncio.CancelledError:
            outcome = TurnOutcome.CANCELLED
            self._finalize_placeholder(session, placeholder)
            logger.info("Turn cancelled in session %s", session.id)
            raise
        except ChatboxError as e:
            logger.warning("Turn failed in session %s: %s", session.id, e)
            self._fail(session, placeholder, str(e))
        except Exception as e:
            logger.exception("Unexpected failure during turn in session %s", session.id)
            self._fail(session, placeholder, f"Unexpected error: {e}")
        finally:
            try:
                await self._repository.save(self._state)
            finally:
                self._state.set_loading(session.id, False)

        return outcome

    async def _stream_into(
        self,
        session: ChatSession,
        placeholder: Message,
        history: list[ChatMessage],
        settings: ChatSettings,
    ) -> None:
        provider = self._provider_factory(settings)
        async with provider:
            stream = await provider.chat_completion_stream(
                history,
                model=settings.model,
                temperature=settings.temperature,
                max_tokens=settings.max_tokens,
            )
            try:
                async for fragment in stream:
                    self._state.append_fragment(session, placeholder, fragment)
            finally:
                await stream.aclose()

            if stream.usage:
                logger.debug("Token usage for session %s: %s", session.id, stream.usage)

    def _finalize_placeholder(self, session: ChatSession, placeholder: Message) -> None:
        """Stop the placeholder streaming; drop it if nothing arrived."""
        if not placeholder.streaming:
            return
        if placeholder.content:
            self._state.finish_message(session, placeholder)
        else:
            self._state.remove_message(session, placeholder)

    def _fail(self, session: ChatSession, placeholder: Message, description: str) -> None:
        self._finalize_placeholder(session, placeholder)
        self._state.add_message(session, Message.error(description))
