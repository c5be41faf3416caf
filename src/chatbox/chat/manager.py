"""SessionManager: the public façade of the chat core.

Owns the chat state, coordinates persistence and starts one reconciler task
per turn. Results are observed through the state's read surface; methods
only report whether an intent was accepted.
"""

import asyncio
import logging
from collections.abc import Callable

from ..llm import provider_from_settings
from ..settings import ChatSettings
from ..storage import KeyValueStore
from .models import ChatSession, Message
from .reconciler import ProviderFactory, StreamReconciler, TurnOutcome
from .repository import SessionRepository
from .state import ChatObserver, ChatState

logger = logging.getLogger(__name__)


class SessionManager:
    """Manages the session collection and in-flight turns.

    Responsibilities:
    - Create, select, rename and delete sessions
    - Validate and send user messages
    - Prevent a second turn while one is in flight for the same session
    - Cancel turns on request, on delete and on close

    Usage:
        manager = SessionManager(store)
        await manager.load()
        manager.subscribe(on_change)
        await manager.send_message("Hello", settings)
    """

    def __init__(
        self,
        store: KeyValueStore,
        provider_factory: ProviderFactory = provider_from_settings,
    ):
        """Initialize the manager.

        Args:
            store: Key-value store holding the session collection
            provider_factory: Builds a provider from settings (defaults to the registry)
        """
        self._state = ChatState()
        self._repository = SessionRepository(store)
        self._reconciler = StreamReconciler(self._state, self._repository, provider_factory)
        self._turns: dict[str, asyncio.Task[TurnOutcome]] = {}

    # Read surface

    @property
    def state(self) -> ChatState:
        return self._state

    @property
    def sessions(self) -> list[ChatSession]:
        return self._state.sessions

    @property
    def current_session(self) -> ChatSession | None:
        return self._state.current_session

    @property
    def is_loading(self) -> bool:
        return self._state.is_loading

    def is_session_loading(self, session_id: str) -> bool:
        return self._state.is_session_loading(session_id) or session_id in self._turns

    def subscribe(self, observer: ChatObserver) -> Callable[[], None]:
        return self._state.subscribe(observer)

    # Lifecycle

    async def load(self, create_if_empty: bool = True) -> None:
        """Load persisted sessions.

        Args:
            create_if_empty: Create and save a first session when none are stored.
                Read-only callers pass False so nothing is written.
        """
        sessions = await self._repository.load()
        self._state.replace_sessions(sessions)
        logger.info("Loaded %d session(s)", len(sessions))
        if not sessions and create_if_empty:
            await self.create_session()

    async def close(self) -> None:
        """Cancel every in-flight turn and wait for them to finalize."""
        tasks = [task for task in self._turns.values() if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.wait(tasks)

    # Session intents

    async def create_session(self) -> None:
        """Insert a new session at the head, make it current and persist."""
        session = ChatSession()
        self._state.insert_session(session)
        logger.debug("Created session %s", session.id)
        await self._repository.save(self._state)

    def select_session(self, session_id: str) -> bool:
        """Make session_id current. No persistence needed."""
        return self._state.select_session(session_id)

    async def rename_session(self, session_id: str, title: str) -> bool:
        title = title.strip()
        if not title:
            return False
        if not self._state.rename_session(session_id, title):
            return False
        await self._repository.save(self._state)
        return True

    async def delete_session(self, session_id: str) -> bool:
        """Delete a session, cancelling its turn first.

        If the deleted session was current, the new head becomes current.
        If the collection becomes empty a fresh session replaces it.
        """
        if self._state.get_session(session_id) is None:
            return False

        await self.cancel_turn(session_id)
        if self._state.remove_session(session_id) is None:
            return False
        logger.debug("Deleted session %s", session_id)

        if not self._state.sessions:
            self._state.insert_session(ChatSession())

        await self._repository.save(self._state)
        return True

    # Turns

    async def send_message(self, text: str, settings: ChatSettings) -> bool:
        """Send a user message on the current session and stream the reply.

        Returns False without changing anything if the trimmed text is empty,
        there is no current session, or a turn is already in flight for it.
        Otherwise returns True once the turn has completed, failed or been
        cancelled.
        """
        content = text.strip()
        session = self._state.current_session
        if not content or session is None:
            return False
        if self.is_session_loading(session.id):
            logger.debug("Rejected send: turn already in flight for session %s", session.id)
            return False

        self._state.add_message(session, Message.user(content))
        task = asyncio.create_task(
            self._run_turn(session, settings),
            name=f"chat-turn-{session.id}",
        )
        self._turns[session.id] = task

        try:
            await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
        finally:
            if self._turns.get(session.id) is task:
                del self._turns[session.id]
        return True

    async def _run_turn(self, session: ChatSession, settings: ChatSettings) -> TurnOutcome:
        await self._repository.save(self._state)
        return await self._reconciler.run(session, settings)

    async def cancel_turn(self, session_id: str | None = None) -> bool:
        """Cancel the in-flight turn of a session (default: current session).

        Returns True if a turn was cancelled. The streaming message is
        finalized and the loading flag cleared before this returns.
        """
        sid = session_id or self._state.current_session_id
        task = self._turns.get(sid) if sid else None
        if task is None or task.done():
            return False
        task.cancel()
        await asyncio.wait({task})
        return True
