"""Observable, single-owner chat state.

Hides how sessions are held in memory and how observers are notified.
Every mutation of sessions, messages or loading flags goes through
`ChatState`, which pushes a `ChatEvent` to observers synchronously.
"""

import logging
from collections.abc import Callable

from .models import ChatEvent, ChatEventKind, ChatSession, Message

logger = logging.getLogger(__name__)

ChatObserver = Callable[[ChatEvent], None]


class ChatState:
    """The session collection, the current-session reference and loading flags.

    Sessions are ordered most-recently-created first. The current session
    is a lookup key into that list, never a second owner.
    """

    def __init__(self, sessions: list[ChatSession] | None = None):
        self._sessions: list[ChatSession] = list(sessions or [])
        self._current_session_id: str | None = None
        self._loading: set[str] = set()
        self._observers: list[ChatObserver] = []

    # Read surface

    @property
    def sessions(self) -> list[ChatSession]:
        """Sessions in display order (copy of the list, shared objects)."""
        return list(self._sessions)

    @property
    def current_session_id(self) -> str | None:
        return self._current_session_id

    @property
    def current_session(self) -> ChatSession | None:
        if self._current_session_id is None:
            return None
        return self.get_session(self._current_session_id)

    @property
    def is_loading(self) -> bool:
        """True while any turn is in flight."""
        return bool(self._loading)

    def is_session_loading(self, session_id: str) -> bool:
        return session_id in self._loading

    def get_session(self, session_id: str) -> ChatSession | None:
        return next((s for s in self._sessions if s.id == session_id), None)

    # Observers

    def subscribe(self, observer: ChatObserver) -> Callable[[], None]:
        """Register an observer; returns a function that unsubscribes it."""
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _notify(self, kind: ChatEventKind, session_id: str | None = None, message_id: str | None = None) -> None:
        event = ChatEvent(kind=kind, session_id=session_id, message_id=message_id)
        for observer in list(self._observers):
            try:
                observer(event)
            except Exception:
                logger.exception("Chat observer failed on %s", kind.value)

    # Session mutations

    def replace_sessions(self, sessions: list[ChatSession]) -> None:
        """Install a freshly loaded collection; current becomes the head."""
        self._sessions = list(sessions)
        self._current_session_id = self._sessions[0].id if self._sessions else None
        self._notify(ChatEventKind.SESSIONS_LOADED)

    def insert_session(self, session: ChatSession) -> None:
        """Insert at the head and make it current."""
        self._sessions.insert(0, session)
        self._current_session_id = session.id
        self._notify(ChatEventKind.SESSION_CREATED, session.id)

    def select_session(self, session_id: str | None) -> bool:
        if session_id is not None and self.get_session(session_id) is None:
            return False
        self._current_session_id = session_id
        self._notify(ChatEventKind.SESSION_SELECTED, session_id)
        return True

    def rename_session(self, session_id: str, title: str) -> bool:
        session = self.get_session(session_id)
        if session is None:
            return False
        session.title = title
        self._notify(ChatEventKind.SESSION_RENAMED, session_id)
        return True

    def remove_session(self, session_id: str) -> ChatSession | None:
        """Remove a session; if it was current, the new head becomes current."""
        session = self.get_session(session_id)
        if session is None:
            return None
        self._sessions.remove(session)
        if self._current_session_id == session_id:
            self._current_session_id = self._sessions[0].id if self._sessions else None
        self._notify(ChatEventKind.SESSION_DELETED, session_id)
        return session

    # Message mutations

    def add_message(self, session: ChatSession, message: Message) -> None:
        session.add_message(message)
        self._notify(ChatEventKind.MESSAGE_ADDED, session.id, message.id)

    def append_fragment(self, session: ChatSession, message: Message, fragment: str) -> None:
        message.append_content(fragment)
        self._notify(ChatEventKind.MESSAGE_UPDATED, session.id, message.id)

    def finish_message(self, session: ChatSession, message: Message) -> None:
        message.finish_streaming()
        self._notify(ChatEventKind.MESSAGE_UPDATED, session.id, message.id)

    def remove_message(self, session: ChatSession, message: Message) -> None:
        if session.remove_message(message.id) is not None:
            self._notify(ChatEventKind.MESSAGE_REMOVED, session.id, message.id)

    # Loading flags

    def set_loading(self, session_id: str, loading: bool) -> None:
        was_loading = session_id in self._loading
        if loading:
            self._loading.add(session_id)
        else:
            self._loading.discard(session_id)
        if was_loading != loading:
            self._notify(ChatEventKind.LOADING_CHANGED, session_id)
