"""Chat core: sessions, messages, streaming turns and persistence.

Module structure (each module hides a design decision):
- models.py: message/session data model and invariants
- codec.py: JSON document format of the session collection
- state.py: single-owner observable state
- repository.py: when and how the collection is written to storage
- reconciler.py: how a fragment stream becomes an assistant message
- manager.py: public façade accepting user intents
"""

from .codec import decode_sessions, encode_sessions
from .manager import SessionManager
from .models import (
    DEFAULT_SESSION_TITLE,
    Author,
    ChatEvent,
    ChatEventKind,
    ChatSession,
    Message,
)
from .reconciler import StreamReconciler, TurnOutcome, build_history
from .repository import BACKUP_SUFFIX, SESSIONS_KEY, SessionRepository
from .state import ChatObserver, ChatState

__all__ = [
    "BACKUP_SUFFIX",
    "DEFAULT_SESSION_TITLE",
    "SESSIONS_KEY",
    "Author",
    "ChatEvent",
    "ChatEventKind",
    "ChatObserver",
    "ChatSession",
    "ChatState",
    "Message",
    "SessionManager",
    "SessionRepository",
    "StreamReconciler",
    "TurnOutcome",
    "build_history",
    "decode_sessions",
    "encode_sessions",
]
