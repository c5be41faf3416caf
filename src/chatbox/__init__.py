"""
Chatbox: a streaming multi-session chat client for pluggable LLM providers.

This package follows Parnas's information hiding principles,
where each module hides a specific design decision.
"""

__version__ = "0.1.0"

from .chat import ChatEvent, ChatEventKind, ChatSession, Message, SessionManager
from .errors import (
    ChatboxError,
    ConfigurationError,
    PersistenceError,
    ProtocolError,
    TransportError,
)
from .llm import ProviderKind, create_llm_provider
from .settings import ChatSettings, SettingsManager
from .storage import create_key_value_store

__all__ = [
    "ChatEvent",
    "ChatEventKind",
    "ChatSession",
    "ChatSettings",
    "ChatboxError",
    "ConfigurationError",
    "Message",
    "PersistenceError",
    "ProtocolError",
    "ProviderKind",
    "SessionManager",
    "SettingsManager",
    "TransportError",
    "create_key_value_store",
    "create_llm_provider",
]
