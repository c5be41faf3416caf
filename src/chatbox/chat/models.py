"""Data models for chat sessions.

These models define messages and sessions independent of how they are
persisted or rendered. Invariants enforced here:
- only assistant messages may stream; user messages never change
- a message stops streaming exactly once
- a session holds at most one streaming message
"""

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator

DEFAULT_SESSION_TITLE = "New Chat"
TITLE_MAX_LENGTH = 30
ERROR_PREFIX = "⚠️ Error: "


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Author(str, Enum):
    """Who wrote a message."""

    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    """One chat message.

    User messages are created complete. Assistant messages start empty with
    `streaming=True` and grow by `append_content()` until `finish_streaming()`.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    content: str = ""
    author: Author
    timestamp: datetime = Field(default_factory=_utcnow)
    streaming: bool = False
    is_error: bool = Field(default=False, description="Assistant message reporting a failed turn")

    @model_validator(mode="after")
    def check_streaming_author(self) -> "Message":
        if self.streaming and self.author is not Author.ASSISTANT:
            raise ValueError("only assistant messages may be streaming")
        return self

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(content=content, author=Author.USER)

    @classmethod
    def assistant_placeholder(cls) -> "Message":
        return cls(content="", author=Author.ASSISTANT, streaming=True)

    @classmethod
    def error(cls, description: str) -> "Message":
        return cls(content=f"{ERROR_PREFIX}{description}", author=Author.ASSISTANT, is_error=True)

    @property
    def is_user(self) -> bool:
        return self.author is Author.USER

    def append_content(self, fragment: str) -> None:
        """Append a streamed fragment.

        Raises:
            ValueError: If the message is not streaming
        """
        if not self.streaming:
            raise ValueError(f"message {self.id} is not streaming")
        self.content += fragment

    def finish_streaming(self) -> None:
        """Mark the message complete.

        Raises:
            ValueError: If the message already stopped streaming
        """
        if not self.streaming:
            raise ValueError(f"message {self.id} already finished streaming")
        self.streaming = False


class ChatSession(BaseModel):
    """One conversation: ordered messages plus metadata."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    title: str = DEFAULT_SESSION_TITLE
    messages: list[Message] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    last_updated: datetime = Field(default_factory=_utcnow)

    @property
    def has_default_title(self) -> bool:
        return self.title == DEFAULT_SESSION_TITLE

    @property
    def streaming_message(self) -> Message | None:
        return next((m for m in self.messages if m.streaming), None)

    def add_message(self, message: Message) -> None:
        """Append a message, bump last_updated and derive the title.

        The title is taken from the first user message while the session
        still has the default title.

        Raises:
            ValueError: If the message would be a second streaming message
        """
        if message.streaming and self.streaming_message is not None:
            raise ValueError(f"session {self.id} already has a streaming message")

        self.messages.append(message)
        self.last_updated = _utcnow()

        if message.is_user and self.has_default_title:
            title = message.content.strip()[:TITLE_MAX_LENGTH].strip()
            if title:
                self.title = title

    def remove_message(self, message_id: str) -> Message | None:
        """Remove a message by id, returning it if it was present."""
        for index, message in enumerate(self.messages):
            if message.id == message_id:
                return self.messages.pop(index)
        return None

    def find_message(self, message_id: str) -> Message | None:
        return next((m for m in self.messages if m.id == message_id), None)

    def last_assistant_message(self) -> Message | None:
        return next((m for m in reversed(self.messages) if m.author is Author.ASSISTANT), None)


class ChatEventKind(str, Enum):
    """What changed in the observable chat state."""

    SESSIONS_LOADED = "sessions_loaded"
    SESSION_CREATED = "session_created"
    SESSION_SELECTED = "session_selected"
    SESSION_RENAMED = "session_renamed"
    SESSION_DELETED = "session_deleted"
    MESSAGE_ADDED = "message_added"
    MESSAGE_UPDATED = "message_updated"
    MESSAGE_REMOVED = "message_removed"
    LOADING_CHANGED = "loading_changed"


class ChatEvent(BaseModel):
    """Notification pushed to observers after every mutation."""

    kind: ChatEventKind
    session_id: str | None = None
    message_id: str | None = None
