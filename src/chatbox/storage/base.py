"""Abstract base class for key-value persistence backends.

This module defines the only storage contract the chat core needs:
opaque byte blobs addressed by fixed string keys.
The abstraction hides:
- Storage medium (memory, SQLite file, ...)
- Connection management
"""

from abc import ABC, abstractmethod


class KeyValueStore(ABC):
    """Abstract key-value store.

    Implementations raise PersistenceError for backend failures so callers
    can treat every backend the same way.
    """

    @abstractmethod
    async def connect(self) -> None:
        """Initialize the backend."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the backend gracefully."""

    @abstractmethod
    async def get(self, key: str) -> bytes | None:
        """Return the blob stored under key, or None if absent."""

    @abstractmethod
    async def set(self, key: str, value: bytes) -> None:
        """Store value under key, replacing any previous blob."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove key if present."""

    @property
    @abstractmethod
    def backend_type(self) -> str:
        """Get the backend type identifier."""

    async def __aenter__(self) -> "KeyValueStore":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.disconnect()
