import asyncio
import logging

from ..errors import PersistenceError
from ..storage import KeyValueStore
from .codec import decode_sessions, encode_sessions
from .models import ChatSession
from .state import ChatState

logger = logging.getLogger(__name__)

SESSIONS_KEY = "ChatSessions"
# Appended to the collection key when an unreadable document is set aside
BACKUP_SUFFIX = ".corrupt"


class SessionRepository:
    """Writes the session collection to a key-value store after mutations.

    Persistence is a side effect: failures are logged and never roll back
    or interrupt the in-memory state. Saves are serialized and encode the
    state at write time, so the newest state is always written last.

    A stored document that cannot be decoded is copied to the backup key
    before anything else is written. If that copy (or the read itself)
    fails, saving stays disabled so the stored document is never replaced.
    """

    def __init__(self, store: KeyValueStore, key: str = SESSIONS_KEY):
        self._store = store
        self._key = key
        self._save_lock = asyncio.Lock()
        self._writable = True

    @property
    def store(self) -> KeyValueStore:
        return self._store

    @property
    def backup_key(self) -> str:
        return f"{self._key}{BACKUP_SUFFIX}"

    @property
    def writable(self) -> bool:
        return self._writable

    async def load(self) -> list[ChatSession]:
        """Read the stored collection; returns an empty list if absent or unreadable."""
        try:
            data = await self._store.get(self._key)
        except PersistenceError as e:
            logger.error("Could not read sessions, saving disabled: %s", e)
            self._writable = False
            return []

        if data is None:
            return []
        try:
            return decode_sessions(data)
        except PersistenceError as e:
            logger.error("Could not load sessions, starting empty: %s", e)
            await self._back_up(data)
            return []

    async def _back_up(self, data: bytes) -> None:
        try:
            await self._store.set(self.backup_key, data)
        except PersistenceError as e:
            logger.error("Could not back up unreadable sessions, saving disabled: %s", e)
            self._writable = False
            return
        logger.warning("Unreadable sessions copied to %s", self.backup_key)

    async def save(self, state: ChatState) -> bool:
        """Persist the current collection. Returns False if it failed or saving is disabled."""
        if not self._writable:
            logger.warning("Not saving sessions: stored collection could not be read or backed up")
            return False
        async with self._save_lock:
            try:
                await self._store.set(self._key, encode_sessions(state.sessions))
            except PersistenceError as e:
                logger.error("Could not save sessions: %s", e)
                return False
        return True
