"""Key-value persistence for chatbox.

Stores the serialized session collection and settings as opaque blobs.
"""

from .base import KeyValueStore
from .factory import create_key_value_store
from .in_memory import InMemoryKeyValueStore
from .sqlite import SQLiteKeyValueStore

__all__ = [
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "SQLiteKeyValueStore",
    "create_key_value_store",
]
