"""JSON encoding of the session collection.

The stored document is a JSON array of sessions whose shape mirrors the
models: string ids, ISO-8601 timestamps and enum string tags.
"""

import logging

from pydantic import TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError

from ..errors import PersistenceError
from .models import ChatSession

logger = logging.getLogger(__name__)

_sessions_adapter = TypeAdapter(list[ChatSession])


def encode_sessions(sessions: list[ChatSession]) -> bytes:
    """Serialize sessions to a JSON document.

    Raises:
        PersistenceError: If serialization fails
    """
    try:
        return _sessions_adapter.dump_json(sessions)
    except PydanticSerializationError as e:
        raise PersistenceError(f"Cannot encode sessions: {e}") from e


def decode_sessions(data: bytes) -> list[ChatSession]:
    """Deserialize a JSON document produced by encode_sessions().

    Messages left streaming by an interrupted run are normalized: those
    with partial content stop streaming and keep it, empty ones are dropped.

    Raises:
        PersistenceError: If the document is not a valid session collection
    """
    try:
        sessions = _sessions_adapter.validate_json(data)
    except ValidationError as e:
        raise PersistenceError(f"Cannot decode sessions: {e.error_count()} invalid field(s)") from e

    for session in sessions:
        normalize_interrupted(session)
    return sessions


def normalize_interrupted(session: ChatSession) -> None:
    """Finish any message still marked streaming."""
    for message in list(session.messages):
        if not message.streaming:
            continue
        if message.content:
            message.finish_streaming()
        else:
            session.remove_message(message.id)
        logger.info("Recovered interrupted message %s in session %s", message.id, session.id)
