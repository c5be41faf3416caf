"""Server-sent-event framing shared by the HTTP providers.

Hides how a provider's byte stream is split into JSON payloads:
- only `data:` lines carry payloads (event names, comments and blank
  keep-alive lines are ignored)
- the literal `[DONE]` payload ends the stream
- payloads that are not valid JSON objects are skipped without aborting
"""

import json
import logging
from collections.abc import AsyncIterator
from typing import Any

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


def parse_data_line(line: str) -> str | None:
    """Return the payload of a `data:` line, or None for any other line."""
    if not line.startswith(DATA_PREFIX):
        return None
    payload = line[len(DATA_PREFIX):]
    if payload.startswith(" "):
        payload = payload[1:]
    return payload.strip()


def decode_payload(payload: str) -> dict[str, Any] | None:
    """Decode one payload, returning None when it is not a JSON object."""
    try:
        decoded = json.loads(payload)
    except json.JSONDecodeError:
        logger.debug("Skipping malformed SSE payload: %.80s", payload)
        return None

    if not isinstance(decoded, dict):
        logger.debug("Skipping non-object SSE payload: %.80s", payload)
        return None
    return decoded


class SSEJsonStream:
    """Async iterator of JSON payloads read from SSE lines.

    After iteration, `saw_done` tells whether the `[DONE]` sentinel ended
    the stream and `event_count` how many well-formed payloads were read.

    Usage:
        events = SSEJsonStream(response.aiter_lines())
        async for payload in events:
            ...
    """

    def __init__(self, lines: AsyncIterator[str]):
        self._lines = lines
        self.saw_done = False
        self.event_count = 0

    def __aiter__(self) -> AsyncIterator[dict[str, Any]]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[dict[str, Any]]:
        async for line in self._lines:
            payload = parse_data_line(line)
            if not payload:
                continue
            if payload == DONE_SENTINEL:
                self.saw_done = True
                return

            decoded = decode_payload(payload)
            if decoded is None:
                continue

            self.event_count += 1
            yield decoded


def extract_error_message(body: bytes) -> str | None:
    """Pull a human-readable message out of a provider error body.

    Understands `{"error": {"message": ...}}` (OpenAI, Anthropic),
    `{"message": ...}` (Silicon Flow) and `{"error": "..."}`.
    """
    try:
        decoded = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None

    if not isinstance(decoded, dict):
        return None

    error = decoded.get("error")
    if isinstance(error, dict) and isinstance(error.get("message"), str):
        return error["message"]
    if isinstance(error, str):
        return error
    if isinstance(decoded.get("message"), str):
        return decoded["message"]
    return None
