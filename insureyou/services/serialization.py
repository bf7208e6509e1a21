"""Payload-safety guard for everything sent to the generation collaborator.

Conversation text is user-controlled and unbounded, and tool results carry
arbitrary provider objects.  These helpers cap string sizes, convert values
JSON cannot represent, break reference cycles, and produce a short preview
that is safe to log.
"""

from __future__ import annotations

import json
import math
from collections.abc import Mapping
from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel

from insureyou.errors import PayloadSerializationError
from insureyou.schemas.chat import ChatMessage

DEFAULT_MAX_CHARS = 15_000
DEFAULT_PREVIEW_CHARS = 4_000

# Integers beyond this lose precision in JavaScript clients.
_MAX_SAFE_INTEGER = 2**53 - 1


def truncate_text(text: str, limit: int = DEFAULT_MAX_CHARS) -> str:
    """Cut *text* to *limit* characters, marking how much was dropped."""
    if len(text) <= limit:
        return text
    return f"{text[:limit]}... [TRUNCATED {len(text)} -> {limit}]"


def to_generation_messages(
    messages: list[ChatMessage], limit: int = DEFAULT_MAX_CHARS
) -> list[dict[str, str]]:
    """Flatten chat messages into ``{role, content}`` dicts.

    Each text part is truncated on its own before the parts are joined with
    a blank line; a message with no text parts yields empty content.
    """
    return [
        {
            "role": message.role,
            "content": "\n\n".join(truncate_text(part.text, limit) for part in message.text_parts),
        }
        for message in messages
    ]


def _jsonable(value: Any, max_chars: int, path: set[int]) -> Any:
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value) if abs(value) > _MAX_SAFE_INTEGER else value
    if isinstance(value, float):
        return value if math.isfinite(value) else str(value)
    if isinstance(value, str):
        if len(value) > max_chars:
            return f"{value[:max_chars]}... [TRUNCATED {len(value)} chars -> {max_chars}]"
        return value
    if isinstance(value, (bytes, bytearray)):
        return _jsonable(bytes(value).decode("utf-8", errors="replace"), max_chars, path)
    if isinstance(value, Enum):
        return _jsonable(value.value, max_chars, path)
    if isinstance(value, (datetime, date)):
        return value.isoformat()

    if id(value) in path:
        return "[Circular]"

    if isinstance(value, BaseModel):
        path.add(id(value))
        try:
            return _jsonable(value.model_dump(mode="python", by_alias=True), max_chars, path)
        finally:
            path.discard(id(value))
    if isinstance(value, Mapping):
        path.add(id(value))
        try:
            return {str(k): _jsonable(v, max_chars, path) for k, v in value.items()}
        finally:
            path.discard(id(value))
    if isinstance(value, (list, tuple, set, frozenset)):
        path.add(id(value))
        try:
            return [_jsonable(item, max_chars, path) for item in value]
        finally:
            path.discard(id(value))
    if callable(value):
        return f"[Function: {getattr(value, '__name__', None) or 'anonymous'}]"
    return _jsonable(str(value), max_chars, path)


def to_jsonable(value: Any, max_chars: int = DEFAULT_MAX_CHARS) -> Any:
    """Convert *value* into plain JSON types, applying the string cap."""
    return _jsonable(value, max_chars, set())


def safe_serialize(value: Any, max_chars: int = DEFAULT_MAX_CHARS) -> str:
    """Serialize *value* to a JSON string that is always valid and bounded per string.

    Raises:
        PayloadSerializationError: If conversion fails anyway (e.g. nesting
            deep enough to exhaust the recursion limit).
    """
    try:
        return json.dumps(to_jsonable(value, max_chars), ensure_ascii=False)
    except (TypeError, ValueError, RecursionError) as exc:
        raise PayloadSerializationError(f"Failed to serialize payload: {exc}") from exc


def preview(serialized: str, max_chars: int = DEFAULT_PREVIEW_CHARS) -> str:
    """Return the leading slice of a serialized payload for logging."""
    return serialized[:max_chars]
