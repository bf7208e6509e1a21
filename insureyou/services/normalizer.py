"""Canonicalize heterogeneous retrieval responses into ``RetrievalMatch`` lists.

Vector-index providers and their SDK versions disagree on where the match
list lives in a response.  ``normalize`` tries a fixed, ordered list of
response shapes and returns the first one whose target is a sequence:

1. the response itself is a sequence
2. ``.matches``
3. ``.results``
4. ``.data``
5. ``.items``
6. ``.body.matches``
7. ``.body.results``

Anything else, including ``None``, normalizes to an empty list.  Lookups work
on mappings and on SDK objects exposing the same names as attributes.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import structlog
from pydantic import BaseModel, ValidationError

from insureyou.schemas.chat import RetrievalMatch

logger = structlog.get_logger()

_MISSING = object()


@dataclass(frozen=True)
class ResponseShape:
    """A named location of the match list inside a raw response."""

    name: str
    path: tuple[str, ...]


RESPONSE_SHAPES: tuple[ResponseShape, ...] = (
    ResponseShape("array", ()),
    ResponseShape("matches", ("matches",)),
    ResponseShape("results", ("results",)),
    ResponseShape("data", ("data",)),
    ResponseShape("items", ("items",)),
    ResponseShape("body.matches", ("body", "matches")),
    ResponseShape("body.results", ("body", "results")),
)


def _is_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray))


def _lookup(value: Any, key: str) -> Any:
    if isinstance(value, Mapping):
        return value.get(key, _MISSING)
    if isinstance(value, (str, bytes, bytearray)) or _is_sequence(value):
        return _MISSING
    # ``dict.items`` and friends are methods, not payload fields.
    attr = getattr(value, key, _MISSING)
    return _MISSING if callable(attr) else attr


def _resolve(raw: Any, path: tuple[str, ...]) -> Any:
    value = raw
    for key in path:
        value = _lookup(value, key)
        if value is _MISSING or value is None:
            return _MISSING
    return value


def detect_shape(raw: Any) -> ResponseShape | None:
    """Return the first shape whose target is a sequence, else ``None``."""
    if raw is None:
        return None
    for shape in RESPONSE_SHAPES:
        if _is_sequence(_resolve(raw, shape.path)):
            return shape
    return None


def _coerce_match(item: Any) -> RetrievalMatch | None:
    if isinstance(item, RetrievalMatch):
        return item
    try:
        if isinstance(item, BaseModel):
            return RetrievalMatch.model_validate(item.model_dump())
        if isinstance(item, Mapping):
            return RetrievalMatch.model_validate(dict(item))
        if item is None or isinstance(item, (str, bytes, int, float)) or _is_sequence(item):
            logger.warning("retrieval_match_discarded", item_type=type(item).__name__)
            return None
        fields = {
            name: getattr(item, name)
            for name in ("id", "score", "text", "metadata")
            if getattr(item, name, None) is not None
        }
        return RetrievalMatch.model_validate(fields)
    except ValidationError:
        logger.warning("retrieval_match_discarded", item_type=type(item).__name__)
        return None


def normalize(raw: Any) -> list[RetrievalMatch]:
    """Extract and coerce the match list from any supported response shape.

    Already-normalized input is returned as an equal list, so ``normalize``
    is idempotent.
    """
    shape = detect_shape(raw)
    if shape is None:
        if raw is not None:
            logger.warning("retrieval_shape_unrecognized", response_type=type(raw).__name__)
        return []

    matches: list[RetrievalMatch] = []
    for item in _resolve(raw, shape.path):
        match = _coerce_match(item)
        if match is not None:
            matches.append(match)
    return matches
