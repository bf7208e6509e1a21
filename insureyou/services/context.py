"""Build the grounding context handed to the generation collaborator.

Formats retrieved matches (or fallback web hits) into a short, bounded,
human-readable source summary and appends it to the conversation as a
system-role message.  An empty match list produces no summary at all, so
the model is never told about citations that do not exist.
"""

from __future__ import annotations

import re
from typing import Any

from insureyou.schemas.chat import ChatMessage, RetrievalMatch, TextPart, WebSearchResult

VECTOR_SUMMARY_HEADER = "Sources retrieved from vector DB:"
WEB_SUMMARY_HEADER = "Sources retrieved from web search:"
MAX_SUMMARY_ENTRIES = 5
EXCERPT_CHARS = 300

_NEWLINES = re.compile(r"\r\n|\r|\n")


def latest_user_text(messages: list[ChatMessage]) -> str:
    """Return the text of the most recent user message, or ``""``."""
    for message in reversed(messages):
        if message.role == "user":
            return message.text
    return ""


def _excerpt(text: str | None) -> str:
    return _NEWLINES.sub(" ", str(text or "")[:EXCERPT_CHARS])


def _format_line(name: str, url: str | None, excerpt: str) -> str:
    line = f"- {name}"
    if url:
        line += f" — {url}"
    if excerpt:
        line += f' — excerpt: "{excerpt}"'
    return line


def _first_present(*values: Any) -> Any:
    # Only a missing value falls through; an empty string is kept.
    return next((value for value in values if value is not None), None)


def source_name(match: RetrievalMatch, index: int) -> str:
    """Resolve a display name: metadata name, metadata title, top-level name, ordinal."""
    extra = match.model_extra or {}
    return _first_present(
        match.metadata.source_name,
        match.metadata.title,
        extra.get("source_name"),
        f"Source {index + 1}",
    )


def source_url(match: RetrievalMatch) -> str | None:
    extra = match.model_extra or {}
    return _first_present(match.metadata.source_url, extra.get("source_url"))


def build_summary(matches: list[RetrievalMatch], max_entries: int = MAX_SUMMARY_ENTRIES) -> str:
    """Render up to *max_entries* matches under the vector DB header.

    Returns ``""`` for an empty list rather than a header-only block.
    """
    if not matches:
        return ""
    lines = [VECTOR_SUMMARY_HEADER]
    for index, match in enumerate(matches[:max_entries]):
        excerpt = _excerpt(match.metadata.text if match.metadata.text is not None else match.text)
        lines.append(_format_line(source_name(match, index), source_url(match), excerpt))
    return "\n".join(lines)


def build_web_summary(
    results: list[WebSearchResult], max_entries: int = MAX_SUMMARY_ENTRIES
) -> str:
    """Render fallback web hits in the same line format as ``build_summary``."""
    if not results:
        return ""
    lines = [WEB_SUMMARY_HEADER]
    for index, result in enumerate(results[:max_entries]):
        name = result.title or f"Source {index + 1}"
        lines.append(_format_line(name, result.url, _excerpt(result.content)))
    return "\n".join(lines)


def augment_messages(messages: list[ChatMessage], summary: str) -> list[ChatMessage]:
    """Return a copy of *messages* with *summary* appended as a system message.

    The input list is never mutated; an empty summary adds nothing.
    """
    augmented = list(messages)
    if summary:
        augmented.append(ChatMessage(role="system", parts=[TextPart(text=summary)]))
    return augmented
