"""Chat request/response schemas and pipeline data records.

Defines the inbound message contract (ChatMessage and its tagged parts), the
retrieval and web-search records produced by collaborators, the moderation
verdict, and the ``ResponsePayload`` every synchronous code path resolves to.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

Role = Literal["system", "user", "assistant"]


class TextPart(BaseModel):
    """Plain text typed by the user or produced by the assistant."""

    type: Literal["text"] = "text"
    text: str = ""


class ReasoningPart(BaseModel):
    """Reasoning trace emitted by the model; never fed back into retrieval."""

    type: Literal["reasoning"]
    text: str = ""


class ToolCallPart(BaseModel):
    type: Literal["tool-call"]
    tool_call_id: str | None = Field(default=None, alias="toolCallId")
    tool_name: str | None = Field(default=None, alias="toolName")
    input: Any = None

    model_config = ConfigDict(populate_by_name=True)


class ToolResultPart(BaseModel):
    type: Literal["tool-result"]
    tool_call_id: str | None = Field(default=None, alias="toolCallId")
    tool_name: str | None = Field(default=None, alias="toolName")
    output: Any = None

    model_config = ConfigDict(populate_by_name=True)


class OtherPart(BaseModel):
    """Any part type the UI sends that the pipeline does not consume."""

    type: str

    model_config = ConfigDict(extra="allow")


# Tried in order; OtherPart absorbs part types the pipeline ignores.
MessagePart = Annotated[
    TextPart | ReasoningPart | ToolCallPart | ToolResultPart | OtherPart,
    Field(union_mode="left_to_right"),
]


class ChatMessage(BaseModel):
    """One conversation turn.  Only ``text`` parts carry meaning downstream."""

    role: Role
    parts: list[MessagePart] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _content_to_parts(cls, data: Any) -> Any:
        """Accept the older ``{role, content: str}`` message shape."""
        if isinstance(data, dict) and "parts" not in data and isinstance(data.get("content"), str):
            return {**data, "parts": [{"type": "text", "text": data["content"]}]}
        return data

    @property
    def text_parts(self) -> list[TextPart]:
        return [part for part in self.parts if isinstance(part, TextPart)]

    @property
    def text(self) -> str:
        """Concatenated text parts in order; empty string when there are none."""
        return " ".join(part.text for part in self.text_parts)


class ChatRequest(BaseModel):
    """Incoming chat conversation."""

    messages: list[ChatMessage] = Field(min_length=1)


class MatchMetadata(BaseModel):
    """Source metadata stored alongside each indexed passage."""

    source_name: str | None = None
    source_url: str | None = None
    source_description: str | None = None
    title: str | None = None
    text: str | None = None
    order: int | float | None = None

    model_config = ConfigDict(extra="allow")


class RetrievalMatch(BaseModel):
    """A retrieved passage with its relevance score and source metadata.

    ``text`` falls back to ``metadata.text`` (then ``metadata.chunk``) when the
    collaborator did not supply it directly, so a match is never dropped for a
    missing top-level text field.
    """

    id: str | None = None
    score: float | None = None
    text: str = ""
    metadata: MatchMetadata = Field(default_factory=MatchMetadata)

    model_config = ConfigDict(extra="allow")

    @model_validator(mode="before")
    @classmethod
    def _fill_text(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if data.get("id") is not None:
            data["id"] = str(data["id"])
        if data.get("metadata") is None:
            data["metadata"] = {}
        metadata = data["metadata"]
        if isinstance(metadata, MatchMetadata):
            metadata = metadata.model_dump()
        if not isinstance(metadata, Mapping):
            raise ValueError("metadata must be a mapping")
        if data.get("text") is None:
            fallback = metadata.get("text") or metadata.get("chunk") or ""
            data["text"] = str(fallback)
        return data


class ModerationVerdict(BaseModel):
    """Outcome of classifying the latest user message."""

    flagged: bool = False
    denial_message: str | None = None
    categories: list[str] = Field(default_factory=list)


class WebSearchResult(BaseModel):
    """A single hit from the fallback web search."""

    title: str = ""
    url: str | None = None
    content: str = Field(default="", max_length=1000)
    published_date: str | None = Field(default=None, alias="publishedDate")

    model_config = ConfigDict(populate_by_name=True)


class ResponsePayload(BaseModel):
    """Synchronous chat response; also the shape of every failure path."""

    matches: list[RetrievalMatch] = Field(default_factory=list)
    assistant_text: str
    used_web_search: bool = False
    error: str | None = None
    web_results: list[WebSearchResult] = Field(default_factory=list)

    def to_body(self) -> dict[str, Any]:
        """Dump to a JSON-ready dict, omitting ``error`` when absent."""
        body = self.model_dump(mode="json", by_alias=True)
        if body["error"] is None:
            del body["error"]
        return body
