"""UI message stream: typed events, an ordering-safe writer and SSE framing.

The writer is the only producer of events for one response.  It guarantees:

* ``start`` is the first event and ``finish`` the last, exactly once;
* text and reasoning segments are emitted as ``*-start``, ``*-delta``...,
  ``*-end`` and never interleave (opening a segment closes the previous one);
* nothing is emitted after ``finish`` or after ``close()`` (client gone).
"""

from __future__ import annotations

import json
import uuid
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from insureyou.schemas.chat import RetrievalMatch, WebSearchResult
from insureyou.services.gemini_client import GenerationChunk

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
    "x-vercel-ai-ui-message-stream": "v1",
}
DONE_FRAME = "data: [DONE]\n\n"

SegmentKind = Literal["text", "reasoning"]


class StreamEvent(BaseModel):
    """One event of the UI message stream, serialized in camelCase."""

    type: str
    id: str | None = None
    delta: str | None = None
    message_id: str | None = Field(default=None, alias="messageId")
    tool_call_id: str | None = Field(default=None, alias="toolCallId")
    tool_name: str | None = Field(default=None, alias="toolName")
    input: Any = None
    output: Any = None
    source: dict[str, Any] | None = None
    finish_reason: str | None = Field(default=None, alias="finishReason")

    model_config = ConfigDict(populate_by_name=True)

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def encode_sse(event: StreamEvent) -> str:
    """Frame *event* as a server-sent-events ``data:`` line."""
    return f"data: {json.dumps(event.to_json(), ensure_ascii=False)}\n\n"


class StreamWriter:
    """Single-response event producer enforcing the stream ordering rules."""

    def __init__(self, message_id: str | None = None) -> None:
        self.message_id = message_id or f"msg_{uuid.uuid4().hex}"
        self.started = False
        self.finished = False
        self.closed = False
        self._segment: tuple[SegmentKind, str] | None = None
        self._counter = 0

    @property
    def active(self) -> bool:
        return not (self.finished or self.closed)

    def _begin(self) -> list[StreamEvent]:
        if self.started:
            return []
        self.started = True
        return [StreamEvent(type="start", message_id=self.message_id)]

    def _end_segment(self) -> list[StreamEvent]:
        if self._segment is None:
            return []
        kind, segment_id = self._segment
        self._segment = None
        return [StreamEvent(type=f"{kind}-end", id=segment_id)]

    def _delta(self, kind: SegmentKind, delta: str) -> list[StreamEvent]:
        if not self.active or not delta:
            return []
        events = self._begin()
        if self._segment is not None and self._segment[0] != kind:
            events += self._end_segment()
        if self._segment is None:
            self._counter += 1
            self._segment = (kind, f"{kind}-{self._counter}")
            events.append(StreamEvent(type=f"{kind}-start", id=self._segment[1]))
        events.append(StreamEvent(type=f"{kind}-delta", id=self._segment[1], delta=delta))
        return events

    def text(self, delta: str) -> list[StreamEvent]:
        return self._delta("text", delta)

    def reasoning(self, delta: str) -> list[StreamEvent]:
        return self._delta("reasoning", delta)

    def tool_call(self, call_id: str, name: str, args: Any) -> list[StreamEvent]:
        if not self.active:
            return []
        return [
            *self._begin(),
            *self._end_segment(),
            StreamEvent(type="tool-call-start", tool_call_id=call_id, tool_name=name),
            StreamEvent(type="tool-call-end", tool_call_id=call_id, tool_name=name, input=args),
        ]

    def tool_result(self, call_id: str, name: str, output: Any) -> list[StreamEvent]:
        if not self.active:
            return []
        return [
            *self._begin(),
            *self._end_segment(),
            StreamEvent(type="tool-result", tool_call_id=call_id, tool_name=name, output=output),
        ]

    def source(self, item: RetrievalMatch | WebSearchResult) -> list[StreamEvent]:
        """Announce a supporting source (index match or web hit)."""
        if not self.active:
            return []
        return [
            *self._begin(),
            *self._end_segment(),
            StreamEvent(type="source", source=item.model_dump(mode="json", by_alias=True)),
        ]

    def handle(self, chunk: GenerationChunk) -> list[StreamEvent]:
        """Translate one generation chunk into stream events."""
        if chunk.kind == "text":
            return self.text(chunk.delta)
        if chunk.kind == "reasoning":
            return self.reasoning(chunk.delta)
        if chunk.kind == "tool-call":
            return self.tool_call(chunk.tool_call_id or "", chunk.tool_name or "", chunk.payload)
        return self.tool_result(chunk.tool_call_id or "", chunk.tool_name or "", chunk.payload)

    def finish(self, reason: str = "stop") -> list[StreamEvent]:
        """Close any open segment and emit the single terminal event."""
        if not self.active:
            return []
        events = [*self._begin(), *self._end_segment()]
        events.append(StreamEvent(type="finish", finish_reason=reason))
        self.finished = True
        return events

    def close(self) -> None:
        """Stop producing events, e.g. after the client disconnected."""
        self.closed = True
