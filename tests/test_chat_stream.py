"""End-to-end tests for POST /api/chat in streaming mode."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

from insureyou.services.orchestrator import VECTOR_TOOL_NAME

if TYPE_CHECKING:
    from httpx import AsyncClient, Response

    from insureyou.services.gemini_client import InMemoryLLMClient
    from insureyou.services.retrieval import InMemoryRetriever


@pytest.fixture
def chat_mode() -> str:
    return "stream"


def _body(text: str = "What does a term plan cover?") -> dict:
    return {"messages": [{"role": "user", "parts": [{"type": "text", "text": text}]}]}


def _frames(resp: Response) -> list[str]:
    return [line[len("data: ") :] for line in resp.text.split("\n\n") if line.startswith("data: ")]


def _events(resp: Response) -> list[dict]:
    return [json.loads(frame) for frame in _frames(resp) if frame != "[DONE]"]


def _text(events: list[dict]) -> str:
    return "".join(e["delta"] for e in events if e["type"] == "text-delta")


@pytest.mark.anyio
async def test_stream_headers_and_terminator(client: AsyncClient):
    resp = await client.post("/api/chat", json=_body())

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")
    assert resp.headers["x-vercel-ai-ui-message-stream"] == "v1"
    frames = _frames(resp)
    assert frames[-1] == "[DONE]"
    events = _events(resp)
    assert events[0]["type"] == "start"
    assert events[-1] == {"type": "finish", "finishReason": "stop"}
    assert _text(events) == "test answer"


@pytest.mark.anyio
async def test_stream_includes_sources_and_tool_events(
    client: AsyncClient,
    mock_retriever: InMemoryRetriever,
    mock_llm_client: InMemoryLLMClient,
):
    mock_retriever.response = [{"id": "a", "metadata": {"source_name": "Policy A"}}]
    mock_llm_client.tool_calls = [(VECTOR_TOOL_NAME, "riders")]

    events = _events(await client.post("/api/chat", json=_body()))

    types = [e["type"] for e in events]
    assert "source" in types
    assert types.index("tool-call-start") < types.index("tool-result") < types.index("text-start")
    tool_end = next(e for e in events if e["type"] == "tool-call-end")
    assert tool_end["toolName"] == VECTOR_TOOL_NAME
    assert tool_end["input"] == {"query": "riders"}


@pytest.mark.anyio
async def test_stream_generation_error_stays_successful(
    client: AsyncClient,
    mock_llm_client: InMemoryLLMClient,
):
    mock_llm_client.error = RuntimeError("stream broke")

    resp = await client.post("/api/chat", json=_body())

    assert resp.status_code == 200
    events = _events(resp)
    assert _text(events) == "Assistant error: stream broke"
    assert events[-1]["type"] == "finish"


@pytest.mark.anyio
async def test_stream_mode_still_validates(client: AsyncClient):
    resp = await client.post("/api/chat", json={"messages": []})
    assert resp.status_code == 400
    assert resp.json() == {"error": "Missing messages"}


def _unreachable_index():
    raise ValueError("Could not connect to a Chroma server")


@pytest.mark.anyio
async def test_stream_survives_retriever_build_failure(client: AsyncClient):
    from insureyou.dependencies import RETRIEVAL, get_retriever, providers
    from insureyou.main import app

    app.dependency_overrides.pop(get_retriever)
    providers.register(RETRIEVAL, _unreachable_index)
    try:
        resp = await client.post("/api/chat", json=_body())
    finally:
        providers.clear()

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")
    events = _events(resp)
    assert _text(events) == "test answer"
    assert events[-1]["type"] == "finish"
