"""Tests for the fallback web search."""

import json
from unittest.mock import MagicMock, patch

import httpx

import pytest

from insureyou.services.web_search import (
    DuckDuckGoSearch,
    ExaSearch,
    InMemoryWebSearch,
    exa_search,
    search_web,
)

_DDG_HITS = [
    {"title": "IRDAI term insurance guide", "href": "https://irdai.test/term", "body": "Term..."},
    {"title": "Claim settlement ratios", "href": "https://news.test/csr", "body": "Ratios..."},
]


def _ddgs_patch(hits: list[dict]) -> MagicMock:
    """Return a MagicMock that behaves as the DDGS context manager."""
    instance = MagicMock()
    instance.text.return_value = hits
    cls = MagicMock()
    cls.return_value.__enter__.return_value = instance
    return cls


@pytest.mark.anyio
async def test_search_web_maps_and_caps_results() -> None:
    searcher = InMemoryWebSearch(
        results=[
            {"title": "A", "url": "https://a.test", "content": "x" * 5000, "publishedDate": "2024"},
            {"title": "B", "url": "https://b.test", "content": "b"},
            {"title": "C", "url": "https://c.test", "content": "c"},
            {"title": "D", "url": "https://d.test", "content": "d"},
        ]
    )
    results = await search_web(searcher, "term plan", num_results=3)

    assert searcher.calls == [("term plan", {"numResults": 3})]
    assert [r.title for r in results] == ["A", "B", "C"]
    assert len(results[0].content) == 1000
    assert results[0].published_date == "2024"


@pytest.mark.anyio
async def test_search_web_failure_returns_empty() -> None:
    searcher = InMemoryWebSearch(error=TimeoutError("slow"))
    assert await search_web(searcher, "q") == []


@pytest.mark.anyio
async def test_search_web_garbage_response_returns_empty() -> None:
    async def broken(query: str, options: dict) -> int:
        return 42

    assert await search_web(broken, "q") == []


@pytest.mark.anyio
async def test_search_web_skips_non_dict_hits() -> None:
    searcher = InMemoryWebSearch(results=["junk", {"title": "ok"}])  # type: ignore[list-item]
    results = await search_web(searcher, "q")
    assert [r.title for r in results] == ["ok"]


@pytest.mark.anyio
async def test_duckduckgo_search_maps_hits() -> None:
    mock_cls = _ddgs_patch(_DDG_HITS)
    with patch("ddgs.DDGS", mock_cls):
        results = await DuckDuckGoSearch(timeout_seconds=5)("term insurance", {"numResults": 2})

    instance = mock_cls.return_value.__enter__.return_value
    assert instance.text.call_args.kwargs["max_results"] == 2
    assert results[0] == {
        "title": "IRDAI term insurance guide",
        "url": "https://irdai.test/term",
        "content": "Term...",
        "publishedDate": None,
    }


# ---------------------------------------------------------------------------
# Exa
# ---------------------------------------------------------------------------


def _exa_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(base_url="https://exa.test", transport=httpx.MockTransport(handler))


@pytest.mark.anyio
async def test_exa_search_sends_query_and_maps_results() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(
            200,
            json={
                "results": [
                    {
                        "title": "Term insurance 2025",
                        "url": "https://news.test/term",
                        "text": "t" * 3000,
                        "publishedDate": "2025-01-02",
                    },
                    {"title": None, "url": "https://news.test/untitled"},
                ]
            },
        )

    async with _exa_client(handler) as client:
        hits = await exa_search(client, "term insurance", 2, "exa-secret")

    assert len(captured) == 1
    req = captured[0]
    assert req.url.path == "/search"
    assert req.headers["x-api-key"] == "exa-secret"
    assert json.loads(req.content) == {
        "query": "term insurance",
        "numResults": 2,
        "contents": {"text": True},
    }
    assert hits[0]["content"] == "t" * 1000
    assert hits[0]["publishedDate"] == "2025-01-02"
    assert hits[1] == {
        "title": "",
        "url": "https://news.test/untitled",
        "content": "",
        "publishedDate": None,
    }


@pytest.mark.anyio
async def test_exa_search_raises_on_server_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="Internal Server Error")

    async with _exa_client(handler) as client:
        with pytest.raises(httpx.HTTPStatusError):
            await exa_search(client, "q", 3, "key")


@pytest.mark.anyio
async def test_exa_failure_is_absorbed_by_search_web() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": "bad key"})

    searcher = ExaSearch("bad", client=_exa_client(handler))
    assert await search_web(searcher, "q") == []
    await searcher.aclose()


@pytest.mark.anyio
async def test_exa_searcher_reads_num_results() -> None:
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"results": []})

    searcher = ExaSearch("key", client=_exa_client(handler))
    assert await searcher("q", {"numResults": 5}) == []
    assert bodies[0]["numResults"] == 5
    await searcher.aclose()
