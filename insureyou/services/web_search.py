"""Fallback web search used when the document index has no matches.

Both production searchers are function-shaped collaborators called as
``searcher(query, {"numResults": n})``.  ``ExaSearch`` talks to the Exa REST
API over a shared httpx client.  ``DuckDuckGoSearch`` needs no key; the
``ddgs`` client is synchronous, so each search runs in a worker thread under
a timeout.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from insureyou.schemas.chat import WebSearchResult
from insureyou.services.invocable import Invocable, as_invocable

logger = structlog.get_logger()

DEFAULT_NUM_RESULTS = 3
MAX_CONTENT_CHARS = 1000
EXA_SEARCH_PATH = "/search"


async def exa_search(
    client: httpx.AsyncClient,
    query: str,
    num_results: int,
    api_key: str,
) -> list[dict]:
    """Run an Exa search with page text included.

    Returns hits in the ``{title, url, content, publishedDate}`` shape.

    Raises:
        httpx.HTTPStatusError: On non-2xx responses.
    """
    resp = await client.post(
        EXA_SEARCH_PATH,
        json={"query": query, "numResults": num_results, "contents": {"text": True}},
        headers={"x-api-key": api_key, "Accept": "application/json"},
    )
    resp.raise_for_status()
    return [
        {
            "title": hit.get("title") or "",
            "url": hit.get("url"),
            "content": (hit.get("text") or "")[:MAX_CONTENT_CHARS],
            "publishedDate": hit.get("publishedDate"),
        }
        for hit in resp.json().get("results") or []
    ]


class ExaSearch:
    """Production web search backed by the Exa search API."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.exa.ai",
        timeout_seconds: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout_seconds)

    async def __call__(self, query: str, options: dict[str, Any] | None = None) -> list[dict]:
        num_results = int((options or {}).get("numResults") or DEFAULT_NUM_RESULTS)
        return await exa_search(self._client, query, num_results, self._api_key)

    async def aclose(self) -> None:
        await self._client.aclose()


class DuckDuckGoSearch:
    """Production web search backed by ``ddgs.DDGS().text``."""

    def __init__(self, timeout_seconds: float = 30.0, region: str = "wt-wt") -> None:
        self._timeout = timeout_seconds
        self._region = region

    def _search(self, query: str, max_results: int) -> list[dict]:
        from ddgs import DDGS

        with DDGS(timeout=int(self._timeout)) as ddgs:
            return [
                {
                    "title": hit.get("title", ""),
                    "url": hit.get("href"),
                    "content": hit.get("body", ""),
                    "publishedDate": hit.get("date"),
                }
                for hit in ddgs.text(query, region=self._region, max_results=max_results)
            ]

    async def __call__(self, query: str, options: dict[str, Any] | None = None) -> list[dict]:
        num_results = int((options or {}).get("numResults") or DEFAULT_NUM_RESULTS)
        return await asyncio.wait_for(
            asyncio.to_thread(self._search, query, num_results),
            timeout=self._timeout,
        )


class InMemoryWebSearch:
    """Test double that records queries and returns canned hits."""

    def __init__(self, results: list[dict] | None = None, error: Exception | None = None) -> None:
        self.results: list[dict] = results or []
        self.error = error
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def __call__(self, query: str, options: dict[str, Any] | None = None) -> list[dict]:
        self.calls.append((query, dict(options or {})))
        if self.error is not None:
            raise self.error
        return self.results


def _to_result(hit: Any) -> WebSearchResult | None:
    if isinstance(hit, WebSearchResult):
        return hit
    if not isinstance(hit, dict):
        return None
    content = str(hit.get("content") or hit.get("text") or "")[:MAX_CONTENT_CHARS]
    try:
        return WebSearchResult.model_validate(
            {
                "title": hit.get("title") or "",
                "url": hit.get("url"),
                "content": content,
                "publishedDate": hit.get("publishedDate") or hit.get("published_date"),
            }
        )
    except ValidationError:
        logger.warning("web_result_discarded", title=hit.get("title"))
        return None


async def search_web(
    searcher: Invocable | Any,
    query: str,
    num_results: int = DEFAULT_NUM_RESULTS,
) -> list[WebSearchResult]:
    """Run a web search and return at most *num_results* cleaned hits.

    Never raises: any failure is logged and yields ``[]``.
    """
    try:
        raw = await as_invocable(searcher).invoke(query, {"numResults": num_results})
        results = [r for r in (_to_result(hit) for hit in raw or []) if r is not None]
    except Exception:
        logger.exception("web_search_failed")
        return []

    return results[:num_results]
