"""Retrieval service: semantic top-K search over the policy document index.

Production code uses ``VectorIndexSearch``: the query is embedded with the
Gemini embedding model (``google-genai``) and matched against a ChromaDB
collection.  It exposes the tool-style ``execute(options)`` shape.  Tests use
``InMemoryRetriever`` which returns a canned raw response of any shape.

``retrieve`` is the only entry point the orchestrator uses: it dispatches
through ``Invocable``, normalizes whatever comes back, and degrades every
failure to an empty match list.
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog

from insureyou.schemas.chat import RetrievalMatch
from insureyou.services.invocable import Invocable, as_invocable
from insureyou.services.normalizer import normalize

logger = structlog.get_logger()

DEFAULT_TOP_K = 5


class VectorIndexSearch:
    """Embedding + vector index collaborator.

    Uses lazy imports so the module loads without ``google-genai`` or
    ``chromadb`` installed.  The synchronous Chroma HTTP client is wrapped in
    ``asyncio.to_thread`` so queries never block the event loop.
    """

    def __init__(
        self,
        api_key: str,
        embedding_model: str,
        chroma_host: str,
        chroma_port: int,
        collection: str,
        timeout_seconds: float = 30.0,
    ) -> None:
        import chromadb
        from google import genai
        from google.genai import types

        self._genai = genai.Client(
            api_key=api_key,
            http_options=types.HttpOptions(timeout=int(timeout_seconds * 1000)),
        )
        self._embedding_model = embedding_model
        self._chroma = chromadb.HttpClient(host=chroma_host, port=chroma_port)
        self._collection_name = collection
        self._timeout = timeout_seconds

    async def embed(self, query: str) -> list[float]:
        """Embed *query* as a retrieval query vector."""
        from google.genai import types

        response = await self._genai.aio.models.embed_content(
            model=self._embedding_model,
            contents=query,
            config=types.EmbedContentConfig(task_type="RETRIEVAL_QUERY"),
        )
        return list(response.embeddings[0].values)

    def _query(self, vector: list[float], k: int, namespace: str | None) -> dict:
        collection = self._chroma.get_collection(self._collection_name)
        return collection.query(
            query_embeddings=[vector],
            n_results=k,
            where={"namespace": namespace} if namespace else None,
            include=["metadatas", "documents", "distances"],
        )

    async def execute(self, options: dict[str, Any]) -> dict[str, list[dict]]:
        """Run a top-K query described by ``{query, k?, top_k?, namespace?}``.

        Returns ``{"matches": [...]}`` with ``{id, score, metadata, text}``
        records, where ``score = 1 - distance`` so higher means more relevant.
        """
        query = options["query"]
        k = int(options.get("k") or options.get("top_k") or DEFAULT_TOP_K)
        namespace = options.get("namespace") or None

        vector = await self.embed(query)
        raw = await asyncio.wait_for(
            asyncio.to_thread(self._query, vector, k, namespace),
            timeout=self._timeout,
        )
        return {"matches": _flatten_query_result(raw)}


def _flatten_query_result(raw: dict) -> list[dict]:
    """Turn Chroma's column-per-query layout into one record per hit."""
    ids = (raw.get("ids") or [[]])[0]
    distances = (raw.get("distances") or [[]])[0] or [None] * len(ids)
    metadatas = (raw.get("metadatas") or [[]])[0] or [None] * len(ids)
    documents = (raw.get("documents") or [[]])[0] or [None] * len(ids)

    matches: list[dict] = []
    for match_id, distance, metadata, document in zip(
        ids, distances, metadatas, documents, strict=False
    ):
        metadata = dict(metadata or {})
        matches.append(
            {
                "id": match_id,
                "score": None if distance is None else 1.0 - float(distance),
                "metadata": metadata,
                "text": str(metadata.get("text") or metadata.get("chunk") or document or ""),
            }
        )
    return matches


class InMemoryRetriever:
    """Test double that records queries and returns a canned raw response."""

    def __init__(self, response: Any = None, error: Exception | None = None) -> None:
        self.response: Any = [] if response is None else response
        self.error = error
        self.calls: list[dict[str, Any]] = []

    async def execute(self, options: dict[str, Any]) -> Any:
        """Append the options and return (or raise) the configured outcome."""
        self.calls.append(dict(options))
        if self.error is not None:
            raise self.error
        return self.response


async def retrieve(
    retriever: Invocable | Any,
    query: str,
    k: int = DEFAULT_TOP_K,
    namespace: str | None = None,
) -> list[RetrievalMatch]:
    """Query *retriever* and return normalized matches in collaborator order.

    Any failure, including an unsupported collaborator or a malformed
    response, is logged and converted to ``[]``.
    """
    options: dict[str, Any] = {"k": max(1, k)}
    if namespace:
        options["namespace"] = namespace
    try:
        raw = await as_invocable(retriever).invoke(query, options)
        return normalize(raw)
    except Exception:
        logger.exception("retrieval_failed", k=options["k"], namespace=namespace)
        return []
