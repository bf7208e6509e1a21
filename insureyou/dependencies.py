"""Centralized FastAPI dependencies for use with Depends().

Collaborators resolve through a process-wide ``ProviderRegistry``: nothing is
registered by default (development and tests run without any provider), and
``init_production_deps()`` registers factories for every provider whose
credentials are configured.  Clients are built on first use.
"""

from __future__ import annotations

from typing import Annotated, Any

import structlog
from fastapi import Depends

from insureyou.config import Settings, settings
from insureyou.services.gemini_client import LLMClient
from insureyou.services.moderation import Moderator
from insureyou.services.orchestrator import ChatOrchestrator
from insureyou.services.providers import ProviderRegistry

MODERATION = "moderation"
RETRIEVAL = "retrieval"
WEB_SEARCH = "web_search"
GENERATION = "generation"

logger = structlog.get_logger()

providers = ProviderRegistry()


def init_production_deps(app_settings: Settings) -> None:
    """Register factories for the providers *app_settings* has credentials for.

    Uses lazy imports so the module loads without provider SDKs installed.
    """
    from insureyou.services.gemini_client import GeminiClient
    from insureyou.services.moderation import OpenAIModerator
    from insureyou.services.retrieval import VectorIndexSearch
    from insureyou.services.web_search import DuckDuckGoSearch, ExaSearch

    timeout = app_settings.provider_timeout_seconds

    if app_settings.exa_api_key:
        providers.register(
            WEB_SEARCH,
            lambda: ExaSearch(
                app_settings.exa_api_key, app_settings.exa_base_url, timeout_seconds=timeout
            ),
        )
    else:
        providers.register(WEB_SEARCH, lambda: DuckDuckGoSearch(timeout_seconds=timeout))

    if app_settings.openai_api_key:
        providers.register(
            MODERATION,
            lambda: OpenAIModerator(
                app_settings.openai_api_key, app_settings.moderation_model, timeout
            ),
        )

    if app_settings.gemini_api_key:
        providers.register(
            GENERATION,
            lambda: GeminiClient(
                app_settings.gemini_api_key,
                app_settings.gemini_model,
                temperature=app_settings.generation_temperature,
                max_output_tokens=app_settings.generation_max_tokens,
                timeout_seconds=timeout,
            ),
        )
        if app_settings.chroma_host:
            providers.register(
                RETRIEVAL,
                lambda: VectorIndexSearch(
                    app_settings.gemini_api_key,
                    app_settings.gemini_embedding_model,
                    app_settings.chroma_host,
                    app_settings.chroma_port,
                    app_settings.vector_index_name,
                    timeout_seconds=timeout,
                ),
            )


def _provider(name: str) -> Any:
    """Return the client for *name*, or ``None`` if it is unconfigured or fails to build.

    A failed build is not cached, so the next request tries again.
    """
    try:
        return providers.get(name)
    except Exception:
        logger.exception("provider_init_failed", provider=name)
        return None


def get_moderator() -> Moderator | None:
    """Return the moderation classifier, or ``None`` when unconfigured."""
    return _provider(MODERATION)


def get_retriever() -> Any:
    """Return the vector index collaborator, or ``None`` when unconfigured."""
    return _provider(RETRIEVAL)


def get_web_searcher() -> Any:
    """Return the fallback web search collaborator, or ``None``."""
    return _provider(WEB_SEARCH)


def get_llm_client() -> LLMClient | None:
    """Return the generation client, or ``None`` when unconfigured."""
    return _provider(GENERATION)


def get_chat_mode() -> str:
    """Return this deployment's generation mode (``sync`` or ``stream``)."""
    return settings.chat_mode


def get_orchestrator(
    moderator: Annotated[Any, Depends(get_moderator)],
    retriever: Annotated[Any, Depends(get_retriever)],
    web_searcher: Annotated[Any, Depends(get_web_searcher)],
    llm_client: Annotated[Any, Depends(get_llm_client)],
    mode: Annotated[str, Depends(get_chat_mode)],
) -> ChatOrchestrator:
    """Build the per-request orchestrator around the shared provider clients."""
    return ChatOrchestrator(
        moderator=moderator,
        retriever=retriever,
        web_searcher=web_searcher,
        llm_client=llm_client,
        mode="stream" if mode == "stream" else "sync",
        top_k=settings.retrieval_top_k,
        namespace=settings.vector_namespace or None,
        web_results=settings.web_search_results,
        max_steps=settings.max_steps,
        max_chars_per_part=settings.max_chars_per_message_part,
        preview_chars=settings.payload_preview_chars,
    )


__all__ = [
    "get_chat_mode",
    "get_llm_client",
    "get_moderator",
    "get_orchestrator",
    "get_retriever",
    "get_web_searcher",
    "init_production_deps",
    "providers",
]
