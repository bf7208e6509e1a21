"""Tests for provider registration and the orchestrator dependency."""

from unittest.mock import patch

import pytest

from insureyou.config import Settings
from insureyou.dependencies import (
    GENERATION,
    MODERATION,
    RETRIEVAL,
    WEB_SEARCH,
    get_llm_client,
    get_moderator,
    get_orchestrator,
    get_retriever,
    get_web_searcher,
    init_production_deps,
    providers,
)


@pytest.fixture(autouse=True)
def _empty_registry():
    providers.clear()
    yield
    providers.clear()


def test_nothing_registered_by_default():
    assert get_moderator() is None
    assert get_retriever() is None
    assert get_web_searcher() is None
    assert get_llm_client() is None


def test_init_production_deps_registers_configured_providers():
    """Every provider with credentials gets a lazily built client."""
    app_settings = Settings(
        gemini_api_key="gem-key",
        openai_api_key="oa-key",
        chroma_host="chroma.internal",
        provider_timeout_seconds=12.0,
    )
    with (
        patch("insureyou.services.gemini_client.GeminiClient") as mock_gc,
        patch("insureyou.services.moderation.OpenAIModerator") as mock_mod,
        patch("insureyou.services.retrieval.VectorIndexSearch") as mock_vis,
        patch("insureyou.services.web_search.DuckDuckGoSearch") as mock_ddg,
    ):
        init_production_deps(app_settings)

        # Nothing is constructed until first use.
        mock_gc.assert_not_called()
        mock_mod.assert_not_called()

        assert get_llm_client() is mock_gc.return_value
        assert get_moderator() is mock_mod.return_value
        assert get_retriever() is mock_vis.return_value
        assert get_web_searcher() is mock_ddg.return_value

        mock_gc.assert_called_once_with(
            "gem-key",
            app_settings.gemini_model,
            temperature=app_settings.generation_temperature,
            max_output_tokens=app_settings.generation_max_tokens,
            timeout_seconds=12.0,
        )
        mock_mod.assert_called_once_with("oa-key", app_settings.moderation_model, 12.0)
        mock_vis.assert_called_once_with(
            "gem-key",
            app_settings.gemini_embedding_model,
            "chroma.internal",
            app_settings.chroma_port,
            app_settings.vector_index_name,
            timeout_seconds=12.0,
        )
        mock_ddg.assert_called_once_with(timeout_seconds=12.0)

        # Clients are reused across requests.
        assert get_llm_client() is mock_gc.return_value
        mock_gc.assert_called_once()


def test_missing_credentials_leave_providers_unconfigured():
    app_settings = Settings(gemini_api_key="", openai_api_key="", chroma_host="")

    init_production_deps(app_settings)

    assert providers.is_configured(WEB_SEARCH)
    assert not providers.is_configured(MODERATION)
    assert not providers.is_configured(GENERATION)
    assert not providers.is_configured(RETRIEVAL)


def test_retrieval_requires_vector_host():
    app_settings = Settings(gemini_api_key="gem-key", chroma_host="")
    init_production_deps(app_settings)
    assert providers.is_configured(GENERATION)
    assert not providers.is_configured(RETRIEVAL)


def test_get_orchestrator_wires_collaborators():
    moderator, retriever, searcher, llm = object(), object(), object(), object()

    orchestrator = get_orchestrator(moderator, retriever, searcher, llm, "stream")

    assert orchestrator.moderator is moderator
    assert orchestrator.retriever is retriever
    assert orchestrator.web_searcher is searcher
    assert orchestrator.llm_client is llm
    assert orchestrator.mode == "stream"


def test_get_orchestrator_unknown_mode_is_sync():
    orchestrator = get_orchestrator(None, None, None, None, "batch")
    assert orchestrator.mode == "sync"


def test_exa_key_selects_exa_search():
    app_settings = Settings(exa_api_key="exa-key", provider_timeout_seconds=5.0)
    with patch("insureyou.services.web_search.ExaSearch") as mock_exa:
        init_production_deps(app_settings)
        assert get_web_searcher() is mock_exa.return_value

    mock_exa.assert_called_once_with("exa-key", app_settings.exa_base_url, timeout_seconds=5.0)


def test_failed_build_is_unconfigured_and_retried():
    attempts: list[int] = []

    def flaky_factory():
        attempts.append(1)
        if len(attempts) == 1:
            raise ConnectionError("chroma unreachable")
        return "index-client"

    providers.register(RETRIEVAL, flaky_factory)

    assert get_retriever() is None
    assert get_retriever() == "index-client"
    assert len(attempts) == 2
