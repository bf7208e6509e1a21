"""Shared test fixtures for in-memory collaborators and the FastAPI test client."""

from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from insureyou.dependencies import (
    get_chat_mode,
    get_llm_client,
    get_moderator,
    get_retriever,
    get_web_searcher,
)
from insureyou.main import app
from insureyou.services.gemini_client import InMemoryLLMClient
from insureyou.services.moderation import InMemoryModerator
from insureyou.services.retrieval import InMemoryRetriever
from insureyou.services.web_search import InMemoryWebSearch


@pytest.fixture
def anyio_backend() -> str:
    """Run anyio-marked tests on the asyncio backend only."""
    return "asyncio"


@pytest.fixture
def mock_moderator() -> InMemoryModerator:
    """Create a moderator that flags nothing unless configured."""
    return InMemoryModerator()


@pytest.fixture
def mock_retriever() -> InMemoryRetriever:
    """Create a retriever returning no matches unless configured."""
    return InMemoryRetriever()


@pytest.fixture
def mock_web_search() -> InMemoryWebSearch:
    """Create a web search double returning no hits unless configured."""
    return InMemoryWebSearch()


@pytest.fixture
def mock_llm_client() -> InMemoryLLMClient:
    """Create a fresh in-memory LLM client for test inspection."""
    return InMemoryLLMClient()


@pytest.fixture
def chat_mode() -> str:
    """Generation mode for the app under test; override per module or test."""
    return "sync"


@pytest.fixture
async def client(
    mock_moderator: InMemoryModerator,
    mock_retriever: InMemoryRetriever,
    mock_web_search: InMemoryWebSearch,
    mock_llm_client: InMemoryLLMClient,
    chat_mode: str,
) -> AsyncGenerator[AsyncClient, None]:
    """Yield an httpx AsyncClient with every collaborator overridden.

    The lifespan is not run, so no real provider is ever registered.
    """
    app.dependency_overrides[get_moderator] = lambda: mock_moderator
    app.dependency_overrides[get_retriever] = lambda: mock_retriever
    app.dependency_overrides[get_web_searcher] = lambda: mock_web_search
    app.dependency_overrides[get_llm_client] = lambda: mock_llm_client
    app.dependency_overrides[get_chat_mode] = lambda: chat_mode
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
