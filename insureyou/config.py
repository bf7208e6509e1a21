"""Application configuration loaded from environment variables."""

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable loading and sensible defaults."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    app_name: str = "insureyou-assistant"
    debug: bool = False
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8080
    cors_origins: str = ""

    # One generation mode per deployment
    chat_mode: Literal["sync", "stream"] = "sync"

    # Generation and embeddings (google-genai)
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.5-flash"
    gemini_embedding_model: str = "text-embedding-004"
    generation_temperature: float = 0.2
    generation_max_tokens: int = 800

    # Moderation (OpenAI moderation endpoint)
    openai_api_key: str = ""
    moderation_model: str = "omni-moderation-latest"

    # Vector index (ChromaDB)
    chroma_host: str = ""
    chroma_port: int = 8000
    vector_index_name: str = "my-ai"
    vector_namespace: str = ""
    retrieval_top_k: int = 5

    # Web search fallback: Exa when a key is set, DuckDuckGo otherwise
    exa_api_key: str = ""
    exa_base_url: str = "https://api.exa.ai"
    web_search_results: int = 3

    max_steps: int = 10
    provider_timeout_seconds: float = 30.0

    # Outgoing generation payload guard
    max_chars_per_message_part: int = 15_000
    payload_preview_chars: int = 4_000


settings = Settings()
