from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings validated via Pydantic.

    Values are loaded from environment variables and/or a .env file.
    """

    # API Keys (system defaults; per-user keys live in the ai_settings table)
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    perplexity_api_key: str = ""

    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""

    # Storage backend: "supabase" or "memory"
    storage_backend: str = "supabase"

    # App config
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"
    default_user_id: int = 1

    # Completion provider defaults
    completion_provider: str = "openai"
    llm_model: str = "gpt-4o"
    anthropic_model: str = "claude-sonnet-4-20250514"
    perplexity_model: str = "sonar"
    ollama_endpoint: str = "http://localhost:11434"
    ollama_model: str = "llama3"
    provider_timeout_seconds: float = 60.0
    provider_rate_limit_per_sec: float = 2.0
    provider_rate_limit_capacity: float = 5.0

    # Embeddings
    embedding_provider: str = "openai"  # "openai", "ollama" or "none"
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 768
    embedding_text_chars: int = 12000
    vector_store_retry_seconds: float = 30.0

    # Task extraction
    extraction_max_tasks: int = 3
    extraction_body_chars: int = 8000
    extraction_max_tokens: int = 2048
    extraction_temperature: float = 0.2

    # Batch orchestration
    batch_workers: int = 1
    claim_lease_seconds: int = 600

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance.

    Gracefully handles missing .env files (e.g. in CI/testing) by falling
    back to environment variables and defaults.
    """
    try:
        return Settings()
    except Exception:
        # If .env is missing or unreadable, build settings from env vars only.
        return Settings(_env_file=None)  # type: ignore[call-arg]


settings = get_settings()
