"""Build completion/embedding providers from settings and per-user AI settings."""

from __future__ import annotations

import logging
from typing import Any

from email_tasks.config import Settings, settings
from email_tasks.errors import ConfigurationError
from email_tasks.pipeline_config import ProviderName
from email_tasks.providers.anthropic_provider import AnthropicProvider
from email_tasks.providers.base import CompletionProvider
from email_tasks.providers.openai_provider import OpenAIProvider
from email_tasks.providers.rate_limit import TokenBucket, get_rate_limiter
from email_tasks.storage.repository import Repository

logger = logging.getLogger(__name__)

PERPLEXITY_BASE_URL = "https://api.perplexity.ai"


def _limiter(name: str, cfg: Settings) -> TokenBucket:
    return get_rate_limiter(name, cfg.provider_rate_limit_per_sec, cfg.provider_rate_limit_capacity)


def _ollama_base_url(endpoint: str) -> str:
    endpoint = endpoint.rstrip("/")
    return endpoint if endpoint.endswith("/v1") else f"{endpoint}/v1"


def build_completion_provider(
    ai_settings: dict[str, Any] | None = None,
    cfg: Settings | None = None,
) -> CompletionProvider:
    """Create the provider selected in ``ai_settings`` (or the system default).

    ``ai_settings`` is a row of the external ``ai_settings`` table:
    ``selected_provider``, ``selected_model`` and per-provider API keys.
    Keys missing from the row fall back to the environment.
    """
    cfg = cfg or settings
    row = ai_settings or {}
    selected = row.get("selected_provider") or cfg.completion_provider
    try:
        provider = ProviderName(selected)
    except ValueError as exc:
        raise ConfigurationError(f"Unknown completion provider: {selected!r}") from exc
    model = row.get("selected_model")

    if provider is ProviderName.ANTHROPIC:
        api_key = row.get("anthropic_api_key") or cfg.anthropic_api_key
        if not api_key:
            raise ConfigurationError("Anthropic selected but no API key configured")
        return AnthropicProvider(
            api_key=api_key,
            model=model or cfg.anthropic_model,
            timeout=cfg.provider_timeout_seconds,
            limiter=_limiter(provider.value, cfg),
        )

    if provider is ProviderName.PERPLEXITY:
        api_key = row.get("perplexity_api_key") or cfg.perplexity_api_key
        if not api_key:
            raise ConfigurationError("Perplexity selected but no API key configured")
        return OpenAIProvider(
            api_key=api_key,
            model=model or cfg.perplexity_model,
            embedding_model=None,
            base_url=PERPLEXITY_BASE_URL,
            name=provider.value,
            timeout=cfg.provider_timeout_seconds,
            limiter=_limiter(provider.value, cfg),
        )

    if provider is ProviderName.OLLAMA:
        endpoint = row.get("ollama_endpoint") or cfg.ollama_endpoint
        return OpenAIProvider(
            api_key="ollama",  # Ollama ignores the key
            model=model or cfg.ollama_model,
            embedding_model=None,
            base_url=_ollama_base_url(endpoint),
            name=provider.value,
            timeout=cfg.provider_timeout_seconds,
            limiter=_limiter(provider.value, cfg),
        )

    api_key = row.get("openai_api_key") or cfg.openai_api_key
    if not api_key:
        raise ConfigurationError("OpenAI selected but no API key configured")
    return OpenAIProvider(
        api_key=api_key,
        model=model or cfg.llm_model,
        embedding_model=cfg.embedding_model,
        embedding_dimensions=cfg.embedding_dimensions,
        timeout=cfg.provider_timeout_seconds,
        limiter=_limiter(provider.value, cfg),
    )


def build_embedding_provider(cfg: Settings | None = None) -> CompletionProvider | None:
    """Return the configured embedding provider, or ``None`` if semantic search is off."""
    cfg = cfg or settings
    choice = cfg.embedding_provider.lower()
    if choice == "none":
        return None
    if choice == ProviderName.OLLAMA.value:
        return OpenAIProvider(
            api_key="ollama",
            model=cfg.ollama_model,
            embedding_model=cfg.embedding_model,
            base_url=_ollama_base_url(cfg.ollama_endpoint),
            name=ProviderName.OLLAMA.value,
            timeout=cfg.provider_timeout_seconds,
            limiter=_limiter(ProviderName.OLLAMA.value, cfg),
        )
    if not cfg.openai_api_key:
        logger.warning("No OPENAI_API_KEY set; semantic search is disabled")
        return None
    return OpenAIProvider(
        api_key=cfg.openai_api_key,
        model=cfg.llm_model,
        embedding_model=cfg.embedding_model,
        embedding_dimensions=cfg.embedding_dimensions,
        timeout=cfg.provider_timeout_seconds,
        limiter=_limiter(ProviderName.OPENAI.value, cfg),
    )


def provider_for_user(
    user_id: int,
    repository: Repository,
    cfg: Settings | None = None,
) -> CompletionProvider:
    """Resolve the user's configured provider, falling back to system defaults."""
    try:
        row = repository.get_ai_settings(user_id)
    except Exception:
        logger.exception("Could not read AI settings for user %s; using system defaults", user_id)
        row = None
    if row is None:
        logger.info("No AI settings for user %s, using system defaults", user_id)
    return build_completion_provider(row, cfg)
