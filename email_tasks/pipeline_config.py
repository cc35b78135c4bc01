"""Pipeline configuration: vocabulary enums and the PipelineConfig dataclass."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from email_tasks.config import Settings, settings


class SearchTarget(str, Enum):
    """Record types that search and embeddings operate on."""

    EMAIL = "email"
    TASK = "task"


class MatchType(str, Enum):
    """How a search result was found."""

    KEYWORD = "keyword"
    SEMANTIC = "semantic"
    BOTH = "keyword+semantic"


class ProviderName(str, Enum):
    """Supported completion/embedding backends."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    PERPLEXITY = "perplexity"
    OLLAMA = "ollama"


class StorageBackend(str, Enum):
    """Where emails, tasks and vectors are persisted."""

    SUPABASE = "supabase"
    MEMORY = "memory"


@dataclass(frozen=True)
class PipelineConfig:
    """Immutable knobs for the extraction and embedding pipeline.

    Defaults mirror the project's behaviour: up to three tasks per email,
    768-wide stored vectors and a single sequential worker.
    """

    vector_dimensions: int = 768
    max_tasks_per_email: int = 3
    body_char_limit: int = 8000
    max_tokens: int = 2048
    temperature: float = 0.2
    workers: int = 1
    lease_seconds: int = 600

    @classmethod
    def from_settings(cls, cfg: Settings | None = None) -> PipelineConfig:
        cfg = cfg or settings
        return cls(
            vector_dimensions=cfg.embedding_dimensions,
            max_tasks_per_email=cfg.extraction_max_tasks,
            body_char_limit=cfg.extraction_body_chars,
            max_tokens=cfg.extraction_max_tokens,
            temperature=cfg.extraction_temperature,
            workers=max(1, cfg.batch_workers),
            lease_seconds=cfg.claim_lease_seconds,
        )
