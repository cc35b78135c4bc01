"""Wiring of repositories, vector stores, providers and pipeline components."""

from __future__ import annotations

import logging
from functools import lru_cache

from email_tasks.config import settings
from email_tasks.embeddings.service import EmbeddingService
from email_tasks.embeddings.vector_store import InMemoryVectorStore, SupabaseVectorStore, VectorStore
from email_tasks.errors import ConfigurationError
from email_tasks.extraction.batch import BatchOrchestrator
from email_tasks.extraction.extractor import TaskExtractor
from email_tasks.pipeline_config import PipelineConfig, SearchTarget, StorageBackend
from email_tasks.providers.base import CompletionProvider
from email_tasks.providers.factory import build_embedding_provider, provider_for_user
from email_tasks.retrieval.search import HybridRetriever
from email_tasks.storage.memory_store import MemoryRepository
from email_tasks.storage.repository import Repository
from email_tasks.storage.supabase_store import SupabaseRepository

logger = logging.getLogger(__name__)


def storage_backend() -> StorageBackend:
    try:
        return StorageBackend(settings.storage_backend)
    except ValueError as exc:
        raise ConfigurationError(f"Unknown storage backend: {settings.storage_backend!r}") from exc


@lru_cache(maxsize=1)
def get_repository() -> Repository:
    if storage_backend() is StorageBackend.MEMORY:
        logger.info("Using in-memory storage; data is lost on restart")
        return MemoryRepository()
    return SupabaseRepository()


@lru_cache(maxsize=2)
def get_vector_store(target: SearchTarget) -> VectorStore:
    repository = get_repository()
    width = PipelineConfig.from_settings().vector_dimensions
    if isinstance(repository, MemoryRepository):
        return InMemoryVectorStore(
            repository,
            target,
            dimensions=width,
            retry_seconds=settings.vector_store_retry_seconds,
        )
    assert isinstance(repository, SupabaseRepository)
    return SupabaseVectorStore(
        repository.client,
        target,
        dimensions=width,
        retry_seconds=settings.vector_store_retry_seconds,
    )


def get_vector_stores() -> dict[SearchTarget, VectorStore]:
    return {target: get_vector_store(target) for target in SearchTarget}


@lru_cache(maxsize=1)
def get_embedding_service() -> EmbeddingService | None:
    """``None`` when no embedding provider is configured (semantic search off)."""
    provider = build_embedding_provider()
    if provider is None:
        return None
    return EmbeddingService(
        provider,
        dimensions=PipelineConfig.from_settings().vector_dimensions,
        text_limit=settings.embedding_text_chars,
    )


def get_completion_provider(user_id: int | None = None) -> CompletionProvider:
    return provider_for_user(user_id or settings.default_user_id, get_repository())


def build_extractor(user_id: int | None = None) -> TaskExtractor:
    user_id = user_id or settings.default_user_id
    return TaskExtractor(
        provider=provider_for_user(user_id, get_repository()),
        repository=get_repository(),
        user_id=user_id,
        config=PipelineConfig.from_settings(),
    )


def build_orchestrator(user_id: int | None = None) -> BatchOrchestrator:
    config = PipelineConfig.from_settings()
    return BatchOrchestrator(
        repository=get_repository(),
        extractor=build_extractor(user_id),
        embedder=get_embedding_service(),
        vector_stores=get_vector_stores(),
        workers=config.workers,
        lease_seconds=config.lease_seconds,
    )


def build_retriever() -> HybridRetriever:
    return HybridRetriever(
        repository=get_repository(),
        embedder=get_embedding_service(),
        vector_stores=get_vector_stores(),
    )
