"""Shared fixtures: in-memory storage, a scripted completion provider, fake embeddings."""

from __future__ import annotations

import hashlib
import threading
from datetime import UTC, datetime, timedelta

import pytest

from email_tasks.embeddings.service import EmbeddingService
from email_tasks.embeddings.vector_store import InMemoryVectorStore
from email_tasks.errors import PipelineError
from email_tasks.pipeline_config import SearchTarget
from email_tasks.providers.base import Completion, CompletionProvider
from email_tasks.retrieval.lexical import tokenize
from email_tasks.storage.memory_store import MemoryRepository
from email_tasks.storage.models import Email

NOW = datetime(2025, 3, 12, 9, 30, tzinfo=UTC)  # a Wednesday
FAKE_EMBEDDING_WIDTH = 64


def fake_embedding(text: str, width: int = FAKE_EMBEDDING_WIDTH) -> list[float]:
    """Bag-of-words vector: texts sharing words are close in cosine distance."""
    vector = [0.0] * width
    for token in tokenize(text):
        bucket = int(hashlib.md5(token.encode()).hexdigest(), 16) % width
        vector[bucket] += 1.0
    return vector


class StubProvider(CompletionProvider):
    """Scripted provider.

    ``reply`` is returned for every call; ``replies`` are consumed in order
    first. ``error`` is raised from ``complete`` and ``embed_error`` from
    ``embed``.
    """

    name = "stub"

    def __init__(
        self,
        reply: str = '{"tasks": []}',
        replies: list[str] | None = None,
        model: str = "stub-model-1",
        error: PipelineError | None = None,
        embed_error: PipelineError | None = None,
    ) -> None:
        super().__init__()
        self.model = model
        self.reply = reply
        self.replies = list(replies or [])
        self.error = error
        self.embed_error = embed_error
        self.calls: list[dict] = []
        self.embedded: list[str] = []
        self._lock = threading.Lock()

    def complete(self, messages, system_prompt=None, max_tokens=1024, temperature=0.2, json_output=False):
        with self._lock:
            self.calls.append(
                {
                    "messages": messages,
                    "system_prompt": system_prompt,
                    "max_tokens": max_tokens,
                    "temperature": temperature,
                    "json_output": json_output,
                }
            )
            if self.error is not None:
                raise self.error
            content = self.replies.pop(0) if self.replies else self.reply
        return Completion(content=content, provider_name=self.name, model_name=self.model)

    @property
    def supports_embeddings(self) -> bool:
        return True

    def embed(self, text: str) -> list[float]:
        with self._lock:
            self.embedded.append(text)
        if self.embed_error is not None:
            raise self.embed_error
        return fake_embedding(text)


def make_email(
    email_id: int,
    subject: str,
    body: str,
    sender: str = "alice@example.com",
    hours_ago: float = 1.0,
    timestamp: datetime | None = None,
    **kwargs,
) -> Email:
    return Email(
        id=email_id,
        sender=sender,
        subject=subject,
        body=body,
        timestamp=timestamp or NOW - timedelta(hours=hours_ago),
        **kwargs,
    )


@pytest.fixture
def repository() -> MemoryRepository:
    return MemoryRepository()


@pytest.fixture
def stub_provider() -> StubProvider:
    return StubProvider()


@pytest.fixture
def embedder(stub_provider: StubProvider) -> EmbeddingService:
    return EmbeddingService(stub_provider, dimensions=768)


@pytest.fixture
def vector_stores(repository: MemoryRepository) -> dict[SearchTarget, InMemoryVectorStore]:
    return {target: InMemoryVectorStore(repository, target) for target in SearchTarget}
