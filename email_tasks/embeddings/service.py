"""Embedding generation for emails, tasks and search queries."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from email_tasks.embeddings.normalizer import normalize
from email_tasks.embeddings.vector_store import VectorStore
from email_tasks.errors import PipelineError
from email_tasks.pipeline_config import SearchTarget
from email_tasks.providers.base import CompletionProvider
from email_tasks.storage.models import Email, TaskRecord
from email_tasks.storage.repository import Repository

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")
_NOISE = re.compile(r"[^\w\s.,?!;:()\"'@-]")

MIN_EMAIL_TEXT = 10
MIN_TASK_TEXT = 5


def prepare_text(text: str | None, limit: int = 12000) -> str:
    """Collapse whitespace, drop decorative symbols, and cap the length."""
    if not text:
        return ""
    cleaned = _WHITESPACE.sub(" ", _NOISE.sub(" ", text)).strip()
    if len(cleaned) > limit:
        logger.debug("Embedding text truncated from %d to %d characters", len(cleaned), limit)
        cleaned = cleaned[:limit]
    return cleaned


def email_text(email: Email) -> str:
    return f"Subject: {email.subject}\nFrom: {email.sender}\n\n{email.body}"


def task_text(task: TaskRecord) -> str:
    return f"{task.title}\n{task.description}\n{task.source_snippet}"


@dataclass
class BackfillStats:
    processed: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    last_id: int | None = None


class EmbeddingService:
    """Turns text into stored-width vectors through an embedding provider."""

    def __init__(self, provider: CompletionProvider, dimensions: int = 768, text_limit: int = 12000) -> None:
        self.provider = provider
        self.dimensions = dimensions
        self.text_limit = text_limit

    def embed_text(self, text: str) -> list[float] | None:
        """Embed ``text`` and normalize it; ``None`` if there is nothing to embed.

        Raises:
            ProviderError: the provider call failed.
        """
        cleaned = prepare_text(text, self.text_limit)
        if not cleaned:
            return None
        return normalize(self.provider.embed(cleaned), self.dimensions)

    def embed_email(self, email: Email, store: VectorStore) -> bool:
        """Embed and upsert one email. Returns False when skipped for lack of content."""
        text = email_text(email)
        if len(prepare_text(email.body) + prepare_text(email.subject)) < MIN_EMAIL_TEXT:
            logger.info("Skipping embedding for email %s: insufficient content", email.id)
            return False
        vector = self.embed_text(text)
        if vector is None:
            return False
        store.upsert(email.id, vector, email.timestamp)
        return True

    def embed_task(self, task: TaskRecord, store: VectorStore) -> bool:
        if task.id is None:
            return False
        text = task_text(task)
        if len(text.strip()) < MIN_TASK_TEXT:
            logger.info("Skipping embedding for task %s: insufficient content", task.id)
            return False
        vector = self.embed_text(text)
        if vector is None:
            return False
        store.upsert(task.id, vector, task.created_at)
        return True

    def backfill(
        self,
        repository: Repository,
        store: VectorStore,
        target: SearchTarget,
        limit: int = 100,
        after_id: int | None = None,
    ) -> BackfillStats:
        """Generate embeddings for records that have none yet.

        Per-record failures are logged and counted; the run continues.
        Skipped and failed records keep no vector, so callers page past them
        by passing the returned ``last_id`` back as ``after_id``.
        """
        stats = BackfillStats(last_id=after_id)
        if target is SearchTarget.EMAIL:
            records: list[Email] | list[TaskRecord] = repository.emails_without_embeddings(limit, after_id)
        else:
            records = repository.tasks_without_embeddings(limit, after_id)
        logger.info("Backfilling embeddings for %d %s records", len(records), target.value)

        for record in records:
            stats.processed += 1
            stats.last_id = record.id
            try:
                if isinstance(record, Email):
                    stored = self.embed_email(record, store)
                else:
                    stored = self.embed_task(record, store)
            except PipelineError as exc:
                stats.failed += 1
                logger.warning("Embedding failed for %s %s: %s", target.value, record.id, exc.message)
                continue
            if stored:
                stats.successful += 1
            else:
                stats.skipped += 1

        logger.info(
            "Backfill complete: %d processed, %d successful, %d failed, %d skipped",
            stats.processed,
            stats.successful,
            stats.failed,
            stats.skipped,
        )
        return stats
