"""Batch orchestration: claim unprocessed emails and run them through the extractor."""

from __future__ import annotations

import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from email_tasks.embeddings.service import EmbeddingService
from email_tasks.embeddings.vector_store import VectorStore
from email_tasks.errors import PipelineError, ProviderUnavailable
from email_tasks.extraction.extractor import TaskExtractor
from email_tasks.extraction.models import ExtractionResult, ExtractionState
from email_tasks.pipeline_config import SearchTarget
from email_tasks.storage.models import Email
from email_tasks.storage.repository import Repository

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    """Counts for one batch run. ``processed`` emails were marked; ``deferred``
    ones hit an unavailable provider and stay eligible for the next run."""

    processed: int = 0
    task_count: int = 0
    deferred: int = 0
    failed: int = 0
    emails: list[ExtractionResult] = field(default_factory=list)

    def add(self, result: ExtractionResult) -> None:
        self.processed += 1
        self.task_count += result.task_count
        self.emails.append(result)


class BatchOrchestrator:
    """Selects emails through per-email claims and extracts tasks from each.

    A run never raises. Selection only returns emails whose
    ``processed_for_tasks`` marker is unset (when ``unprocessed_only``), so
    running twice with the same parameters does nothing the second time.
    """

    def __init__(
        self,
        repository: Repository,
        extractor: TaskExtractor,
        embedder: EmbeddingService | None = None,
        vector_stores: dict[SearchTarget, VectorStore] | None = None,
        workers: int = 1,
        lease_seconds: int = 600,
        worker_id: str | None = None,
    ) -> None:
        self.repository = repository
        self.extractor = extractor
        self.embedder = embedder
        self.vector_stores = vector_stores or {}
        self.workers = max(1, workers)
        self.lease_seconds = lease_seconds
        self.worker_id = worker_id or f"batch-{uuid.uuid4().hex[:12]}"

    def run(self, limit: int = 10, days_back: int | None = None, unprocessed_only: bool = True) -> BatchResult:
        """Claim up to ``limit`` emails, newest first, and extract tasks from each."""
        since = datetime.now(UTC) - timedelta(days=days_back) if days_back is not None else None
        try:
            emails = self.repository.claim_emails(
                self.worker_id,
                limit,
                since=since,
                unprocessed_only=unprocessed_only,
                lease_seconds=self.lease_seconds,
            )
        except Exception:
            logger.exception("Batch %s could not claim emails", self.worker_id)
            return BatchResult()
        logger.info("Batch %s claimed %d email(s) for task extraction", self.worker_id, len(emails))
        return self._process(emails)

    def run_emails(self, email_ids: list[int]) -> BatchResult:
        """Extract tasks from specific emails, regardless of their processed marker."""
        emails: list[Email] = []
        for email_id in email_ids:
            try:
                email = self.repository.claim_email(email_id, self.worker_id, self.lease_seconds)
            except Exception:
                logger.exception("Could not claim email %s", email_id)
                continue
            if email is None:
                logger.warning("Email %s is missing or claimed by another worker; skipping", email_id)
                continue
            emails.append(email)
        return self._process(emails)

    def _process(self, emails: list[Email]) -> BatchResult:
        result = BatchResult()
        if self.workers == 1 or len(emails) <= 1:
            outcomes = [self._process_one(email) for email in emails]
        else:
            with ThreadPoolExecutor(max_workers=self.workers) as pool:
                outcomes = list(pool.map(self._process_one, emails))

        # Collected in selection order so reports stay newest-first.
        for outcome in outcomes:
            if isinstance(outcome, ExtractionResult):
                result.add(outcome)
            elif outcome is ExtractionState.UNPROCESSED:
                result.deferred += 1
            else:
                result.failed += 1

        logger.info(
            "Batch %s finished: %d processed, %d task(s) created, %d deferred, %d failed",
            self.worker_id,
            result.processed,
            result.task_count,
            result.deferred,
            result.failed,
        )
        return result

    def _process_one(self, email: Email) -> ExtractionResult | ExtractionState:
        try:
            extraction = self.extractor.extract(email)
        except ProviderUnavailable as exc:
            logger.warning("Deferring email %s: %s", email.id, exc.message)
            self._release(email)
            return ExtractionState.UNPROCESSED
        except Exception:
            logger.exception("Task extraction failed for email %s", email.id)
            self._release(email)
            return ExtractionState.EXTRACTION_FAILED

        self._embed(email, extraction)
        return extraction

    def _embed(self, email: Email, extraction: ExtractionResult) -> None:
        """Embed the email and its new tasks. Failures never affect extraction counts."""
        if self.embedder is None:
            return
        email_store = self.vector_stores.get(SearchTarget.EMAIL)
        task_store = self.vector_stores.get(SearchTarget.TASK)
        try:
            if email_store is not None and not email.has_embedding:
                self.embedder.embed_email(email, email_store)
            if task_store is not None and extraction.created_task_ids:
                for task in self.repository.get_tasks(extraction.created_task_ids):
                    self.embedder.embed_task(task, task_store)
        except PipelineError as exc:
            logger.warning("Embedding skipped for email %s: %s", email.id, exc.message)
        except Exception:
            logger.exception("Embedding failed for email %s", email.id)

    def _release(self, email: Email) -> None:
        try:
            self.repository.release_email(email.id, self.worker_id)
        except Exception:
            # The lease expires on its own.
            logger.exception("Could not release claim on email %s", email.id)
