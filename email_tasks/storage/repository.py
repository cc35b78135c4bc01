"""The persistence boundary the pipeline depends on."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

from email_tasks.storage.models import Email, TaskRecord


class Repository(Protocol):
    """Reads emails, claims them for extraction, and writes tasks.

    Implemented by ``SupabaseRepository`` (production) and
    ``MemoryRepository`` (local runs and tests).
    """

    def get_email(self, email_id: int) -> Email | None: ...

    def get_emails(self, email_ids: list[int]) -> list[Email]: ...

    def claim_emails(
        self,
        worker_id: str,
        limit: int,
        since: datetime | None = None,
        unprocessed_only: bool = True,
        lease_seconds: int = 600,
    ) -> list[Email]:
        """Atomically reserve up to ``limit`` emails, newest first."""
        ...

    def claim_email(self, email_id: int, worker_id: str, lease_seconds: int = 600) -> Email | None:
        """Reserve one specific email; ``None`` if missing or claimed elsewhere."""
        ...

    def release_email(self, email_id: int, worker_id: str) -> None: ...

    def mark_email_processed(
        self,
        email_id: int,
        task_count: int,
        model_used: str | None,
        raw_output: str | None = None,
        classification: str | None = None,
    ) -> None:
        """Set ``processed_for_tasks`` to now and drop any claim."""
        ...

    def insert_task(self, task: TaskRecord) -> int:
        """Insert a task and return its id.

        Raises:
            SchemaConstraintViolation: a column value is invalid for the schema.
        """
        ...

    def get_tasks(self, task_ids: list[int]) -> list[TaskRecord]: ...

    def list_review_queue(self, limit: int = 50) -> list[TaskRecord]: ...

    def email_candidates(self, terms: list[str], limit: int) -> list[Email]:
        """Emails that may match any of ``terms`` (lexical pre-filter)."""
        ...

    def task_candidates(self, terms: list[str], limit: int) -> list[TaskRecord]: ...

    def emails_without_embeddings(self, limit: int, after_id: int | None = None) -> list[Email]:
        """Emails with no vector, by id ascending, starting after ``after_id``."""
        ...

    def tasks_without_embeddings(self, limit: int, after_id: int | None = None) -> list[TaskRecord]: ...

    def get_ai_settings(self, user_id: int) -> dict[str, Any] | None:
        """The user's provider selection row, or ``None`` for system defaults."""
        ...
