"""In-process repository used for local runs and tests."""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from typing import Any

from email_tasks.errors import SchemaConstraintViolation
from email_tasks.extraction.models import Priority, TaskCategory
from email_tasks.storage.models import Email, TaskRecord


@dataclass
class _Claim:
    worker_id: str
    expires_at: datetime


class MemoryRepository:
    """Thread-safe dict-backed repository.

    Enforces the same enum constraints as the database schema so the
    category-retry path behaves identically against both backends.
    """

    def __init__(
        self,
        emails: list[Email] | None = None,
        ai_settings: dict[int, dict[str, Any]] | None = None,
    ) -> None:
        self._lock = threading.RLock()
        self.emails: dict[int, Email] = {e.id: e for e in emails or []}
        self.tasks: dict[int, TaskRecord] = {}
        self.claims: dict[int, _Claim] = {}
        self.processing_log: dict[int, dict[str, Any]] = {}
        self.ai_settings: dict[int, dict[str, Any]] = dict(ai_settings or {})
        self._next_task_id = 1

    def add_email(self, email: Email) -> None:
        with self._lock:
            self.emails[email.id] = email

    # -- emails ---------------------------------------------------------------

    def get_email(self, email_id: int) -> Email | None:
        with self._lock:
            email = self.emails.get(email_id)
            return replace(email) if email else None

    def get_emails(self, email_ids: list[int]) -> list[Email]:
        with self._lock:
            return [replace(self.emails[i]) for i in email_ids if i in self.emails]

    def _claimable(self, email_id: int, now: datetime) -> bool:
        claim = self.claims.get(email_id)
        return claim is None or claim.expires_at <= now

    def claim_emails(
        self,
        worker_id: str,
        limit: int,
        since: datetime | None = None,
        unprocessed_only: bool = True,
        lease_seconds: int = 600,
    ) -> list[Email]:
        now = datetime.now(UTC)
        with self._lock:
            candidates = [
                e
                for e in self.emails.values()
                if (not unprocessed_only or e.processed_for_tasks is None)
                and (since is None or e.timestamp >= since)
                and self._claimable(e.id, now)
            ]
            candidates.sort(key=lambda e: e.timestamp, reverse=True)
            selected = candidates[: max(limit, 0)]
            expires = now + timedelta(seconds=lease_seconds)
            for email in selected:
                self.claims[email.id] = _Claim(worker_id, expires)
            return [replace(e) for e in selected]

    def claim_email(self, email_id: int, worker_id: str, lease_seconds: int = 600) -> Email | None:
        now = datetime.now(UTC)
        with self._lock:
            email = self.emails.get(email_id)
            if email is None or not self._claimable(email_id, now):
                return None
            self.claims[email_id] = _Claim(worker_id, now + timedelta(seconds=lease_seconds))
            return replace(email)

    def release_email(self, email_id: int, worker_id: str) -> None:
        with self._lock:
            claim = self.claims.get(email_id)
            if claim is not None and claim.worker_id == worker_id:
                del self.claims[email_id]

    def mark_email_processed(
        self,
        email_id: int,
        task_count: int,
        model_used: str | None,
        raw_output: str | None = None,
        classification: str | None = None,
    ) -> None:
        with self._lock:
            email = self.emails[email_id]
            email.processed_for_tasks = datetime.now(UTC)
            self.claims.pop(email_id, None)
            self.processing_log[email_id] = {
                "task_count": task_count,
                "model_used": model_used,
                "raw_output": raw_output,
                "classification": classification,
            }

    def email_candidates(self, terms: list[str], limit: int) -> list[Email]:
        # No server-side pre-filter: the lexical index scores every email.
        with self._lock:
            emails = sorted(self.emails.values(), key=lambda e: e.timestamp, reverse=True)
            return [replace(e) for e in emails]

    def emails_without_embeddings(self, limit: int, after_id: int | None = None) -> list[Email]:
        with self._lock:
            pending = [
                e
                for e in self.emails.values()
                if e.embedding_vector is None and (after_id is None or e.id > after_id)
            ]
            pending.sort(key=lambda e: e.id)
            return [replace(e) for e in pending[:limit]]

    def set_email_embedding(self, email_id: int, vector: list[float]) -> None:
        with self._lock:
            if email_id in self.emails:
                self.emails[email_id].embedding_vector = list(vector)
                self.emails[email_id].embedding_generated_at = datetime.now(UTC)

    # -- tasks ----------------------------------------------------------------

    def insert_task(self, task: TaskRecord) -> int:
        if task.category is not None and task.category not in TaskCategory._value2member_map_:
            raise SchemaConstraintViolation(
                f'invalid input value for enum task_category: "{task.category}"',
                field="category",
            )
        if task.priority not in Priority._value2member_map_:
            raise SchemaConstraintViolation(
                f'invalid input value for enum priority: "{task.priority}"',
                field="priority",
            )
        with self._lock:
            task_id = self._next_task_id
            self._next_task_id += 1
            self.tasks[task_id] = replace(task, id=task_id, created_at=datetime.now(UTC))
            return task_id

    def get_tasks(self, task_ids: list[int]) -> list[TaskRecord]:
        with self._lock:
            return [replace(self.tasks[i]) for i in task_ids if i in self.tasks]

    def list_review_queue(self, limit: int = 50) -> list[TaskRecord]:
        with self._lock:
            queue = [t for t in self.tasks.values() if t.needs_review]
            queue.sort(key=lambda t: (t.created_at, t.id or 0), reverse=True)
            return [replace(t) for t in queue[:limit]]

    def task_candidates(self, terms: list[str], limit: int) -> list[TaskRecord]:
        with self._lock:
            return [replace(t) for t in self.tasks.values()]

    def tasks_without_embeddings(self, limit: int, after_id: int | None = None) -> list[TaskRecord]:
        with self._lock:
            pending = [
                t
                for t in self.tasks.values()
                if t.embedding_vector is None and (after_id is None or (t.id or 0) > after_id)
            ]
            pending.sort(key=lambda t: t.id or 0)
            return [replace(t) for t in pending[:limit]]

    def set_task_embedding(self, task_id: int, vector: list[float]) -> None:
        with self._lock:
            if task_id in self.tasks:
                self.tasks[task_id].embedding_vector = list(vector)

    # -- settings -------------------------------------------------------------

    def get_ai_settings(self, user_id: int) -> dict[str, Any] | None:
        return self.ai_settings.get(user_id)
