"""Supabase-backed repository for emails, tasks and AI settings."""

from __future__ import annotations

import logging
import re
from datetime import UTC, datetime
from typing import Any, cast

from postgrest.exceptions import APIError
from supabase import Client, create_client

from email_tasks.config import settings
from email_tasks.errors import SchemaConstraintViolation
from email_tasks.storage.models import Email, TaskRecord

logger = logging.getLogger(__name__)

EMAIL_COLUMNS = (
    "id,account_id,sender,recipients,subject,body,body_html,thread_id,timestamp,processed_for_tasks,"
    "embedding_generated_at"
)
TASK_COLUMNS = (
    "id,user_id,email_id,title,description,source_snippet,priority,category,due_date,"
    "actors_involved,estimated_effort_minutes,is_recurring_suggestion,"
    "ai_suggested_reminder_text,ai_generated,ai_confidence,ai_model,needs_review,"
    "original_ai_suggestion_json,created_at"
)

# Postgres enum type -> tasks column it backs
_ENUM_COLUMNS = {"task_category": "category", "priority": "priority"}
_INVALID_ENUM_CODE = "22P02"
# Characters with meaning in PostgREST filter strings
_FILTER_UNSAFE = re.compile(r"[,()\"'%*\\:]")


def get_supabase_client() -> Client:
    """Create and return a Supabase client from settings."""
    return create_client(settings.supabase_url, settings.supabase_key)


def _rows(result: Any) -> list[dict[str, Any]]:
    # Supabase .data is typed as JSON (broad union); cast to concrete type.
    return cast(list[dict[str, Any]], result.data or [])


def _offending_field(message: str) -> str | None:
    for enum_name, column in _ENUM_COLUMNS.items():
        if f"enum {enum_name}" in message:
            return column
    return None


class SupabaseRepository:
    """Repository over the ``emails``, ``tasks`` and ``ai_settings`` tables.

    Claims go through the ``claim_emails_for_extraction`` and
    ``claim_email_for_extraction`` RPCs so that selection and reservation
    happen in a single statement.
    """

    def __init__(self, client: Client | None = None) -> None:
        self.client = client or get_supabase_client()

    # -- emails ---------------------------------------------------------------

    def get_email(self, email_id: int) -> Email | None:
        result = self.client.table("emails").select(EMAIL_COLUMNS).eq("id", email_id).execute()
        rows = _rows(result)
        return Email.from_row(rows[0]) if rows else None

    def get_emails(self, email_ids: list[int]) -> list[Email]:
        if not email_ids:
            return []
        result = self.client.table("emails").select(EMAIL_COLUMNS).in_("id", email_ids).execute()
        return [Email.from_row(r) for r in _rows(result)]

    def claim_emails(
        self,
        worker_id: str,
        limit: int,
        since: datetime | None = None,
        unprocessed_only: bool = True,
        lease_seconds: int = 600,
    ) -> list[Email]:
        result = self.client.rpc(
            "claim_emails_for_extraction",
            {
                "worker_id": worker_id,
                "claim_limit": limit,
                "since": since.isoformat() if since else None,
                "unprocessed_only": unprocessed_only,
                "lease_seconds": lease_seconds,
            },
        ).execute()
        emails = [Email.from_row(r) for r in _rows(result)]
        # The RPC orders by timestamp, but keep newest-first regardless.
        return sorted(emails, key=lambda e: e.timestamp, reverse=True)

    def claim_email(self, email_id: int, worker_id: str, lease_seconds: int = 600) -> Email | None:
        result = self.client.rpc(
            "claim_email_for_extraction",
            {"target_email_id": email_id, "worker_id": worker_id, "lease_seconds": lease_seconds},
        ).execute()
        rows = _rows(result)
        return Email.from_row(rows[0]) if rows else None

    def release_email(self, email_id: int, worker_id: str) -> None:
        (
            self.client.table("emails")
            .update({"claimed_by": None, "claim_expires_at": None})
            .eq("id", email_id)
            .eq("claimed_by", worker_id)
            .execute()
        )

    def mark_email_processed(
        self,
        email_id: int,
        task_count: int,
        model_used: str | None,
        raw_output: str | None = None,
        classification: str | None = None,
    ) -> None:
        now = datetime.now(UTC).isoformat()
        (
            self.client.table("emails")
            .update(
                {
                    "processed_for_tasks": now,
                    "ai_processed_at": now,
                    "ai_model_used": model_used,
                    "ai_suggested_tasks_json": raw_output,
                    "ai_classification": classification,
                    "task_count": task_count,
                    "claimed_by": None,
                    "claim_expires_at": None,
                }
            )
            .eq("id", email_id)
            .execute()
        )

    def email_candidates(self, terms: list[str], limit: int) -> list[Email]:
        rows = self._candidate_rows("emails", EMAIL_COLUMNS, ("subject", "sender", "body"), "timestamp", terms, limit)
        return [Email.from_row(r) for r in rows]

    def emails_without_embeddings(self, limit: int, after_id: int | None = None) -> list[Email]:
        query = self.client.table("emails").select(EMAIL_COLUMNS).is_("embedding_vector", "null")
        if after_id is not None:
            query = query.gt("id", after_id)
        result = query.order("id").limit(limit).execute()
        return [Email.from_row(r) for r in _rows(result)]

    # -- tasks ----------------------------------------------------------------

    def insert_task(self, task: TaskRecord) -> int:
        try:
            result = self.client.table("tasks").insert(task.to_row()).execute()
        except APIError as exc:
            message = exc.message or ""
            if exc.code == _INVALID_ENUM_CODE or "invalid input value for enum" in message:
                raise SchemaConstraintViolation(
                    f"Task rejected by schema: {message}",
                    field=_offending_field(message),
                ) from exc
            raise
        return int(_rows(result)[0]["id"])

    def get_tasks(self, task_ids: list[int]) -> list[TaskRecord]:
        if not task_ids:
            return []
        result = self.client.table("tasks").select(TASK_COLUMNS).in_("id", task_ids).execute()
        return [TaskRecord.from_row(r) for r in _rows(result)]

    def list_review_queue(self, limit: int = 50) -> list[TaskRecord]:
        result = (
            self.client.table("tasks")
            .select(TASK_COLUMNS)
            .eq("needs_review", True)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return [TaskRecord.from_row(r) for r in _rows(result)]

    def task_candidates(self, terms: list[str], limit: int) -> list[TaskRecord]:
        rows = self._candidate_rows("tasks", TASK_COLUMNS, ("title", "description"), "created_at", terms, limit)
        return [TaskRecord.from_row(r) for r in rows]

    def tasks_without_embeddings(self, limit: int, after_id: int | None = None) -> list[TaskRecord]:
        query = self.client.table("tasks").select(TASK_COLUMNS).is_("embedding_vector", "null")
        if after_id is not None:
            query = query.gt("id", after_id)
        result = query.order("id").limit(limit).execute()
        return [TaskRecord.from_row(r) for r in _rows(result)]

    # -- settings -------------------------------------------------------------

    def get_ai_settings(self, user_id: int) -> dict[str, Any] | None:
        result = self.client.table("ai_settings").select("*").eq("user_id", user_id).limit(1).execute()
        rows = _rows(result)
        return rows[0] if rows else None

    def _candidate_rows(
        self,
        table: str,
        select: str,
        columns: tuple[str, ...],
        order_by: str,
        terms: list[str],
        limit: int,
    ) -> list[dict[str, Any]]:
        """Rows matching the whole query (``terms[0]``) first, then rows matching
        single tokens. Whole-query hits fill the cap before token-only hits.
        """
        rows: list[dict[str, Any]] = []
        seen: set[Any] = set()
        for group in (terms[:1], terms[1:]):
            if len(rows) >= limit:
                break
            clause = self._ilike_clause(group, columns)
            if not clause:
                continue
            result = (
                self.client.table(table)
                .select(select)
                .or_(clause)
                .order(order_by, desc=True)
                .limit(limit)
                .execute()
            )
            for row in _rows(result):
                if row["id"] not in seen and len(rows) < limit:
                    seen.add(row["id"])
                    rows.append(row)
        return rows

    @staticmethod
    def _ilike_clause(terms: list[str], columns: tuple[str, ...]) -> str:
        cleaned = [_FILTER_UNSAFE.sub(" ", t).strip() for t in terms]
        cleaned = [t for t in cleaned if t]
        return ",".join(f"{col}.ilike.%{term}%" for term in cleaned for col in columns)
