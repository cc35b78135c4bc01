"""Row models for emails and tasks."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import Any


def parse_timestamp(value: Any) -> datetime | None:
    """Coerce a database timestamp (ISO string or datetime) to an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def parse_vector(value: Any) -> list[float] | None:
    """Coerce a pgvector value (list or ``"[0.1,0.2]"`` string) to floats."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        inner = value.strip().strip("[]")
        if not inner:
            return []
        return [float(part) for part in inner.split(",")]
    return [float(v) for v in value]


@dataclass
class Email:
    """An ingested email. Owned by the sync subsystem; we only read it and
    write the processed marker, claim columns and embedding."""

    id: int
    sender: str
    subject: str
    body: str
    timestamp: datetime
    account_id: int | None = None
    recipients: list[str] = field(default_factory=list)
    body_html: str | None = None
    thread_id: str | None = None
    processed_for_tasks: datetime | None = None
    embedding_vector: list[float] | None = None
    embedding_generated_at: datetime | None = None

    @property
    def has_embedding(self) -> bool:
        # Listing queries select the timestamp, not the vector itself.
        return self.embedding_vector is not None or self.embedding_generated_at is not None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Email:
        return cls(
            id=int(row["id"]),
            sender=row.get("sender") or "",
            subject=row.get("subject") or "",
            body=row.get("body") or "",
            timestamp=parse_timestamp(row.get("timestamp")) or datetime.now(UTC),
            account_id=row.get("account_id"),
            recipients=list(row.get("recipients") or []),
            body_html=row.get("body_html"),
            thread_id=row.get("thread_id"),
            processed_for_tasks=parse_timestamp(row.get("processed_for_tasks")),
            embedding_vector=parse_vector(row.get("embedding_vector")),
            embedding_generated_at=parse_timestamp(row.get("embedding_generated_at")),
        )


@dataclass
class TaskRecord:
    """A persisted task (an accepted ExtractedTask plus audit fields)."""

    user_id: int
    title: str
    email_id: int | None = None
    description: str = ""
    source_snippet: str = ""
    priority: str = "medium"
    category: str | None = None
    due_date: date | None = None
    due_date_text: str | None = None
    actors_involved: list[str] = field(default_factory=list)
    estimated_effort_minutes: int | None = None
    is_recurring_suggestion: bool = False
    ai_suggested_reminder_text: str | None = None
    ai_generated: bool = True
    ai_confidence: int | None = None
    ai_model: str | None = None
    needs_review: bool = True
    original_ai_suggestion_json: str | None = None
    id: int | None = None
    created_at: datetime | None = None
    embedding_vector: list[float] | None = None

    def to_row(self) -> dict[str, Any]:
        """Column mapping used for inserts (id and embedding are excluded)."""
        return {
            "user_id": self.user_id,
            "email_id": self.email_id,
            "title": self.title,
            "description": self.description,
            "detailed_description": self.description,
            "source_snippet": self.source_snippet,
            "priority": self.priority,
            "category": self.category,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "actors_involved": self.actors_involved,
            "estimated_effort_minutes": self.estimated_effort_minutes,
            "is_recurring_suggestion": self.is_recurring_suggestion,
            "ai_suggested_reminder_text": self.ai_suggested_reminder_text,
            "ai_generated": self.ai_generated,
            "ai_confidence": self.ai_confidence,
            "ai_model": self.ai_model,
            "needs_review": self.needs_review,
            "original_ai_suggestion_json": self.original_ai_suggestion_json,
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> TaskRecord:
        due = row.get("due_date")
        due_date = parse_timestamp(due).date() if due else None  # type: ignore[union-attr]
        return cls(
            id=row.get("id"),
            user_id=int(row.get("user_id") or 0),
            email_id=row.get("email_id"),
            title=row.get("title") or "",
            description=row.get("description") or "",
            source_snippet=row.get("source_snippet") or "",
            priority=row.get("priority") or "medium",
            category=row.get("category"),
            due_date=due_date,
            actors_involved=list(row.get("actors_involved") or []),
            estimated_effort_minutes=row.get("estimated_effort_minutes"),
            is_recurring_suggestion=bool(row.get("is_recurring_suggestion")),
            ai_suggested_reminder_text=row.get("ai_suggested_reminder_text"),
            ai_generated=bool(row.get("ai_generated")),
            ai_confidence=row.get("ai_confidence"),
            ai_model=row.get("ai_model"),
            needs_review=bool(row.get("needs_review")),
            original_ai_suggestion_json=row.get("original_ai_suggestion_json"),
            created_at=parse_timestamp(row.get("created_at")),
            embedding_vector=parse_vector(row.get("embedding_vector")),
        )
