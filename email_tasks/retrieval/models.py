"""Search result model."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime

from email_tasks.pipeline_config import MatchType, SearchTarget
from email_tasks.storage.models import Email, TaskRecord

SNIPPET_CHARS = 150


@dataclass(frozen=True)
class SearchResult:
    """An email or task match. ``score`` is normalized to 0..1, lower is better."""

    id: int
    type: SearchTarget
    title: str
    score: float
    match_type: MatchType
    description: str | None = None
    date: datetime | None = None
    # email fields
    sender: str | None = None
    subject: str | None = None
    # task fields
    priority: str | None = None
    due_date: date | None = None
    needs_review: bool | None = None

    @property
    def key(self) -> tuple[SearchTarget, int]:
        return (self.type, self.id)

    def with_match(self, score: float, match_type: MatchType) -> SearchResult:
        return replace(self, score=score, match_type=match_type)

    @classmethod
    def from_email(cls, email: Email, score: float, match_type: MatchType) -> SearchResult:
        return cls(
            id=email.id,
            type=SearchTarget.EMAIL,
            title=email.subject or "(no subject)",
            score=score,
            match_type=match_type,
            description=email.body[:SNIPPET_CHARS],
            date=email.timestamp,
            sender=email.sender,
            subject=email.subject,
        )

    @classmethod
    def from_task(cls, task: TaskRecord, score: float, match_type: MatchType) -> SearchResult:
        return cls(
            id=task.id or 0,
            type=SearchTarget.TASK,
            title=task.title,
            score=score,
            match_type=match_type,
            description=task.description[:SNIPPET_CHARS] if task.description else None,
            date=task.created_at,
            priority=task.priority,
            due_date=task.due_date,
            needs_review=task.needs_review,
        )


def rank_results(results: list[SearchResult]) -> list[SearchResult]:
    """Score ascending, ties broken by recency."""
    return sorted(results, key=lambda r: (r.score, -(r.date.timestamp() if r.date else 0.0)))
