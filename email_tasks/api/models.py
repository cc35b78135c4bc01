"""Pydantic request/response schemas for the Email Task Assistant API."""

from __future__ import annotations

import datetime as dt
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from email_tasks.pipeline_config import MatchType, SearchTarget


class ExtractRequest(BaseModel):
    """Request body for the /api/extract endpoint.

    ``daysBack`` and ``unprocessedOnly`` are accepted for dashboard clients.
    """

    limit: int = Field(default=10, ge=1, le=500)
    days_back: int | None = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("days_back", "daysBack"),
    )
    unprocessed_only: bool = Field(
        default=True,
        validation_alias=AliasChoices("unprocessed_only", "unprocessedOnly"),
    )
    email_ids: list[int] | None = Field(
        default=None,
        validation_alias=AliasChoices("email_ids", "specificEmailIds"),
    )
    user_id: int | None = None


class ExtractResponse(BaseModel):
    """Response body for the /api/extract endpoint."""

    processed: int
    task_count: int
    deferred: int = 0
    failed: int = 0


class ExtractedTaskResponse(BaseModel):
    """A task as surfaced by one extraction."""

    title: str
    description: str = ""
    source_snippet: str = ""
    category: str | None = None
    priority: str
    due_date_text: str | None = None
    due_date: dt.date | None = None
    confidence: int
    needs_review: bool


class EmailExtractResponse(BaseModel):
    """Response body for the /api/emails/{id}/extract endpoint."""

    email_id: int
    model_used: str
    provider: str
    task_count: int
    task_ids: list[int] = []
    tasks: list[ExtractedTaskResponse] = []
    classification: str | None = None
    explanation: str | None = None
    parse_state: str


class SearchResultResponse(BaseModel):
    """A single email or task match."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    type: SearchTarget
    title: str
    score: float
    match_type: MatchType
    description: str | None = None
    date: dt.datetime | None = None
    sender: str | None = None
    subject: str | None = None
    priority: str | None = None
    due_date: dt.date | None = None
    needs_review: bool | None = None


class AskRequest(BaseModel):
    """Request body for the /api/ask endpoint."""

    question: str = Field(min_length=1)
    target: SearchTarget | None = None
    limit: int = Field(default=8, ge=1, le=50)
    user_id: int | None = None


class AskResponse(BaseModel):
    """Response body for the /api/ask endpoint."""

    answer: str
    sources: list[SearchResultResponse]
    provider: str | None = None
    model: str | None = None
    usage: dict[str, Any] | None = None


class TaskResponse(BaseModel):
    """A persisted task, as listed in the review queue."""

    model_config = ConfigDict(from_attributes=True)

    id: int | None = None
    user_id: int
    email_id: int | None = None
    title: str
    description: str = ""
    source_snippet: str = ""
    priority: str
    category: str | None = None
    due_date: dt.date | None = None
    ai_confidence: int | None = None
    ai_model: str | None = None
    needs_review: bool
    created_at: dt.datetime | None = None


class BackfillRequest(BaseModel):
    """Request body for the /api/embeddings/backfill endpoint."""

    target: SearchTarget = SearchTarget.EMAIL
    limit: int = Field(default=100, ge=1, le=1000)
    after_id: int | None = Field(default=None, validation_alias=AliasChoices("after_id", "afterId"))


class BackfillResponse(BaseModel):
    """Response body for the /api/embeddings/backfill endpoint.

    Pass ``last_id`` back as ``after_id`` to continue past skipped records.
    """

    model_config = ConfigDict(from_attributes=True)

    target: SearchTarget
    processed: int
    successful: int
    failed: int
    skipped: int
    last_id: int | None = None
