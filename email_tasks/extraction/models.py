"""Data models for task extraction results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import StrEnum
from typing import Any


class TaskCategory(StrEnum):
    """Task categories; values match the ``task_category`` database enum."""

    FOLLOW_UP = "FollowUp_ResponseNeeded"
    REPORT_SUBMISSION = "Report_Generation_Submission"
    MEETING_PREP = "Meeting_Coordination_Prep"
    REVIEW_APPROVAL = "Review_Approval_Feedback"
    RESEARCH = "Research_Investigation_Analysis"
    PLANNING = "Planning_Strategy_Development"
    EXTERNAL_COMMUNICATION = "Client_Vendor_Communication"
    INTERNAL_PROJECT_TASK = "Internal_Project_Task"
    ADMINISTRATIVE = "Administrative_Logistics"
    URGENT = "Urgent_Action_Required"
    INFORMATION_ONLY = "Information_To_Digest_Review"
    PERSONAL_REMINDER = "Personal_Reminder_Appt"


class Priority(StrEnum):
    """Stored task priority."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ExtractionState(StrEnum):
    """Per-email extraction states, in order."""

    UNPROCESSED = "unprocessed"
    EXTRACTING = "extracting"
    EXTRACTED = "extracted"
    EXTRACTION_FAILED = "extraction_failed"
    TASKS_CREATED = "tasks_created"
    NO_TASK = "no_task"
    PROCESSED = "processed"


DEFAULT_CONFIDENCE = 85


@dataclass
class ExtractedTask:
    """A candidate task surfaced from one email."""

    title: str
    description: str = ""
    source_snippet: str = ""
    category: TaskCategory | None = None
    priority: Priority = Priority.MEDIUM
    due_date_text: str | None = None
    due_date: date | None = None
    confidence: int = DEFAULT_CONFIDENCE  # 0-100
    needs_review: bool = True
    actors_involved: list[str] = field(default_factory=list)
    estimated_effort_minutes: int | None = None
    is_recurring_hint: bool = False
    reminder_text: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class ExtractionResult:
    """Outcome of one extraction attempt over one email."""

    email_id: int
    model_used: str
    provider_name: str
    tasks: list[ExtractedTask] = field(default_factory=list)
    parse_state: ExtractionState = ExtractionState.EXTRACTED
    outcome: ExtractionState = ExtractionState.NO_TASK
    classification: str | None = None
    explanation: str | None = None
    created_task_ids: list[int] = field(default_factory=list)

    @property
    def task_count(self) -> int:
        return len(self.created_task_ids)
