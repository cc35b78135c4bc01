"""Strict validation of the model's JSON output.

The model's reply is untyped text. It is parsed and checked here, right
after the completion call, so nothing downstream ever sees a free-form
category or priority string.
"""

from __future__ import annotations

import json
import logging
import math
import re
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from email_tasks.errors import MalformedModelOutput
from email_tasks.extraction.models import Priority, TaskCategory

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)

_PRIORITY_MARKERS: list[tuple[tuple[str, ...], Priority]] = [
    (("p1", "critical"), Priority.HIGH),
    (("p2", "high"), Priority.HIGH),
    (("p4", "low"), Priority.LOW),
    (("p3", "medium"), Priority.MEDIUM),
]


def map_priority(level: str | None) -> Priority:
    """Map the model's 4-level scale (P1_Critical..P4_Low) onto high/medium/low."""
    if not level:
        return Priority.MEDIUM
    lowered = level.lower()
    for markers, priority in _PRIORITY_MARKERS:
        if any(m in lowered for m in markers):
            return priority
    return Priority.MEDIUM


class TaskSuggestion(BaseModel):
    """One entry of the model's ``tasks`` array."""

    model_config = ConfigDict(extra="allow")

    suggested_title: str = "Task from email"
    detailed_description: str = ""
    source_snippet: str = ""
    actors_involved: list[str] = []
    suggested_priority_level: str | None = None
    extracted_deadline_text: str | None = None
    suggested_category: TaskCategory | None = None
    estimated_effort_minutes: int | None = None
    is_recurring_hint: bool = False
    reminder_suggestion_text: str | None = None
    confidence_in_task_extraction: float | None = None

    @field_validator("suggested_title", mode="before")
    @classmethod
    def _title(cls, value: Any) -> str:
        text = str(value).strip() if value is not None else ""
        return text[:100] if text else "Task from email"

    @field_validator("detailed_description", "source_snippet", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("suggested_priority_level", "extracted_deadline_text", "reminder_suggestion_text", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> str | None:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @field_validator("actors_involved", mode="before")
    @classmethod
    def _actors(cls, value: Any) -> list[str]:
        if isinstance(value, str):
            return [value] if value.strip() else []
        if not isinstance(value, list):
            return []
        return [str(v) for v in value if v is not None]

    @field_validator("suggested_category", mode="before")
    @classmethod
    def _category(cls, value: Any) -> TaskCategory | None:
        if isinstance(value, str) and value in TaskCategory._value2member_map_:
            return TaskCategory(value)
        if value is not None:
            logger.debug("Dropping unknown task category %r", value)
        return None

    @field_validator("estimated_effort_minutes", mode="before")
    @classmethod
    def _effort(cls, value: Any) -> int | None:
        if isinstance(value, float) and not math.isfinite(value):
            return None
        try:
            minutes = int(value)
        except (TypeError, ValueError, OverflowError):
            return None
        return minutes if minutes >= 0 else None

    @field_validator("is_recurring_hint", mode="before")
    @classmethod
    def _recurring(cls, value: Any) -> bool:
        return value is True or (isinstance(value, str) and value.lower() == "true")

    @field_validator("confidence_in_task_extraction", mode="before")
    @classmethod
    def _confidence(cls, value: Any) -> float | None:
        if isinstance(value, bool):
            return None
        try:
            confidence = float(value)
        except (TypeError, ValueError, OverflowError):
            return None
        if not math.isfinite(confidence):
            return None
        return min(max(confidence, 0.0), 1.0)

    @property
    def priority(self) -> Priority:
        return map_priority(self.suggested_priority_level)


class ModelOutput(BaseModel):
    """The parsed reply: either a ``tasks`` array or a classification."""

    tasks: list[TaskSuggestion]
    raw_tasks: list[dict[str, Any]]
    email_classification: str | None = None
    explanation: str | None = None


def _strip_fences(content: str) -> str:
    text = content.strip()
    match = _FENCE.match(text)
    return match.group(1) if match else text


def parse_model_output(content: str, max_tasks: int = 3) -> ModelOutput:
    """Parse and validate a completion body.

    Non-object ``tasks`` entries and entries failing validation are dropped;
    at most ``max_tasks`` are kept.

    Raises:
        MalformedModelOutput: the body is not a JSON object, or it carries
            neither a ``tasks`` array nor an ``email_classification``.
    """
    try:
        data = json.loads(_strip_fences(content))
    except (json.JSONDecodeError, TypeError) as exc:
        raise MalformedModelOutput("Model output is not valid JSON", raw_output=content) from exc

    if not isinstance(data, dict):
        raise MalformedModelOutput("Model output is not a JSON object", raw_output=content)

    classification = data.get("email_classification")
    explanation = data.get("explanation")
    raw_tasks = data.get("tasks")

    if raw_tasks is None:
        if classification:
            return ModelOutput(
                tasks=[],
                raw_tasks=[],
                email_classification=str(classification),
                explanation=str(explanation) if explanation else None,
            )
        raise MalformedModelOutput("Model output has no 'tasks' key", raw_output=content)
    if not isinstance(raw_tasks, list):
        raise MalformedModelOutput("Model output 'tasks' is not an array", raw_output=content)

    tasks: list[TaskSuggestion] = []
    kept_raw: list[dict[str, Any]] = []
    for entry in raw_tasks:
        if len(tasks) >= max_tasks:
            logger.info("Model returned %d tasks; keeping the first %d", len(raw_tasks), max_tasks)
            break
        if not isinstance(entry, dict):
            continue
        try:
            tasks.append(TaskSuggestion.model_validate(entry))
        except (ValidationError, ValueError, TypeError, OverflowError):
            logger.warning("Dropping task entry that failed validation: %s", entry)
            continue
        kept_raw.append(entry)

    return ModelOutput(
        tasks=tasks,
        raw_tasks=kept_raw,
        email_classification=str(classification) if classification else None,
        explanation=str(explanation) if explanation else None,
    )
