"""LLM-powered extraction of actionable tasks from a single email."""

from __future__ import annotations

import html
import json
import logging
import re
from dataclasses import replace
from typing import Any

from email_tasks.errors import MalformedModelOutput, ProviderError, ProviderUnavailable, SchemaConstraintViolation
from email_tasks.extraction.deadlines import parse_due_date
from email_tasks.extraction.models import (
    DEFAULT_CONFIDENCE,
    ExtractedTask,
    ExtractionResult,
    ExtractionState,
    TaskCategory,
)
from email_tasks.extraction.schema import TaskSuggestion, parse_model_output
from email_tasks.pipeline_config import PipelineConfig
from email_tasks.providers.base import CompletionProvider
from email_tasks.storage.models import Email, TaskRecord
from email_tasks.storage.repository import Repository

logger = logging.getLogger(__name__)

_CATEGORY_LINES = "\n".join(f"- {category.value}" for category in TaskCategory)

SYSTEM_PROMPT = (
    "You are an assistant that reads emails and extracts actionable tasks, "
    "requests and follow-ups for the recipient.\n\n"
    "Return a single JSON object. If the email contains actionable items, return "
    '{"tasks": [...]} with at most {max_tasks} entries, most important first. '
    "Each entry has these fields:\n"
    '- "suggested_title": concise, action-oriented title (max 100 characters)\n'
    '- "detailed_description": the key context from the email for this task\n'
    '- "source_snippet": the exact sentence(s) from the email that justify the task\n'
    '- "actors_involved": people or teams directly involved\n'
    '- "suggested_priority_level": one of P1_Critical, P2_High, P3_Medium, P4_Low\n'
    '- "extracted_deadline_text": the deadline exactly as written in the email, or null\n'
    '- "suggested_category": exactly one of the categories listed below\n'
    '- "estimated_effort_minutes": optional estimate of the time required\n'
    '- "is_recurring_hint": true if the task appears to recur\n'
    '- "reminder_suggestion_text": optional reminder suggestion\n'
    '- "confidence_in_task_extraction": your confidence from 0.0 to 1.0\n\n'
    "Task categories:\n"
    f"{_CATEGORY_LINES}\n\n"
    "If the email is marketing or promotional content, or contains nothing "
    'actionable, return {"email_classification": "marketing_promotional" or '
    '"non_actionable", "explanation": "<one sentence>"} instead.\n'
    "Only extract tasks clearly supported by the email text."
)

_TAGS = re.compile(r"<[^>]+>")
_BLANK_RUNS = re.compile(r"\s+")


def html_to_text(markup: str) -> str:
    """Crude tag stripping, good enough to feed an HTML-only email to the model."""
    return _BLANK_RUNS.sub(" ", html.unescape(_TAGS.sub(" ", markup))).strip()


def to_confidence(value: float | None) -> int:
    """Model confidence (0.0-1.0) as a 0-100 score; absent means 85."""
    if value is None:
        return DEFAULT_CONFIDENCE
    return min(max(round(value * 100), 0), 100)


class TaskExtractor:
    """Runs one email through the completion provider and persists the tasks.

    Every extraction attempt ends with the email marked processed, except
    when the provider is unavailable: ``ProviderUnavailable`` propagates and
    the email stays eligible for a later run.
    """

    def __init__(
        self,
        provider: CompletionProvider,
        repository: Repository,
        user_id: int,
        config: PipelineConfig | None = None,
    ) -> None:
        self.provider = provider
        self.repository = repository
        self.user_id = user_id
        self.config = config or PipelineConfig()

    def system_prompt(self) -> str:
        return SYSTEM_PROMPT.replace("{max_tasks}", str(self.config.max_tasks_per_email))

    def email_content(self, email: Email) -> str:
        body = email.body.strip()
        if not body and email.body_html:
            body = html_to_text(email.body_html)
        if not body:
            return "No content available"
        limit = self.config.body_char_limit
        if len(body) > limit:
            logger.debug("Email %s body truncated from %d to %d characters", email.id, len(body), limit)
            body = body[:limit]
        return body

    def build_messages(self, email: Email) -> list[dict[str, str]]:
        return [
            {
                "role": "user",
                "content": (
                    "Analyze this email and extract any actionable tasks.\n\n"
                    f"Subject: {email.subject or 'No Subject'}\n"
                    f"From: {email.sender or 'Unknown Sender'}\n"
                    f"Date: {email.timestamp.isoformat()}\n\n"
                    f"Content:\n{self.email_content(email)}"
                ),
            }
        ]

    def extract_by_id(self, email_id: int) -> ExtractionResult | None:
        """Extract tasks from one stored email; ``None`` if it does not exist."""
        email = self.repository.get_email(email_id)
        if email is None:
            logger.warning("Email %s not found", email_id)
            return None
        return self.extract(email)

    def extract(self, email: Email) -> ExtractionResult:
        """Extract, persist and mark one email.

        Raises:
            ProviderUnavailable: the provider could not serve the request.
                The email is left unprocessed.
        """
        logger.info("Extracting tasks from email %s with %s", email.id, self.provider.name)
        try:
            completion = self.provider.complete(
                messages=self.build_messages(email),
                system_prompt=self.system_prompt(),
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
                json_output=True,
            )
        except ProviderUnavailable:
            logger.warning("Provider %s unavailable; email %s left for a later run", self.provider.name, email.id)
            raise
        except ProviderError as exc:
            logger.error("Extraction request failed for email %s: %s", email.id, exc.message)
            result = ExtractionResult(
                email_id=email.id,
                model_used=exc.model or self.provider.model,
                provider_name=self.provider.name,
                parse_state=ExtractionState.EXTRACTION_FAILED,
            )
            self.repository.mark_email_processed(email.id, 0, result.model_used)
            return result

        result = ExtractionResult(
            email_id=email.id,
            model_used=completion.model_name,
            provider_name=completion.provider_name,
        )
        try:
            output = parse_model_output(completion.content, self.config.max_tasks_per_email)
        except MalformedModelOutput as exc:
            logger.warning("Unusable model output for email %s: %s", email.id, exc.message)
            result.parse_state = ExtractionState.EXTRACTION_FAILED
            self.repository.mark_email_processed(email.id, 0, result.model_used, raw_output=completion.content)
            return result

        result.classification = output.email_classification
        result.explanation = output.explanation
        if output.email_classification and not output.tasks:
            logger.info("Email %s classified as %s: %s", email.id, output.email_classification, output.explanation)

        for suggestion, raw in zip(output.tasks, output.raw_tasks, strict=True):
            task = self.to_task(suggestion, raw, email)
            result.tasks.append(task)
            task_id = self.persist(task, email, result.model_used)
            if task_id is not None:
                result.created_task_ids.append(task_id)

        result.outcome = ExtractionState.TASKS_CREATED if result.created_task_ids else ExtractionState.NO_TASK
        self.repository.mark_email_processed(
            email.id,
            result.task_count,
            result.model_used,
            raw_output=completion.content,
            classification=result.classification,
        )
        logger.info("Email %s processed: %d task(s) created", email.id, result.task_count)
        return result

    def to_task(self, suggestion: TaskSuggestion, raw: dict[str, Any], email: Email) -> ExtractedTask:
        return ExtractedTask(
            title=suggestion.suggested_title,
            description=suggestion.detailed_description,
            source_snippet=suggestion.source_snippet,
            category=suggestion.suggested_category,
            priority=suggestion.priority,
            due_date_text=suggestion.extracted_deadline_text,
            due_date=parse_due_date(suggestion.extracted_deadline_text, email.timestamp),
            confidence=to_confidence(suggestion.confidence_in_task_extraction),
            needs_review=True,
            actors_involved=suggestion.actors_involved,
            estimated_effort_minutes=suggestion.estimated_effort_minutes,
            is_recurring_hint=suggestion.is_recurring_hint,
            reminder_text=suggestion.reminder_suggestion_text,
            raw=raw,
        )

    def persist(self, task: ExtractedTask, email: Email, model_used: str) -> int | None:
        """Insert one task. A rejected category is retried once as null."""
        record = TaskRecord(
            user_id=self.user_id,
            email_id=email.id,
            title=task.title,
            description=task.description,
            source_snippet=task.source_snippet,
            priority=task.priority.value,
            category=task.category.value if task.category else None,
            due_date=task.due_date,
            due_date_text=task.due_date_text,
            actors_involved=list(task.actors_involved),
            estimated_effort_minutes=task.estimated_effort_minutes,
            is_recurring_suggestion=task.is_recurring_hint,
            ai_suggested_reminder_text=task.reminder_text,
            ai_generated=True,
            ai_confidence=task.confidence,
            ai_model=model_used,
            needs_review=True,
            original_ai_suggestion_json=json.dumps(task.raw),
        )
        try:
            return self.repository.insert_task(record)
        except SchemaConstraintViolation as exc:
            if record.category is None:
                logger.error("Task %r from email %s rejected: %s", record.title, email.id, exc.message)
                return None
            logger.warning(
                "Category %s rejected for task from email %s; retrying without category",
                record.category,
                email.id,
            )
        except Exception:
            logger.exception("Could not store task %r from email %s", record.title, email.id)
            return None

        try:
            return self.repository.insert_task(replace(record, category=None))
        except Exception:
            logger.exception("Retry without category failed for task from email %s", email.id)
            return None
