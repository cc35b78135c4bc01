"""Extraction endpoints: batch runs and single-email extraction."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException

from email_tasks.api.models import EmailExtractResponse, ExtractedTaskResponse, ExtractRequest, ExtractResponse
from email_tasks.errors import ConfigurationError
from email_tasks.services import build_orchestrator, get_repository

router = APIRouter()


@router.post("/api/extract", response_model=ExtractResponse)
async def extract(request: ExtractRequest) -> ExtractResponse:
    """Run a batch extraction pass over unprocessed emails.

    Emails are selected newest first. Emails whose extraction hit an
    unavailable provider are reported as ``deferred`` and stay eligible
    for the next run.
    """
    try:
        orchestrator = build_orchestrator(request.user_id)
    except ConfigurationError as exc:
        raise HTTPException(status_code=503, detail=exc.message) from exc

    if request.email_ids:
        result = orchestrator.run_emails(request.email_ids)
    else:
        result = orchestrator.run(
            limit=request.limit,
            days_back=request.days_back,
            unprocessed_only=request.unprocessed_only,
        )
    return ExtractResponse(
        processed=result.processed,
        task_count=result.task_count,
        deferred=result.deferred,
        failed=result.failed,
    )


@router.post("/api/emails/{email_id}/extract", response_model=EmailExtractResponse)
async def extract_email(email_id: int, user_id: int | None = None) -> EmailExtractResponse:
    """Extract tasks from one email, even if it was processed before."""
    if get_repository().get_email(email_id) is None:
        raise HTTPException(status_code=404, detail="Email not found")

    try:
        orchestrator = build_orchestrator(user_id)
    except ConfigurationError as exc:
        raise HTTPException(status_code=503, detail=exc.message) from exc

    result = orchestrator.run_emails([email_id])
    if result.deferred:
        # Same contract as upstream LLM errors elsewhere: a JSON 503 the client can retry.
        raise HTTPException(status_code=503, detail="LLM unavailable, try again later")
    if result.failed:
        raise HTTPException(status_code=500, detail="Task extraction failed")
    if not result.emails:
        raise HTTPException(status_code=409, detail="Email is being processed by another worker")

    extraction = result.emails[0]
    return EmailExtractResponse(
        email_id=extraction.email_id,
        model_used=extraction.model_used,
        provider=extraction.provider_name,
        task_count=extraction.task_count,
        task_ids=extraction.created_task_ids,
        tasks=[
            ExtractedTaskResponse(
                title=t.title,
                description=t.description,
                source_snippet=t.source_snippet,
                category=t.category.value if t.category else None,
                priority=t.priority.value,
                due_date_text=t.due_date_text,
                due_date=t.due_date,
                confidence=t.confidence,
                needs_review=t.needs_review,
            )
            for t in extraction.tasks
        ],
        classification=extraction.classification,
        explanation=extraction.explanation,
        parse_state=extraction.parse_state.value,
    )
