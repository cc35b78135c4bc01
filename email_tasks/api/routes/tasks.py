"""Task endpoints: the human-review queue."""

from __future__ import annotations

from fastapi import APIRouter, Query

from email_tasks.api.models import TaskResponse
from email_tasks.services import get_repository

router = APIRouter()


@router.get("/api/tasks/review", response_model=list[TaskResponse])
async def review_queue(limit: int = Query(default=50, ge=1, le=500)) -> list[TaskResponse]:
    """AI-created tasks awaiting human review, newest first."""
    tasks = get_repository().list_review_queue(limit)
    return [TaskResponse.model_validate(t) for t in tasks]
