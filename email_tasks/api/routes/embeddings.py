"""Embedding maintenance endpoint."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, HTTPException

from email_tasks.api.models import BackfillRequest, BackfillResponse
from email_tasks.services import get_embedding_service, get_repository, get_vector_store

router = APIRouter()


@router.post("/api/embeddings/backfill", response_model=BackfillResponse)
async def backfill(request: BackfillRequest) -> BackfillResponse:
    """Generate embeddings for emails or tasks that do not have one yet."""
    embedder = get_embedding_service()
    if embedder is None:
        raise HTTPException(status_code=503, detail="No embedding provider configured")

    stats = embedder.backfill(
        get_repository(),
        get_vector_store(request.target),
        request.target,
        limit=request.limit,
        after_id=request.after_id,
    )
    return BackfillResponse(target=request.target, **asdict(stats))
