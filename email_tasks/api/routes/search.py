"""Search and question-answering endpoints over emails and tasks."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query

from email_tasks.api.models import AskRequest, AskResponse, SearchResultResponse
from email_tasks.errors import ConfigurationError, ProviderError, ProviderUnavailable
from email_tasks.pipeline_config import SearchTarget
from email_tasks.retrieval.generation import answer_question
from email_tasks.services import build_retriever, get_completion_provider

router = APIRouter()


@router.get("/api/search", response_model=list[SearchResultResponse])
async def search(
    query: str = Query(min_length=1),
    target: SearchTarget | None = None,
    limit: int = Query(default=20, ge=1, le=100),
) -> list[SearchResultResponse]:
    """Hybrid keyword + semantic search. Omitting ``target`` searches both."""
    targets = [target] if target else None
    results = build_retriever().search(query, targets=targets, limit=limit)
    return [SearchResultResponse.model_validate(r) for r in results]


@router.post("/api/ask", response_model=AskResponse)
async def ask(request: AskRequest) -> AskResponse:
    """Answer a question using the best-matching emails and tasks as context."""
    targets = [request.target] if request.target else None
    results = build_retriever().search(request.question, targets=targets, limit=request.limit)

    if not results:
        return AskResponse(
            answer="No relevant emails or tasks found for your question.",
            sources=[],
        )

    try:
        provider = get_completion_provider(request.user_id)
        answer = answer_question(request.question, results, provider)
    except ConfigurationError as exc:
        raise HTTPException(status_code=503, detail=exc.message) from exc
    except ProviderUnavailable as exc:
        raise HTTPException(status_code=503, detail=f"LLM unavailable: {exc.message}") from exc
    except ProviderError as exc:
        raise HTTPException(status_code=502, detail=f"LLM request failed: {exc.message}") from exc

    return AskResponse(
        answer=answer["answer"],
        sources=[SearchResultResponse.model_validate(r) for r in answer["sources"]],
        provider=answer.get("provider"),
        model=answer.get("model"),
        usage=answer.get("usage"),
    )
