"""Answer questions about the inbox with source attribution."""

from __future__ import annotations

from typing import Any

from email_tasks.pipeline_config import SearchTarget
from email_tasks.providers.base import CompletionProvider
from email_tasks.retrieval.models import SearchResult

SYSTEM_PROMPT = (
    "You are an email assistant. Answer questions based on the provided "
    "emails and tasks from the user's inbox.\n\n"
    "Rules:\n"
    "- Only answer based on the provided context. If the answer isn't "
    "in the context, say so.\n"
    "- Cite your sources using [Source N] notation.\n"
    "- Mention senders and dates when relevant.\n"
    "- Be concise and direct."
)


def format_context(results: list[SearchResult]) -> str:
    parts: list[str] = []
    for i, result in enumerate(results):
        when = f" ({result.date:%Y-%m-%d})" if result.date else ""
        if result.type is SearchTarget.EMAIL:
            header = f"[Source {i + 1}] Email from {result.sender or 'unknown'}{when}: {result.title}"
        else:
            header = f"[Source {i + 1}] Task{when}: {result.title} (priority {result.priority})"
        parts.append(f"{header}\n{result.description or ''}")
    return "\n\n".join(parts)


def answer_question(
    question: str,
    results: list[SearchResult],
    provider: CompletionProvider,
    max_tokens: int = 1024,
) -> dict[str, Any]:
    """Generate an answer grounded in the retrieved emails and tasks.

    Args:
        question: The user's question.
        results: Retrieved search results used as context.
        provider: Completion provider serving the request.

    Returns:
        Dictionary with answer, sources, provider, model and usage info.

    Raises:
        ProviderUnavailable: the provider could not be reached.
    """
    completion = provider.complete(
        messages=[
            {
                "role": "user",
                "content": f"Context from the inbox:\n\n{format_context(results)}\n\nQuestion: {question}",
            }
        ],
        system_prompt=SYSTEM_PROMPT,
        max_tokens=max_tokens,
        temperature=0.3,
    )
    return {
        "answer": completion.content,
        "sources": results,
        "provider": completion.provider_name,
        "model": completion.model_name,
        "usage": completion.usage,
    }
