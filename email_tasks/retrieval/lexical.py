"""Lexical index: case-insensitive substring and token matching."""

from __future__ import annotations

import re

from email_tasks.pipeline_config import MatchType
from email_tasks.retrieval.models import SearchResult, rank_results
from email_tasks.storage.repository import Repository

_TOKEN = re.compile(r"[a-z0-9]+")

# First matching field wins; earlier fields score better (lower).
EMAIL_FIELD_SCORES: tuple[tuple[str, float], ...] = (("subject", 0.0), ("sender", 0.2), ("body", 0.4))
TASK_FIELD_SCORES: tuple[tuple[str, float], ...] = (("title", 0.0), ("description", 0.3))

TOKEN_MATCH_BASE = 0.6
TOKEN_MATCH_SPAN = 0.3


def tokenize(text: str) -> list[str]:
    """Lower-cased alphanumeric tokens of at least two characters."""
    return [t for t in _TOKEN.findall(text.lower()) if len(t) > 1]


def score_fields(query: str, fields: list[tuple[str, float]]) -> float | None:
    """Score ``(field_text, field_score)`` pairs against ``query``.

    A whole-query substring hit returns that field's score. Otherwise the
    share of query tokens present anywhere maps onto 0.6 (all tokens) to
    0.9 (one token of many). ``None`` means no match.
    """
    needle = query.strip().lower()
    if not needle:
        return None
    for text, field_score in fields:
        if needle in text.lower():
            return field_score

    tokens = set(tokenize(needle))
    if not tokens:
        return None
    haystack = set(tokenize(" ".join(text for text, _ in fields)))
    matched = len(tokens & haystack)
    if not matched:
        return None
    return TOKEN_MATCH_BASE + TOKEN_MATCH_SPAN * (1 - matched / len(tokens))


def search_terms(query: str) -> list[str]:
    """The whole query plus its tokens, used to pre-filter candidates in storage."""
    needle = query.strip()
    terms = [needle] if needle else []
    terms.extend(t for t in tokenize(needle) if t != needle.lower())
    return terms


class LexicalIndex:
    """Keyword matching over email subject/sender/body and task title/description."""

    def __init__(self, repository: Repository, candidate_limit: int = 500) -> None:
        self.repository = repository
        self.candidate_limit = candidate_limit

    def search_emails(self, query: str, limit: int) -> list[SearchResult]:
        terms = search_terms(query)
        if not terms:
            return []
        results: list[SearchResult] = []
        for email in self.repository.email_candidates(terms, self.candidate_limit):
            fields = [(getattr(email, name) or "", weight) for name, weight in EMAIL_FIELD_SCORES]
            score = score_fields(query, fields)
            if score is not None:
                results.append(SearchResult.from_email(email, score, MatchType.KEYWORD))
        return rank_results(results)[:limit]

    def search_tasks(self, query: str, limit: int) -> list[SearchResult]:
        terms = search_terms(query)
        if not terms:
            return []
        results: list[SearchResult] = []
        for task in self.repository.task_candidates(terms, self.candidate_limit):
            fields = [(getattr(task, name) or "", weight) for name, weight in TASK_FIELD_SCORES]
            score = score_fields(query, fields)
            if score is not None:
                results.append(SearchResult.from_task(task, score, MatchType.KEYWORD))
        return rank_results(results)[:limit]
