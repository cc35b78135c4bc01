"""Hybrid retrieval: lexical matching plus vector similarity, merged into one ranking."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from email_tasks.embeddings.service import EmbeddingService
from email_tasks.embeddings.vector_store import VectorMatch, VectorStore
from email_tasks.errors import ProviderError
from email_tasks.pipeline_config import MatchType, SearchTarget
from email_tasks.retrieval.lexical import LexicalIndex
from email_tasks.retrieval.models import SearchResult, rank_results
from email_tasks.storage.repository import Repository

logger = logging.getLogger(__name__)

MIN_SEMANTIC_QUERY = 2
ALL_TARGETS: frozenset[SearchTarget] = frozenset(SearchTarget)


def merge_results(lexical: list[SearchResult], semantic: list[SearchResult]) -> list[SearchResult]:
    """Union of both lists; records found by both keep the better (lower) score."""
    merged: dict[tuple[SearchTarget, int], SearchResult] = {r.key: r for r in lexical}
    for result in semantic:
        existing = merged.get(result.key)
        if existing is None:
            merged[result.key] = result
        else:
            merged[result.key] = existing.with_match(min(existing.score, result.score), MatchType.BOTH)
    return rank_results(list(merged.values()))


class HybridRetriever:
    """Answers search queries over emails and tasks.

    The lexical stage always runs. The semantic stage runs only when the
    capability check passes (usable query, embedding provider configured,
    vector store available) and contributes nothing if it fails.
    """

    def __init__(
        self,
        repository: Repository,
        embedder: EmbeddingService | None = None,
        vector_stores: dict[SearchTarget, VectorStore] | None = None,
        lexical: LexicalIndex | None = None,
    ) -> None:
        self.repository = repository
        self.embedder = embedder
        self.vector_stores = vector_stores or {}
        self.lexical = lexical or LexicalIndex(repository)

    def semantic_targets(self, query: str, targets: Iterable[SearchTarget]) -> list[SearchTarget]:
        """Targets for which semantic search can run right now."""
        if self.embedder is None or len(query.strip()) < MIN_SEMANTIC_QUERY:
            return []
        ready = []
        for target in targets:
            store = self.vector_stores.get(target)
            if store is not None and store.is_available():
                ready.append(target)
        return ready

    def search(
        self,
        query: str,
        targets: Iterable[SearchTarget] | None = None,
        limit: int = 20,
    ) -> list[SearchResult]:
        wanted = sorted(set(targets) if targets is not None else ALL_TARGETS, key=lambda t: t.value)

        lexical = self.lexical_search(query, wanted, limit)
        semantic_targets = self.semantic_targets(query, wanted)
        if not semantic_targets:
            logger.debug("Semantic search unavailable for %r; lexical results only", query)
            return lexical[:limit]

        semantic = self.semantic_search(query, semantic_targets, limit)
        return merge_results(lexical, semantic)[:limit]

    def lexical_search(self, query: str, targets: Iterable[SearchTarget], limit: int) -> list[SearchResult]:
        results: list[SearchResult] = []
        for target in targets:
            if target is SearchTarget.EMAIL:
                results.extend(self.lexical.search_emails(query, limit))
            else:
                results.extend(self.lexical.search_tasks(query, limit))
        return rank_results(results)

    def semantic_search(self, query: str, targets: list[SearchTarget], limit: int) -> list[SearchResult]:
        assert self.embedder is not None
        try:
            vector = self.embedder.embed_text(query)
        except ProviderError as exc:
            logger.warning("Query embedding failed, falling back to lexical search: %s", exc.message)
            return []
        if vector is None:
            return []

        results: list[SearchResult] = []
        for target in targets:
            matches = self.vector_stores[target].query(vector, limit)
            if matches:
                results.extend(self._hydrate(target, matches))
        return rank_results(results)

    def _hydrate(self, target: SearchTarget, matches: list[VectorMatch]) -> list[SearchResult]:
        """Load the records behind vector hits; cosine distance / 2 is the score."""
        scores = {m.record_id: min(max(m.distance / 2, 0.0), 1.0) for m in matches}
        ids = list(scores)
        try:
            if target is SearchTarget.EMAIL:
                return [
                    SearchResult.from_email(e, scores[e.id], MatchType.SEMANTIC)
                    for e in self.repository.get_emails(ids)
                ]
            return [
                SearchResult.from_task(t, scores[t.id], MatchType.SEMANTIC)
                for t in self.repository.get_tasks(ids)
                if t.id is not None
            ]
        except Exception:
            logger.exception("Could not load %s records for semantic matches", target.value)
            return []
