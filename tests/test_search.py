"""Tests for hybrid (keyword + semantic) retrieval and graceful degradation."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from conftest import StubProvider, make_email

from email_tasks.embeddings.service import EmbeddingService
from email_tasks.embeddings.vector_store import InMemoryVectorStore
from email_tasks.errors import ProviderUnavailable
from email_tasks.pipeline_config import MatchType, SearchTarget
from email_tasks.retrieval.models import SearchResult, rank_results
from email_tasks.retrieval.search import HybridRetriever, merge_results
from email_tasks.storage.memory_store import MemoryRepository
from email_tasks.storage.models import TaskRecord

EMAILS = [
    make_email(1, "Invoice #42 overdue", "Please pay the invoice by Friday", hours_ago=5),
    make_email(2, "Team lunch", "Pizza on Thursday?", hours_ago=1),
    make_email(3, "Billing question", "Our invoice total looks wrong", sender="carol@vendor.com", hours_ago=2),
    make_email(4, "Payment overdue reminder", "Please pay outstanding balance", hours_ago=3),
]


def result(record_id: int, score: float, match_type: MatchType = MatchType.KEYWORD) -> SearchResult:
    return SearchResult(id=record_id, type=SearchTarget.EMAIL, title=f"#{record_id}", score=score, match_type=match_type)


@pytest.fixture
def provider() -> StubProvider:
    return StubProvider()


@pytest.fixture
def repo() -> MemoryRepository:
    return MemoryRepository([make_email(e.id, e.subject, e.body, e.sender, timestamp=e.timestamp) for e in EMAILS])


@pytest.fixture
def stores(repo: MemoryRepository) -> dict[SearchTarget, InMemoryVectorStore]:
    return {target: InMemoryVectorStore(repo, target) for target in SearchTarget}


@pytest.fixture
def retriever(repo, provider, stores) -> HybridRetriever:
    embedder = EmbeddingService(provider)
    for email in repo.get_emails([1, 2, 3, 4]):
        embedder.embed_email(email, stores[SearchTarget.EMAIL])
    return HybridRetriever(repo, embedder=embedder, vector_stores=stores)


class TestMergeResults:
    def test_records_in_both_lists_take_lower_score(self) -> None:
        merged = merge_results([result(1, 0.4)], [result(1, 0.1, MatchType.SEMANTIC)])

        assert len(merged) == 1
        assert merged[0].score == 0.1
        assert merged[0].match_type is MatchType.BOTH

    def test_lexical_score_kept_when_better(self) -> None:
        merged = merge_results([result(1, 0.0)], [result(1, 0.3, MatchType.SEMANTIC)])
        assert merged[0].score == 0.0
        assert merged[0].match_type is MatchType.BOTH

    def test_single_source_records_keep_their_tag(self) -> None:
        merged = merge_results([result(1, 0.2)], [result(2, 0.1, MatchType.SEMANTIC)])

        assert [(r.id, r.match_type) for r in merged] == [(2, MatchType.SEMANTIC), (1, MatchType.KEYWORD)]

    def test_emails_and_tasks_with_same_id_are_distinct(self) -> None:
        task = SearchResult(id=1, type=SearchTarget.TASK, title="t", score=0.3, match_type=MatchType.SEMANTIC)
        merged = merge_results([result(1, 0.2)], [task])
        assert len(merged) == 2

    def test_rank_ties_broken_by_recency(self) -> None:
        older = SearchResult(1, SearchTarget.EMAIL, "old", 0.2, MatchType.KEYWORD, date=EMAILS[0].timestamp)
        newer = SearchResult(2, SearchTarget.EMAIL, "new", 0.2, MatchType.KEYWORD, date=EMAILS[1].timestamp)
        assert [r.id for r in rank_results([older, newer])] == [2, 1]


class TestHybridRetriever:
    def test_semantic_matches_are_merged(self, retriever: HybridRetriever) -> None:
        results = retriever.search("invoice", targets=[SearchTarget.EMAIL])

        by_id = {r.id: r for r in results}
        assert by_id[1].match_type is MatchType.BOTH
        assert by_id[1].score == 0.0
        assert by_id[3].match_type is MatchType.BOTH

    def test_semantic_only_matches_are_added(self, retriever: HybridRetriever) -> None:
        results = retriever.search("invoice", targets=[SearchTarget.EMAIL])

        by_id = {r.id: r for r in results}
        assert by_id[2].match_type is MatchType.SEMANTIC
        assert by_id[4].match_type is MatchType.SEMANTIC
        assert all(0.0 <= r.score <= 1.0 for r in results)
        assert results[0].id == 1

    def test_degraded_store_returns_lexical_results_unchanged(
        self, retriever: HybridRetriever, stores: dict[SearchTarget, InMemoryVectorStore]
    ) -> None:
        lexical_only = retriever.lexical_search("invoice", [SearchTarget.EMAIL], limit=20)
        healthy = retriever.search("invoice", targets=[SearchTarget.EMAIL])

        stores[SearchTarget.EMAIL].force_degraded()
        degraded = retriever.search("invoice", targets=[SearchTarget.EMAIL])

        assert [r.id for r in degraded] == [r.id for r in lexical_only] == [1, 3]
        assert all(r.match_type is MatchType.KEYWORD for r in degraded)
        assert {r.id for r in lexical_only} <= {r.id for r in healthy}

    def test_no_embedder_means_lexical_only(self, repo: MemoryRepository) -> None:
        retriever = HybridRetriever(repo)

        results = retriever.search("invoice")

        assert [r.id for r in results] == [1, 3]
        assert retriever.semantic_targets("invoice", list(SearchTarget)) == []

    def test_short_query_skips_semantic_stage(self, retriever: HybridRetriever, provider: StubProvider) -> None:
        embedded_before = len(provider.embedded)

        retriever.search("x", targets=[SearchTarget.EMAIL])

        assert len(provider.embedded) == embedded_before

    def test_query_embedding_failure_falls_back(self, retriever: HybridRetriever, provider: StubProvider) -> None:
        provider.embed_error = ProviderUnavailable("quota exceeded", provider="stub")

        results = retriever.search("invoice", targets=[SearchTarget.EMAIL])

        assert [r.id for r in results] == [1, 3]
        assert all(r.match_type is MatchType.KEYWORD for r in results)

    def test_hydration_failure_falls_back(self, retriever: HybridRetriever, repo: MemoryRepository) -> None:
        repo.get_emails = MagicMock(side_effect=RuntimeError("db down"))  # type: ignore[method-assign]

        results = retriever.search("invoice", targets=[SearchTarget.EMAIL])

        assert [r.id for r in results] == [1, 3]

    def test_searches_tasks_and_emails(self, retriever: HybridRetriever, repo: MemoryRepository) -> None:
        repo.insert_task(TaskRecord(user_id=1, title="Pay invoice #42", email_id=1))

        results = retriever.search("invoice", limit=10)

        assert {r.type for r in results} == {SearchTarget.EMAIL, SearchTarget.TASK}

    def test_limit_applies_to_merged_list(self, retriever: HybridRetriever) -> None:
        assert len(retriever.search("invoice", limit=1)) == 1

    def test_store_without_vectors_contributes_nothing(self, repo: MemoryRepository, provider: StubProvider) -> None:
        stores = {target: InMemoryVectorStore(repo, target) for target in SearchTarget}
        retriever = HybridRetriever(repo, embedder=EmbeddingService(provider), vector_stores=stores)

        results = retriever.search("invoice")

        assert [r.id for r in results] == [1, 3]
