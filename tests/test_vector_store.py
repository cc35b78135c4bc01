"""Tests for the vector store adapters (in-memory and Supabase with a mocked client)."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from conftest import NOW, make_email

from email_tasks.embeddings.vector_store import (
    InMemoryVectorStore,
    SupabaseVectorStore,
    VectorMatch,
    is_blank,
    rank_matches,
)
from email_tasks.errors import VectorStoreDegraded
from email_tasks.pipeline_config import SearchTarget
from email_tasks.storage.memory_store import MemoryRepository


def unit(index: int, width: int = 4) -> list[float]:
    vector = [0.0] * width
    vector[index] = 1.0
    return vector


class TestRankMatches:
    def test_orders_by_distance(self) -> None:
        matches = [VectorMatch(1, 0.5), VectorMatch(2, 0.1), VectorMatch(3, 0.3)]
        assert [m.record_id for m in rank_matches(matches)] == [2, 3, 1]

    def test_ties_prefer_recent_records(self) -> None:
        matches = [
            VectorMatch(1, 0.2, NOW - timedelta(days=2)),
            VectorMatch(2, 0.2, NOW),
            VectorMatch(3, 0.2, None),
        ]
        assert [m.record_id for m in rank_matches(matches)] == [2, 1, 3]

    def test_is_blank(self) -> None:
        assert is_blank(None)
        assert is_blank([])
        assert is_blank([0.0, 0.0])
        assert not is_blank([0.0, 0.1])


class TestInMemoryVectorStore:
    @pytest.fixture
    def store(self) -> InMemoryVectorStore:
        repo = MemoryRepository(
            [
                make_email(1, "a", "a", hours_ago=3),
                make_email(2, "b", "b", hours_ago=2),
                make_email(3, "c", "c", hours_ago=1),
            ]
        )
        return InMemoryVectorStore(repo, SearchTarget.EMAIL, dimensions=4)

    def test_query_returns_nearest_first(self, store: InMemoryVectorStore) -> None:
        store.upsert(1, unit(0))
        store.upsert(2, [0.7, 0.7, 0.0, 0.0])
        store.upsert(3, unit(1))

        matches = store.query(unit(0), k=3)

        assert [m.record_id for m in matches] == [1, 2, 3]
        assert matches[0].distance == pytest.approx(0.0)
        assert matches[2].distance == pytest.approx(1.0)

    def test_query_respects_k(self, store: InMemoryVectorStore) -> None:
        for record_id in (1, 2, 3):
            store.upsert(record_id, unit(record_id))
        assert len(store.query(unit(1), k=2)) == 2

    def test_equal_distances_prefer_recent(self, store: InMemoryVectorStore) -> None:
        store.upsert(1, unit(0))
        store.upsert(3, unit(0))
        assert [m.record_id for m in store.query(unit(0), k=2)] == [3, 1]

    def test_upsert_is_idempotent(self, store: InMemoryVectorStore) -> None:
        store.upsert(1, unit(0))
        store.upsert(1, unit(2))

        matches = store.query(unit(2), k=5)

        assert [m.record_id for m in matches] == [1]
        assert matches[0].distance == pytest.approx(0.0)

    def test_rejects_wrong_width(self, store: InMemoryVectorStore) -> None:
        with pytest.raises(ValueError):
            store.upsert(1, [1.0, 0.0])

    def test_blank_query_returns_empty(self, store: InMemoryVectorStore) -> None:
        store.upsert(1, unit(0))
        assert store.query([0.0] * 4, k=5) == []

    def test_no_vectors_returns_empty(self, store: InMemoryVectorStore) -> None:
        assert store.query(unit(0), k=5) == []

    def test_forced_degraded(self, store: InMemoryVectorStore) -> None:
        store.upsert(1, unit(0))
        store.force_degraded()

        assert store.degraded
        assert not store.is_available()
        assert store.query(unit(0), k=5) == []
        with pytest.raises(VectorStoreDegraded):
            store.upsert(2, unit(1))

        store.force_degraded(False)
        assert store.is_available()
        assert [m.record_id for m in store.query(unit(0), k=5)] == [1]

    def test_task_target_reads_task_vectors(self) -> None:
        from email_tasks.storage.models import TaskRecord

        repo = MemoryRepository()
        task_id = repo.insert_task(TaskRecord(user_id=1, title="Send report"))
        store = InMemoryVectorStore(repo, SearchTarget.TASK, dimensions=4)

        store.upsert(task_id, unit(3))

        assert [m.record_id for m in store.query(unit(3), k=1)] == [task_id]


class TestSupabaseVectorStore:
    def test_query_calls_match_rpc(self) -> None:
        client = MagicMock()
        client.rpc.return_value.execute.return_value.data = [
            {"id": 7, "distance": 0.4, "timestamp": "2025-03-10T10:00:00Z"},
            {"id": 9, "distance": 0.1, "timestamp": "2025-03-09T10:00:00Z"},
        ]
        store = SupabaseVectorStore(client, SearchTarget.EMAIL, dimensions=4)

        matches = store.query(unit(0), k=5)

        client.rpc.assert_called_once_with("match_emails", {"query_embedding": unit(0), "match_count": 5})
        assert [m.record_id for m in matches] == [9, 7]
        assert matches[0].recorded_at is not None

    def test_task_rows_use_created_at(self) -> None:
        client = MagicMock()
        client.rpc.return_value.execute.return_value.data = [
            {"id": 1, "distance": 0.2, "created_at": "2025-03-10T10:00:00+00:00"},
        ]
        store = SupabaseVectorStore(client, SearchTarget.TASK, dimensions=4)

        matches = store.query(unit(0), k=5)

        client.rpc.assert_called_once_with("match_tasks", {"query_embedding": unit(0), "match_count": 5})
        assert matches[0].recorded_at.year == 2025

    def test_unreachable_store_degrades_instead_of_raising(self) -> None:
        client = MagicMock()
        client.rpc.side_effect = ConnectionError("connection refused")
        store = SupabaseVectorStore(client, SearchTarget.EMAIL, dimensions=4, retry_seconds=60)

        assert store.query(unit(0), k=5) == []
        assert store.degraded
        assert isinstance(store.last_error, VectorStoreDegraded)
        assert not store.is_available()

        # While degraded the store is not queried again.
        assert store.query(unit(0), k=5) == []
        assert client.rpc.call_count == 1

    def test_recovers_after_retry_window(self) -> None:
        client = MagicMock()
        client.rpc.side_effect = [ConnectionError("down"), MagicMock(execute=MagicMock(return_value=MagicMock(data=[])))]
        store = SupabaseVectorStore(client, SearchTarget.EMAIL, dimensions=4, retry_seconds=0)

        store.query(unit(0), k=5)
        assert store.is_available()

        assert store.query(unit(0), k=5) == []
        assert not store.degraded

    def test_upsert_updates_embedding_column(self) -> None:
        client = MagicMock()
        store = SupabaseVectorStore(client, SearchTarget.EMAIL, dimensions=4)

        store.upsert(3, unit(1))

        client.table.assert_called_once_with("emails")
        payload = client.table.return_value.update.call_args[0][0]
        assert payload["embedding_vector"] == unit(1)
        assert "embedding_generated_at" in payload
        client.table.return_value.update.return_value.eq.assert_called_once_with("id", 3)

    def test_upsert_failure_raises_degraded(self) -> None:
        client = MagicMock()
        client.table.return_value.update.return_value.eq.return_value.execute.side_effect = RuntimeError("boom")
        store = SupabaseVectorStore(client, SearchTarget.TASK, dimensions=4)

        with pytest.raises(VectorStoreDegraded):
            store.upsert(3, unit(1))
        assert store.degraded

    def test_upsert_rejects_wrong_width(self) -> None:
        store = SupabaseVectorStore(MagicMock(), SearchTarget.EMAIL, dimensions=768)
        with pytest.raises(ValueError):
            store.upsert(1, [0.1] * 1536)
