"""Vector store adapters: durable vectors keyed by record id, nearest-neighbour queries.

Adapters never raise from ``query``. When the backing store is unreachable
they report themselves degraded and return an empty list, and they stay
degraded for ``retry_seconds`` before probing the store again.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol, cast

import numpy as np

from email_tasks.errors import VectorStoreDegraded
from email_tasks.pipeline_config import SearchTarget
from email_tasks.storage.models import parse_timestamp

if TYPE_CHECKING:
    from supabase import Client

    from email_tasks.storage.memory_store import MemoryRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VectorMatch:
    """One nearest-neighbour hit; smaller distance is closer."""

    record_id: int
    distance: float
    recorded_at: datetime | None = None


def rank_matches(matches: list[VectorMatch]) -> list[VectorMatch]:
    """Order by distance ascending, ties broken by the more recent record."""
    return sorted(
        matches,
        key=lambda m: (m.distance, -(m.recorded_at.timestamp() if m.recorded_at else 0.0)),
    )


def is_blank(vector: list[float] | None) -> bool:
    return not vector or not any(vector)


class VectorStore(Protocol):
    target: SearchTarget
    dimensions: int

    def upsert(self, record_id: int, vector: list[float], recorded_at: datetime | None = None) -> None: ...

    def query(self, vector: list[float], k: int) -> list[VectorMatch]: ...

    def is_available(self) -> bool: ...


class _DegradationTracker:
    """Shared degraded-state bookkeeping."""

    def __init__(self, retry_seconds: float) -> None:
        self.retry_seconds = retry_seconds
        self.degraded_since: float | None = None
        self.last_error: VectorStoreDegraded | None = None

    @property
    def degraded(self) -> bool:
        return self.degraded_since is not None

    def mark_degraded(self, reason: str) -> None:
        if self.degraded_since is None:
            logger.warning("Vector store degraded: %s", reason)
        self.degraded_since = time.monotonic()
        self.last_error = VectorStoreDegraded(reason)

    def mark_healthy(self) -> None:
        if self.degraded_since is not None:
            logger.info("Vector store recovered")
        self.degraded_since = None
        self.last_error = None

    def is_available(self) -> bool:
        if self.degraded_since is None:
            return True
        return time.monotonic() - self.degraded_since >= self.retry_seconds

    def _check_width(self, vector: list[float], dimensions: int) -> None:
        if len(vector) != dimensions:
            raise ValueError(f"Refusing to store a {len(vector)}-dim vector; expected {dimensions}")


class SupabaseVectorStore(_DegradationTracker):
    """pgvector columns on the ``emails``/``tasks`` tables.

    Queries go through the ``match_emails``/``match_tasks`` RPCs, which
    return ``id``, cosine ``distance`` and the record ``timestamp``.
    """

    _TABLES = {SearchTarget.EMAIL: "emails", SearchTarget.TASK: "tasks"}

    def __init__(
        self,
        client: Client,
        target: SearchTarget,
        dimensions: int = 768,
        retry_seconds: float = 30.0,
    ) -> None:
        super().__init__(retry_seconds)
        self.client = client
        self.target = target
        self.dimensions = dimensions
        self.table = self._TABLES[target]

    def upsert(self, record_id: int, vector: list[float], recorded_at: datetime | None = None) -> None:
        self._check_width(vector, self.dimensions)
        try:
            (
                self.client.table(self.table)
                .update({"embedding_vector": vector, "embedding_generated_at": datetime.now(UTC).isoformat()})
                .eq("id", record_id)
                .execute()
            )
        except Exception as exc:
            self.mark_degraded(f"upsert into {self.table} failed: {exc}")
            raise VectorStoreDegraded(f"Could not store embedding for {self.table} {record_id}") from exc

    def query(self, vector: list[float], k: int) -> list[VectorMatch]:
        if is_blank(vector) or not self.is_available():
            return []
        try:
            result = self.client.rpc(
                f"match_{self.table}",
                {"query_embedding": vector, "match_count": k},
            ).execute()
        except Exception as exc:
            self.mark_degraded(f"match_{self.table} failed: {exc}")
            return []
        self.mark_healthy()
        rows = cast(list[dict[str, Any]], result.data or [])
        matches = [
            VectorMatch(
                record_id=int(r["id"]),
                distance=float(r["distance"]),
                recorded_at=parse_timestamp(r.get("timestamp") or r.get("created_at")),
            )
            for r in rows
        ]
        return rank_matches(matches)[:k]


class InMemoryVectorStore(_DegradationTracker):
    """Cosine search with numpy over the vectors held by a MemoryRepository."""

    def __init__(
        self,
        repository: MemoryRepository,
        target: SearchTarget,
        dimensions: int = 768,
        retry_seconds: float = 30.0,
    ) -> None:
        super().__init__(retry_seconds)
        self.repository = repository
        self.target = target
        self.dimensions = dimensions
        self.forced_degraded = False

    def force_degraded(self, degraded: bool = True) -> None:
        """Simulate an unreachable store."""
        self.forced_degraded = degraded
        if degraded:
            self.mark_degraded("forced")
        else:
            self.mark_healthy()

    def is_available(self) -> bool:
        return not self.forced_degraded and super().is_available()

    def upsert(self, record_id: int, vector: list[float], recorded_at: datetime | None = None) -> None:
        self._check_width(vector, self.dimensions)
        if self.forced_degraded:
            raise VectorStoreDegraded("In-memory vector store is degraded")
        if self.target is SearchTarget.EMAIL:
            self.repository.set_email_embedding(record_id, vector)
        else:
            self.repository.set_task_embedding(record_id, vector)

    def _stored(self) -> list[tuple[int, datetime | None, list[float]]]:
        with self.repository._lock:
            if self.target is SearchTarget.EMAIL:
                return [
                    (e.id, e.timestamp, e.embedding_vector)
                    for e in self.repository.emails.values()
                    if e.embedding_vector is not None
                ]
            return [
                (t.id, t.created_at, t.embedding_vector)  # type: ignore[misc]
                for t in self.repository.tasks.values()
                if t.embedding_vector is not None
            ]

    def query(self, vector: list[float], k: int) -> list[VectorMatch]:
        if is_blank(vector) or not self.is_available():
            return []
        stored = self._stored()
        if not stored:
            return []

        matrix = np.asarray([v for _, _, v in stored], dtype=float)
        query = np.asarray(vector, dtype=float)
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        norms[norms == 0] = 1.0
        distances = 1.0 - (matrix @ query) / norms

        matches = [
            VectorMatch(record_id=record_id, distance=round(float(distance), 9), recorded_at=recorded_at)
            for (record_id, recorded_at, _), distance in zip(stored, distances, strict=True)
        ]
        return rank_matches(matches)[:k]
