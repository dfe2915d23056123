"""Process-local vector store driver backed by numpy.

Implements the full :class:`IVectorStoreClient` contract (dense search with
Cosine / Euclid / Dot scoring, sparse dot-product search, RRF-fused
queries, filtered delete and count) without an external service.  This is
the default driver and the one used throughout the test suite.

Points live in plain dicts keyed by id; dense vectors are stacked into a
matrix per search, which is fine for course-sized collections.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import structlog

from course_rag.interfaces.vector_store_provider import (
    IVectorStoreClient,
    PayloadFilter,
    Prefetch,
    ScoredPoint,
)
from course_rag.models.rag import CollectionConfig, CollectionInfo, Distance, IndexEntry
from course_rag.utils.errors import VectorStoreError
from course_rag.utils.fusion import reciprocal_rank_fusion
from course_rag.utils.text_analysis import sparse_dot

logger = structlog.get_logger(logger_name=__name__)

_RRF_K = 60


@dataclass
class _Point:
    vector: np.ndarray | None
    sparse: dict[int, float]
    payload: dict[str, Any]


@dataclass
class _Collection:
    config: CollectionConfig
    points: dict[str, _Point] = field(default_factory=dict)
    payload_indexes: dict[str, str] = field(default_factory=dict)


class InMemoryVectorStore(IVectorStoreClient):
    """Vector store driver that keeps every collection in process memory."""

    def __init__(self) -> None:
        self._collections: dict[str, _Collection] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    async def create_collection(self, name: str, config: CollectionConfig) -> None:
        with self._lock:
            if name in self._collections:
                raise VectorStoreError(
                    message=f"Collection '{name}' already exists",
                    provider_name=self.get_provider_name(),
                )
            self._collections[name] = _Collection(config=config)
        logger.info(
            "memory_collection_created",
            collection=name,
            vector_size=config.vector_size,
            distance=config.distance.value,
        )

    async def collection_exists(self, name: str) -> bool:
        return name in self._collections

    async def create_payload_index(self, name: str, field_name: str, schema: str) -> None:
        with self._lock:
            self._get(name).payload_indexes[field_name] = schema

    async def list_collections(self) -> list[str]:
        return sorted(self._collections)

    async def delete_collection(self, name: str) -> None:
        with self._lock:
            self._collections.pop(name, None)

    # ------------------------------------------------------------------
    # Points
    # ------------------------------------------------------------------

    async def upsert(self, name: str, entries: list[IndexEntry], wait: bool = True) -> None:
        with self._lock:
            collection = self._get(name)
            size = collection.config.vector_size
            staged: dict[str, _Point] = {}
            for entry in entries:
                vector = None
                if entry.vector is not None:
                    if len(entry.vector) != size:
                        raise VectorStoreError(
                            message=(
                                f"Point '{entry.id}' has dimension {len(entry.vector)}, "
                                f"collection expects {size}"
                            ),
                            provider_name=self.get_provider_name(),
                        )
                    vector = np.asarray(entry.vector, dtype=np.float64)
                sparse = entry.sparse_vector.as_dict() if entry.sparse_vector else {}
                staged[entry.id] = _Point(vector=vector, sparse=sparse, payload=dict(entry.payload))
            # Batch is applied only once every point validated.
            collection.points.update(staged)

    async def search(
        self,
        name: str,
        vector: list[float],
        limit: int,
        payload_filter: PayloadFilter | None = None,
    ) -> list[ScoredPoint]:
        with self._lock:
            collection = self._get(name)
            ranked = self._dense_rank(collection, vector, limit, payload_filter)
            return [
                ScoredPoint(id=pid, score=score, payload=dict(collection.points[pid].payload))
                for pid, score in ranked
            ]

    async def query(
        self,
        name: str,
        prefetch: list[Prefetch],
        limit: int,
        payload_filter: PayloadFilter | None = None,
    ) -> list[ScoredPoint]:
        with self._lock:
            collection = self._get(name)
            runs: list[list[str]] = []
            for branch in prefetch:
                if branch.using == "dense" and branch.dense is not None:
                    ranked = self._dense_rank(collection, branch.dense, branch.limit, payload_filter)
                elif branch.using == "sparse" and branch.sparse is not None:
                    ranked = self._sparse_rank(
                        collection, branch.sparse.as_dict(), branch.limit, payload_filter
                    )
                else:
                    raise VectorStoreError(
                        message=f"Invalid prefetch branch '{branch.using}'",
                        provider_name=self.get_provider_name(),
                    )
                runs.append([pid for pid, _ in ranked])

            fused = reciprocal_rank_fusion(runs, k=_RRF_K)[:limit]
            return [
                ScoredPoint(id=pid, score=score, payload=dict(collection.points[pid].payload))
                for pid, score in fused
            ]

    async def delete(self, name: str, payload_filter: PayloadFilter) -> None:
        with self._lock:
            collection = self._get(name)
            doomed = [
                pid for pid, point in collection.points.items() if payload_filter.matches(point.payload)
            ]
            for pid in doomed:
                del collection.points[pid]

    async def delete_points(self, name: str, ids: list[str]) -> None:
        with self._lock:
            collection = self._get(name)
            for pid in ids:
                collection.points.pop(pid, None)

    async def count(self, name: str, payload_filter: PayloadFilter | None = None) -> int:
        with self._lock:
            collection = self._get(name)
            if payload_filter is None or payload_filter.is_empty:
                return len(collection.points)
            return sum(1 for p in collection.points.values() if payload_filter.matches(p.payload))

    async def get_collection_info(self, name: str) -> CollectionInfo:
        with self._lock:
            collection = self._get(name)
            return CollectionInfo(
                name=name,
                points_count=len(collection.points),
                vector_size=collection.config.vector_size,
                distance=collection.config.distance,
                sparse_enabled=collection.config.sparse_enabled,
                payload_indexes=sorted(collection.payload_indexes),
            )

    async def health(self) -> bool:
        return True

    def get_provider_name(self) -> str:
        return "memory"

    # ------------------------------------------------------------------
    # Scoring helpers
    # ------------------------------------------------------------------

    def _get(self, name: str) -> _Collection:
        collection = self._collections.get(name)
        if collection is None:
            raise VectorStoreError(
                message=f"Collection '{name}' not found",
                provider_name=self.get_provider_name(),
            )
        return collection

    @staticmethod
    def _candidates(
        collection: _Collection, payload_filter: PayloadFilter | None
    ) -> list[tuple[str, _Point]]:
        return [
            (pid, point)
            for pid, point in collection.points.items()
            if payload_filter is None or payload_filter.matches(point.payload)
        ]

    def _dense_rank(
        self,
        collection: _Collection,
        vector: list[float],
        limit: int,
        payload_filter: PayloadFilter | None,
    ) -> list[tuple[str, float]]:
        candidates = [
            (pid, point)
            for pid, point in self._candidates(collection, payload_filter)
            if point.vector is not None
        ]
        if not candidates or limit <= 0:
            return []

        query = np.asarray(vector, dtype=np.float64)
        if query.shape[0] != collection.config.vector_size:
            raise VectorStoreError(
                message=(
                    f"Query vector has dimension {query.shape[0]}, "
                    f"collection expects {collection.config.vector_size}"
                ),
                provider_name=self.get_provider_name(),
            )
        matrix = np.vstack([point.vector for _, point in candidates])
        scores = _score(matrix, query, collection.config.distance)

        order = np.argsort(-scores, kind="stable")[:limit]
        return [(candidates[i][0], float(scores[i])) for i in order]

    def _sparse_rank(
        self,
        collection: _Collection,
        query: dict[int, float],
        limit: int,
        payload_filter: PayloadFilter | None,
    ) -> list[tuple[str, float]]:
        if not query or limit <= 0:
            return []
        scored = []
        for pid, point in self._candidates(collection, payload_filter):
            score = sparse_dot(query, point.sparse)
            if score > 0:
                scored.append((pid, score))
        scored.sort(key=lambda item: item[1], reverse=True)
        return scored[:limit]


def _score(matrix: np.ndarray, query: np.ndarray, distance: Distance) -> np.ndarray:
    """Higher-is-better similarity of every row of *matrix* to *query*."""
    if distance == Distance.DOT:
        return matrix @ query
    if distance == Distance.EUCLID:
        return -np.linalg.norm(matrix - query, axis=1)
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    with np.errstate(divide="ignore", invalid="ignore"):
        sims = np.where(norms > 0, (matrix @ query) / norms, 0.0)
    return sims
