"""Abstract base class for raw vector-store drivers.

The driver is deliberately thin: it stores points, runs nearest-neighbour
searches and fused dense+sparse queries, and evaluates already-built
filters.  Validation (dimensions, finiteness, batch sizing), filter
construction from caller-facing keys, caching and the unsafe-operation
guards all live one layer up in
:class:`~course_rag.services.retrieval.vector_index.VectorIndex`.

Filters are expressed in a driver-neutral form: a :class:`PayloadFilter` is
a conjunction of :class:`FieldCondition` objects, each of which is an exact
match, an any-of match, or a numeric / ISO-date range.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from course_rag.models.rag import CollectionConfig, CollectionInfo, IndexEntry, SparseVector


@dataclass(frozen=True)
class FieldCondition:
    """One predicate on a payload field.

    Exactly one of ``match``, ``any`` or the ``gte`` / ``lte`` range pair is
    expected to be set.
    """

    key: str
    match: Any = None
    any: tuple[Any, ...] | None = None
    gte: Any = None
    lte: Any = None

    def matches(self, payload: dict[str, Any]) -> bool:
        value = payload.get(self.key)
        if value is None:
            return False
        if self.match is not None and value != self.match:
            return False
        if self.any is not None and value not in self.any:
            return False
        try:
            if self.gte is not None and value < self.gte:
                return False
            if self.lte is not None and value > self.lte:
                return False
        except TypeError:
            return False
        return True


@dataclass(frozen=True)
class PayloadFilter:
    """Conjunction (logical AND) of field conditions."""

    must: tuple[FieldCondition, ...] = ()

    def matches(self, payload: dict[str, Any]) -> bool:
        return all(cond.matches(payload) for cond in self.must)

    @property
    def is_empty(self) -> bool:
        return not self.must


@dataclass(frozen=True)
class Prefetch:
    """One branch of a fused query: a dense or a sparse nearest-neighbour search."""

    using: str  # "dense" or "sparse"
    limit: int
    dense: list[float] | None = None
    sparse: SparseVector | None = None


@dataclass(frozen=True)
class ScoredPoint:
    id: str
    score: float
    payload: dict[str, Any] = field(default_factory=dict)


# Concrete drivers live in course_rag/providers/vector_store/:
#   InMemoryVectorStore -- numpy-backed, process-local (default, tests)
#   ChromaDBVectorStore -- chromadb PersistentClient (on-disk persistence)
class IVectorStoreClient(ABC):
    """Contract for raw vector-store drivers.

    Every method is async so network-backed stores can be swapped in
    without blocking the event loop.  Upserts are keyed by point id and are
    idempotent.
    """

    @abstractmethod
    async def create_collection(self, name: str, config: CollectionConfig) -> None:
        """Create collection *name*.  Behaviour on an existing name is driver-defined."""

    @abstractmethod
    async def collection_exists(self, name: str) -> bool:
        """Return ``True`` if collection *name* exists."""

    @abstractmethod
    async def create_payload_index(self, name: str, field_name: str, schema: str) -> None:
        """Declare *field_name* as filterable with the given schema type.

        Parameters
        ----------
        schema:
            One of ``"keyword"``, ``"float"``, ``"integer"``, ``"datetime"``.
        """

    @abstractmethod
    async def list_collections(self) -> list[str]:
        """Return the names of every collection."""

    @abstractmethod
    async def delete_collection(self, name: str) -> None:
        """Drop collection *name* and all of its points (no-op if absent)."""

    @abstractmethod
    async def upsert(self, name: str, entries: list[IndexEntry], wait: bool = True) -> None:
        """Insert or replace *entries* by id.

        Raises
        ------
        course_rag.utils.errors.VectorStoreError
            If the driver rejects the batch.
        """

    @abstractmethod
    async def search(
        self,
        name: str,
        vector: list[float],
        limit: int,
        payload_filter: PayloadFilter | None = None,
    ) -> list[ScoredPoint]:
        """Dense nearest-neighbour search, best match first."""

    @abstractmethod
    async def query(
        self,
        name: str,
        prefetch: list[Prefetch],
        limit: int,
        payload_filter: PayloadFilter | None = None,
    ) -> list[ScoredPoint]:
        """Run every prefetch branch and fuse the ranked lists with RRF.

        Branches are given explicitly; the driver never invents a missing
        one.
        """

    @abstractmethod
    async def delete(self, name: str, payload_filter: PayloadFilter) -> None:
        """Delete every point matching *payload_filter*."""

    @abstractmethod
    async def delete_points(self, name: str, ids: list[str]) -> None:
        """Delete points by id (no-op for unknown ids)."""

    @abstractmethod
    async def count(self, name: str, payload_filter: PayloadFilter | None = None) -> int:
        """Return the number of points (matching *payload_filter*, if given)."""

    @abstractmethod
    async def get_collection_info(self, name: str) -> CollectionInfo:
        """Return size / configuration information for collection *name*."""

    @abstractmethod
    async def health(self) -> bool:
        """Return ``True`` if the backing store is reachable."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"memory"`` or ``"chromadb"``."""
