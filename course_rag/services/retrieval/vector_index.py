"""Validation and policy layer over a vector-store driver.

:class:`VectorIndex` owns everything the raw driver does not:

* collection-name validation and idempotent creation with payload indexes;
* vector validation before any driver call (non-empty, finite, consistent
  dimension matching the collection);
* sub-batched upserts with per-batch failure isolation;
* translation of caller-facing filter keys into a :class:`PayloadFilter`;
* a TTL cache in front of dense searches, invalidated on every mutation;
* the guard that refuses an unfiltered delete.

Concurrent callers on the same collection are safe because each driver
operation is atomic on its own; nothing here holds a lock across an await.
"""

from __future__ import annotations

import hashlib
import json
import math
import re
from typing import Any

import numpy as np
import structlog

from course_rag.interfaces.cache_provider import ICacheProvider
from course_rag.interfaces.vector_store_provider import IVectorStoreClient, Prefetch, ScoredPoint
from course_rag.models.rag import (
    CollectionConfig,
    CollectionInfo,
    CollectionResult,
    DeleteResult,
    IndexEntry,
    InsertOptions,
    InsertResult,
    SearchResult,
    SearchType,
    SparseVector,
)
from course_rag.services.retrieval.filters import build_payload_filter, normalise_filters
from course_rag.utils.errors import (
    DimensionMismatchError,
    InvalidVectorError,
    NoFilterProvidedError,
    NoVectorsProvidedError,
    VectorStoreError,
)

logger = structlog.get_logger(logger_name=__name__)

_COLLECTION_NAME_RE = re.compile(r"^[A-Za-z0-9_-]{2,255}$")

# Payload fields declared filterable on every new collection.
PAYLOAD_INDEXES: tuple[tuple[str, str], ...] = (
    ("course_id", "keyword"),
    ("resource_id", "keyword"),
    ("quality_score", "float"),
    ("language", "keyword"),
    ("created_at", "datetime"),
    ("content_type", "keyword"),
)


class VectorIndex:
    """Validated access to one vector-store driver.

    Parameters
    ----------
    client:
        The raw driver.
    cache:
        Optional cache for :meth:`search_similar` results.
    """

    def __init__(self, client: IVectorStoreClient, cache: ICacheProvider | None = None) -> None:
        self._client = client
        self._cache = cache
        self._vector_sizes: dict[str, int] = {}

    @property
    def client(self) -> IVectorStoreClient:
        return self._client

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    async def create_collection(self, name: str, config: CollectionConfig) -> CollectionResult:
        """Create *name* if absent; an existing collection is left untouched."""
        self._validate_name(name)
        if await self._client.collection_exists(name):
            logger.debug("collection_exists", collection=name)
            return CollectionResult(name=name, existed=True)

        await self._client.create_collection(name, config)
        self._vector_sizes[name] = config.vector_size
        for field_name, schema in PAYLOAD_INDEXES:
            try:
                await self._client.create_payload_index(name, field_name, schema)
            except Exception as exc:
                logger.warning(
                    "payload_index_failed",
                    collection=name,
                    field=field_name,
                    error=str(exc),
                )
        logger.info(
            "collection_created",
            collection=name,
            vector_size=config.vector_size,
            distance=config.distance.value,
            provider=self._client.get_provider_name(),
        )
        return CollectionResult(name=name, existed=False)

    async def delete_collection(self, name: str) -> None:
        await self._client.delete_collection(name)
        self._vector_sizes.pop(name, None)
        await self._invalidate(name)

    async def get_collection_info(self, name: str) -> CollectionInfo:
        return await self._client.get_collection_info(name)

    async def list_collections(self) -> list[str]:
        return await self._client.list_collections()

    async def count(self, name: str, filters: dict[str, Any] | None = None) -> int:
        payload_filter, _ = build_payload_filter(filters)
        return await self._client.count(name, None if payload_filter.is_empty else payload_filter)

    async def health_check(self) -> bool:
        try:
            return await self._client.health()
        except Exception as exc:
            logger.warning("vector_store_health_failed", error=str(exc))
            return False

    # ------------------------------------------------------------------
    # Insert
    # ------------------------------------------------------------------

    async def insert_vectors(
        self,
        collection: str,
        entries: list[IndexEntry],
        options: InsertOptions | None = None,
    ) -> InsertResult:
        """Validate *entries* then upsert them in sequential sub-batches.

        Raises
        ------
        InvalidVectorError
            On an empty list, a missing / empty vector, or non-finite values.
        DimensionMismatchError
            When entries disagree on dimension, or differ from the
            collection's configured size.
        """
        opts = options or InsertOptions()
        if not entries:
            raise InvalidVectorError("No vectors provided for insertion")

        first_dim: int | None = None
        for entry in entries:
            if not entry.vector:
                raise InvalidVectorError(f"Entry '{entry.id}' has no vector")
            if not all(math.isfinite(v) for v in entry.vector):
                raise InvalidVectorError(f"Entry '{entry.id}' contains NaN or infinite values")
            if first_dim is None:
                first_dim = len(entry.vector)
            elif len(entry.vector) != first_dim:
                raise DimensionMismatchError(expected=first_dim, found=len(entry.vector))

        # The batch is self-consistent; only now ask the driver for the size.
        expected = await self._vector_size(collection)
        if expected and first_dim != expected:
            raise DimensionMismatchError(
                expected=expected,
                found=first_dim or 0,
                message=(
                    f"Vector dimension {first_dim} does not match collection "
                    f"'{collection}' dimension {expected}"
                ),
            )

        inserted = batches = failed = 0
        errors: list[str] = []
        for start in range(0, len(entries), opts.batch_size):
            batch = entries[start : start + opts.batch_size]
            batches += 1
            try:
                await self._client.upsert(collection, batch, wait=opts.wait)
                inserted += len(batch)
            except Exception as exc:
                failed += 1
                errors.append(f"Batch {batches}: {exc}")
                logger.error(
                    "vector_batch_failed",
                    collection=collection,
                    batch=batches,
                    size=len(batch),
                    error=str(exc),
                )

        if inserted:
            await self._invalidate(collection)
        logger.info(
            "vectors_inserted",
            collection=collection,
            inserted=inserted,
            batches=batches,
            failed_batches=failed,
        )
        return InsertResult(inserted=inserted, batches=batches, failed_batches=failed, errors=errors)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search_similar(
        self,
        collection: str,
        query_vector: list[float],
        filters: dict[str, Any] | None = None,
        top_k: int = 10,
    ) -> list[SearchResult]:
        """Dense nearest-neighbour search restricted by the recognised *filters*."""
        payload_filter, ignored = build_payload_filter(filters)
        if ignored:
            logger.debug("search_filters_ignored", collection=collection, keys=ignored)
        await self._validate_query_vector(collection, query_vector)

        recognised, _ = normalise_filters(filters)
        cache_key = self._cache_key(collection, query_vector, recognised, top_k)
        if self._cache is not None:
            cached = await self._cache.get(cache_key)
            if cached is not None:
                return cached

        points = await self._client.search(
            collection,
            query_vector,
            top_k,
            None if payload_filter.is_empty else payload_filter,
        )
        results = [_to_result(p, SearchType.SEMANTIC) for p in points]

        if self._cache is not None:
            await self._cache.set(cache_key, results)
        return results

    async def hybrid_search(
        self,
        collection: str,
        dense_vector: list[float] | None,
        sparse_vector: SparseVector | None,
        top_k: int = 10,
        filters: dict[str, Any] | None = None,
    ) -> list[SearchResult]:
        """One fused dense + sparse query.

        A branch whose vector is absent is left out of the fusion rather
        than zero-filled; the branches actually used are reported in each
        result's ``metadata["fusion_branches"]``.

        Raises
        ------
        NoVectorsProvidedError
            If both vectors are absent.
        """
        payload_filter, ignored = build_payload_filter(filters)
        if ignored:
            logger.debug("search_filters_ignored", collection=collection, keys=ignored)

        prefetch: list[Prefetch] = []
        if dense_vector:
            await self._validate_query_vector(collection, dense_vector)
            prefetch.append(Prefetch(using="dense", limit=top_k * 2, dense=dense_vector))
        if sparse_vector is not None and not sparse_vector.is_empty:
            prefetch.append(Prefetch(using="sparse", limit=top_k * 2, sparse=sparse_vector))
        if not prefetch:
            raise NoVectorsProvidedError()

        branches = [p.using for p in prefetch]
        points = await self._client.query(
            collection,
            prefetch,
            top_k,
            None if payload_filter.is_empty else payload_filter,
        )
        return [_to_result(p, SearchType.HYBRID, fusion_branches=branches) for p in points]

    # ------------------------------------------------------------------
    # Delete / cache
    # ------------------------------------------------------------------

    async def delete_by_filter(self, collection: str, filters: dict[str, Any] | None) -> DeleteResult:
        """Delete every point matching *filters*.

        Raises
        ------
        NoFilterProvidedError
            If *filters* is empty or contains no recognised key.
        """
        if not filters:
            raise NoFilterProvidedError()
        payload_filter, ignored = build_payload_filter(filters)
        if payload_filter.is_empty:
            raise NoFilterProvidedError(
                f"No recognised filter keys in {sorted(filters)}; refusing to delete"
            )

        before = await self._client.count(collection)
        await self._client.delete(collection, payload_filter)
        after = await self._client.count(collection)
        await self._invalidate(collection)

        deleted = max(0, before - after)
        logger.info("vectors_deleted", collection=collection, deleted=deleted, ignored_keys=ignored)
        return DeleteResult(deleted_count=deleted)

    async def clear_cache(self) -> None:
        if self._cache is not None:
            await self._cache.clear()

    async def _invalidate(self, collection: str) -> None:
        if self._cache is not None:
            await self._cache.delete_prefix(f"vi:{collection}:")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_name(name: str) -> None:
        if not _COLLECTION_NAME_RE.match(name or ""):
            raise VectorStoreError(
                message=(
                    f"Invalid collection name {name!r}: use 2-255 letters, digits, "
                    "underscores or hyphens"
                )
            )

    async def _vector_size(self, collection: str) -> int:
        if collection not in self._vector_sizes:
            info = await self._client.get_collection_info(collection)
            self._vector_sizes[collection] = info.vector_size
        return self._vector_sizes[collection]

    async def _validate_query_vector(self, collection: str, vector: list[float]) -> None:
        if not vector:
            raise InvalidVectorError("Query vector is empty")
        if not all(math.isfinite(v) for v in vector):
            raise InvalidVectorError("Query vector contains NaN or infinite values")
        expected = await self._vector_size(collection)
        if expected and len(vector) != expected:
            raise DimensionMismatchError(expected=expected, found=len(vector))

    @staticmethod
    def _cache_key(
        collection: str,
        vector: list[float],
        filters: dict[str, Any],
        top_k: int,
    ) -> str:
        vector_hash = hashlib.sha256(np.asarray(vector, dtype=np.float64).tobytes()).hexdigest()
        filter_part = json.dumps(filters, sort_keys=True, default=str)
        filter_hash = hashlib.sha256(filter_part.encode("utf-8")).hexdigest()[:16]
        return f"vi:{collection}:{vector_hash}:{filter_hash}:{top_k}"


def _to_result(point: ScoredPoint, search_type: SearchType, **extra: Any) -> SearchResult:
    metadata = {k: v for k, v in point.payload.items() if k != "text"}
    metadata.update(extra)
    return SearchResult(
        id=point.id,
        score=point.score,
        text=str(point.payload.get("text", "")),
        metadata=metadata,
        search_type=search_type,
    )
