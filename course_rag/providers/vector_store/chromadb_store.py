"""ChromaDB vector store driver.

Wraps ``chromadb.PersistentClient`` to implement :class:`IVectorStoreClient`
with on-disk persistence.  ChromaDB has no native sparse vectors, so the
hashed lexical vector of each point is stored as JSON in its metadata and
the sparse branch of a fused query is scored client-side.

Metadata values must be scalars in ChromaDB; ``None`` values are dropped
and lists / dicts are stored JSON-encoded under a ``_json:`` key prefix and
decoded again on read.  The chunk text is stored as the ChromaDB document.
"""

from __future__ import annotations

import json
import os
from typing import Any

# Must be set before chromadb is imported.
os.environ.setdefault("ANONYMIZED_TELEMETRY", "False")

import chromadb
import structlog

from course_rag.interfaces.vector_store_provider import (
    FieldCondition,
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
_SPARSE_KEY = "_sparse"
_JSON_PREFIX = "_json:"

_SPACES = {Distance.COSINE: "cosine", Distance.EUCLID: "l2", Distance.DOT: "ip"}
_DISTANCES = {space: distance for distance, space in _SPACES.items()}


class _NoopEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """Embedding function that refuses to run.

    Every vector is computed by the embedding provider before it reaches
    the store; this stops ChromaDB from loading its default ONNX model.
    """

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError("Embeddings are always supplied by the caller")

    def name(self) -> str:
        return "noop_precomputed"


class ChromaDBVectorStore(IVectorStoreClient):
    """Vector store driver backed by ChromaDB with local persistence."""

    def __init__(self, persist_directory: str = "./data/chromadb", client: Any = None) -> None:
        self._persist_directory = persist_directory
        self._client = client or chromadb.PersistentClient(
            path=persist_directory,
            settings=chromadb.config.Settings(anonymized_telemetry=False),
        )
        # ChromaDB indexes every metadata key itself; declared indexes are
        # tracked only so collection info can report them.
        self._payload_indexes: dict[str, dict[str, str]] = {}

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    async def create_collection(self, name: str, config: CollectionConfig) -> None:
        try:
            self._client.create_collection(
                name=name,
                metadata={
                    "hnsw:space": _SPACES[config.distance],
                    "vector_size": config.vector_size,
                    "sparse_enabled": config.sparse_enabled,
                },
                embedding_function=_NoopEmbeddingFunction(),
            )
        except Exception as exc:
            raise VectorStoreError(
                message=f"Failed to create collection '{name}': {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.info(
            "chromadb_collection_created",
            collection=name,
            vector_size=config.vector_size,
            distance=config.distance.value,
            persist_directory=self._persist_directory,
        )

    async def collection_exists(self, name: str) -> bool:
        return name in await self.list_collections()

    async def create_payload_index(self, name: str, field_name: str, schema: str) -> None:
        self._collection(name)
        self._payload_indexes.setdefault(name, {})[field_name] = schema

    async def list_collections(self) -> list[str]:
        # Older chromadb releases return Collection objects, newer ones names.
        return sorted(
            c if isinstance(c, str) else c.name for c in self._client.list_collections()
        )

    async def delete_collection(self, name: str) -> None:
        if await self.collection_exists(name):
            self._client.delete_collection(name=name)
        self._payload_indexes.pop(name, None)

    # ------------------------------------------------------------------
    # Points
    # ------------------------------------------------------------------

    async def upsert(self, name: str, entries: list[IndexEntry], wait: bool = True) -> None:
        if not entries:
            return
        collection = self._collection(name)
        ids = [e.id for e in entries]
        documents = [e.text for e in entries]
        metadatas = [_encode_metadata(e) for e in entries]
        embeddings = [e.vector for e in entries]
        try:
            if any(v is None for v in embeddings):
                raise ValueError("every point needs a dense vector")
            collection.upsert(
                ids=ids, embeddings=embeddings, documents=documents, metadatas=metadatas
            )
        except Exception as exc:
            raise VectorStoreError(
                message=f"Upsert into '{name}' failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def search(
        self,
        name: str,
        vector: list[float],
        limit: int,
        payload_filter: PayloadFilter | None = None,
    ) -> list[ScoredPoint]:
        collection = self._collection(name)
        distance = self._distance(collection)
        where, post = _split_filter(payload_filter)

        total = collection.count()
        if total == 0 or limit <= 0:
            return []
        # Conditions ChromaDB cannot evaluate are applied afterwards, so the
        # whole collection is fetched when any are present.
        n_results = total if post else min(limit, total)
        try:
            raw = collection.query(
                query_embeddings=[vector],
                n_results=n_results,
                where=where,
                include=["metadatas", "documents", "distances"],
            )
        except Exception as exc:
            raise VectorStoreError(
                message=f"Search in '{name}' failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        points: list[ScoredPoint] = []
        for pid, meta, doc, dist in zip(
            raw["ids"][0], raw["metadatas"][0], raw["documents"][0], raw["distances"][0]
        ):
            payload = _decode_metadata(meta, doc)
            if post and not all(cond.matches(payload) for cond in post):
                continue
            points.append(ScoredPoint(id=pid, score=_similarity(dist, distance), payload=payload))
            if len(points) >= limit:
                break
        return points

    async def query(
        self,
        name: str,
        prefetch: list[Prefetch],
        limit: int,
        payload_filter: PayloadFilter | None = None,
    ) -> list[ScoredPoint]:
        payloads: dict[str, dict[str, Any]] = {}
        runs: list[list[str]] = []
        for branch in prefetch:
            if branch.using == "dense" and branch.dense is not None:
                hits = await self.search(name, branch.dense, branch.limit, payload_filter)
            elif branch.using == "sparse" and branch.sparse is not None:
                hits = self._sparse_search(name, branch.sparse.as_dict(), branch.limit, payload_filter)
            else:
                raise VectorStoreError(
                    message=f"Invalid prefetch branch '{branch.using}'",
                    provider_name=self.get_provider_name(),
                )
            for hit in hits:
                payloads[hit.id] = hit.payload
            runs.append([hit.id for hit in hits])

        fused = reciprocal_rank_fusion(runs, k=_RRF_K)[:limit]
        return [ScoredPoint(id=pid, score=score, payload=payloads[pid]) for pid, score in fused]

    async def delete(self, name: str, payload_filter: PayloadFilter) -> None:
        ids = list(self._matching(name, payload_filter))
        if ids:
            self._collection(name).delete(ids=ids)

    async def delete_points(self, name: str, ids: list[str]) -> None:
        if ids:
            self._collection(name).delete(ids=ids)

    async def count(self, name: str, payload_filter: PayloadFilter | None = None) -> int:
        if payload_filter is None or payload_filter.is_empty:
            return self._collection(name).count()
        return len(self._matching(name, payload_filter))

    async def get_collection_info(self, name: str) -> CollectionInfo:
        collection = self._collection(name)
        meta = collection.metadata or {}
        return CollectionInfo(
            name=name,
            points_count=collection.count(),
            vector_size=int(meta.get("vector_size", 0)),
            distance=self._distance(collection),
            sparse_enabled=bool(meta.get("sparse_enabled", False)),
            payload_indexes=sorted(self._payload_indexes.get(name, {})),
        )

    async def health(self) -> bool:
        try:
            return bool(self._client.heartbeat())
        except Exception as exc:
            logger.warning("chromadb_health_failed", error=str(exc))
            return False

    def get_provider_name(self) -> str:
        return "chromadb"

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _collection(self, name: str) -> Any:
        try:
            return self._client.get_collection(name=name, embedding_function=_NoopEmbeddingFunction())
        except Exception as exc:
            raise VectorStoreError(
                message=f"Collection '{name}' not found",
                provider_name=self.get_provider_name(),
            ) from exc

    @staticmethod
    def _distance(collection: Any) -> Distance:
        space = (collection.metadata or {}).get("hnsw:space", "cosine")
        return _DISTANCES.get(space, Distance.COSINE)

    def _matching(
        self, name: str, payload_filter: PayloadFilter | None
    ) -> dict[str, dict[str, Any]]:
        """Return ``{id: payload}`` for every point matching *payload_filter*."""
        collection = self._collection(name)
        where, post = _split_filter(payload_filter)
        raw = collection.get(where=where, include=["metadatas", "documents"])
        matched: dict[str, dict[str, Any]] = {}
        for pid, meta, doc in zip(raw["ids"], raw["metadatas"], raw["documents"]):
            payload = _decode_metadata(meta, doc)
            if all(cond.matches(payload) for cond in post):
                matched[pid] = payload
        return matched

    def _sparse_search(
        self,
        name: str,
        query: dict[int, float],
        limit: int,
        payload_filter: PayloadFilter | None,
    ) -> list[ScoredPoint]:
        if not query or limit <= 0:
            return []
        collection = self._collection(name)
        where, post = _split_filter(payload_filter)
        raw = collection.get(where=where, include=["metadatas", "documents"])

        scored: list[ScoredPoint] = []
        for pid, meta, doc in zip(raw["ids"], raw["metadatas"], raw["documents"]):
            sparse = _decode_sparse((meta or {}).get(_SPARSE_KEY))
            score = sparse_dot(query, sparse)
            if score <= 0:
                continue
            payload = _decode_metadata(meta, doc)
            if all(cond.matches(payload) for cond in post):
                scored.append(ScoredPoint(id=pid, score=score, payload=payload))
        scored.sort(key=lambda p: p.score, reverse=True)
        return scored[:limit]


# ---------------------------------------------------------------------------
# Metadata / filter translation
# ---------------------------------------------------------------------------


def _encode_metadata(entry: IndexEntry) -> dict[str, Any]:
    meta: dict[str, Any] = {}
    for key, value in entry.payload.items():
        if key == "text" or value is None:
            continue
        if isinstance(value, (str, int, float, bool)):
            meta[key] = value
        else:
            meta[_JSON_PREFIX + key] = json.dumps(value, default=str)
    if entry.sparse_vector is not None and not entry.sparse_vector.is_empty:
        meta[_SPARSE_KEY] = json.dumps(
            {"indices": entry.sparse_vector.indices, "values": entry.sparse_vector.values}
        )
    return meta


def _decode_metadata(meta: dict[str, Any] | None, document: str | None) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    for key, value in (meta or {}).items():
        if key == _SPARSE_KEY:
            continue
        if key.startswith(_JSON_PREFIX):
            payload[key[len(_JSON_PREFIX):]] = json.loads(value)
        else:
            payload[key] = value
    payload["text"] = document or ""
    return payload


def _decode_sparse(raw: str | None) -> dict[int, float]:
    if not raw:
        return {}
    data = json.loads(raw)
    return dict(zip(data.get("indices", []), data.get("values", [])))


def _split_filter(
    payload_filter: PayloadFilter | None,
) -> tuple[dict[str, Any] | None, list[FieldCondition]]:
    """Translate *payload_filter* into a ChromaDB ``where`` clause.

    Returns ``(where, leftover)`` where *leftover* holds the conditions
    ChromaDB cannot evaluate (range bounds on strings such as ISO dates)
    and that must be checked client-side.
    """
    if payload_filter is None or payload_filter.is_empty:
        return None, []

    clauses: list[dict[str, Any]] = []
    leftover: list[FieldCondition] = []
    for cond in payload_filter.must:
        if cond.match is not None:
            clauses.append({cond.key: {"$eq": cond.match}})
        if cond.any is not None:
            clauses.append({cond.key: {"$in": list(cond.any)}})
        numeric = all(b is None or isinstance(b, (int, float)) for b in (cond.gte, cond.lte))
        if cond.gte is not None or cond.lte is not None:
            if not numeric:
                leftover.append(cond)
                continue
            if cond.gte is not None:
                clauses.append({cond.key: {"$gte": cond.gte}})
            if cond.lte is not None:
                clauses.append({cond.key: {"$lte": cond.lte}})

    if not clauses:
        return None, leftover
    if len(clauses) == 1:
        return clauses[0], leftover
    return {"$and": clauses}, leftover


def _similarity(distance_value: float, distance: Distance) -> float:
    """Turn a ChromaDB distance into a higher-is-better score."""
    if distance == Distance.EUCLID:
        return -float(distance_value)
    # cosine and ip distances are both ``1 - similarity``.
    return 1.0 - float(distance_value)
