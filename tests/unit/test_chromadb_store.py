"""Unit tests for the ChromaDB vector store driver.

Runs against a real on-disk ChromaDB client in a temp directory; every
vector is supplied explicitly, so no embedding model is ever loaded.
"""

from __future__ import annotations

import pytest

from course_rag.interfaces.vector_store_provider import FieldCondition, PayloadFilter, Prefetch
from course_rag.models.rag import CollectionConfig, Distance, IndexEntry, SparseVector
from course_rag.providers.vector_store.chromadb_store import ChromaDBVectorStore, _split_filter
from course_rag.utils.errors import VectorStoreError

_NAME = "lectures"


def _entry(pid: str, vector: list[float], course: str, created_at: str, sparse: dict[int, float] | None = None, **extra) -> IndexEntry:
    sparse = sparse or {}
    return IndexEntry(
        id=pid,
        vector=vector,
        sparse_vector=SparseVector(indices=list(sparse), values=list(sparse.values())),
        payload={"text": f"text of {pid}", "course_id": course, "created_at": created_at, **extra},
    )


_ENTRIES = [
    _entry("a", [1.0, 0.0, 0.0], "phys-101", "2024-03-01T09:00:00+00:00", {1: 1.0, 2: 0.5}, tags=["heat", "work"]),
    _entry("b", [0.0, 1.0, 0.0], "bio-201", "2024-04-10T09:00:00+00:00", {3: 2.0}),
    _entry("c", [0.9, 0.1, 0.0], "phys-101", "2024-05-20T09:00:00+00:00", {2: 1.0}, quality_score=55.0),
]


@pytest.fixture
def store(tmp_path) -> ChromaDBVectorStore:
    return ChromaDBVectorStore(persist_directory=str(tmp_path / "chroma"))


async def _seeded(store: ChromaDBVectorStore, distance: Distance = Distance.COSINE) -> ChromaDBVectorStore:
    await store.create_collection(_NAME, CollectionConfig(vector_size=3, distance=distance))
    await store.upsert(_NAME, _ENTRIES)
    return store


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------


class TestCollections:
    @pytest.mark.asyncio
    async def test_create_and_list(self, store) -> None:
        await store.create_collection(_NAME, CollectionConfig(vector_size=3))
        assert await store.list_collections() == [_NAME]
        assert await store.collection_exists(_NAME)

    @pytest.mark.asyncio
    async def test_duplicate_create_raises(self, store) -> None:
        await store.create_collection(_NAME, CollectionConfig(vector_size=3))
        with pytest.raises(VectorStoreError):
            await store.create_collection(_NAME, CollectionConfig(vector_size=3))

    @pytest.mark.asyncio
    async def test_info(self, store) -> None:
        await _seeded(store, Distance.DOT)
        await store.create_payload_index(_NAME, "course_id", "keyword")
        info = await store.get_collection_info(_NAME)
        assert info.points_count == 3
        assert info.vector_size == 3
        assert info.distance is Distance.DOT
        assert info.payload_indexes == ["course_id"]

    @pytest.mark.asyncio
    async def test_missing_collection(self, store) -> None:
        with pytest.raises(VectorStoreError, match="not found"):
            await store.count("nope")

    @pytest.mark.asyncio
    async def test_delete_collection(self, store) -> None:
        await _seeded(store)
        await store.delete_collection(_NAME)
        await store.delete_collection(_NAME)
        assert await store.list_collections() == []

    @pytest.mark.asyncio
    async def test_health(self, store) -> None:
        assert await store.health() is True
        assert store.get_provider_name() == "chromadb"


# ---------------------------------------------------------------------------
# Points and search
# ---------------------------------------------------------------------------


class TestPoints:
    @pytest.mark.asyncio
    async def test_payload_round_trip(self, store) -> None:
        await _seeded(store)
        hits = await store.search(_NAME, [1.0, 0.0, 0.0], limit=1)
        payload = hits[0].payload
        assert hits[0].id == "a"
        assert payload["text"] == "text of a"
        assert payload["tags"] == ["heat", "work"]
        assert "_sparse" not in payload

    @pytest.mark.asyncio
    async def test_cosine_ranking(self, store) -> None:
        await _seeded(store)
        hits = await store.search(_NAME, [1.0, 0.0, 0.0], limit=3)
        assert [h.id for h in hits] == ["a", "c", "b"]
        assert hits[0].score == pytest.approx(1.0, abs=1e-5)

    @pytest.mark.asyncio
    async def test_upsert_replaces(self, store) -> None:
        await _seeded(store)
        await store.upsert(_NAME, [_entry("b", [1.0, 0.0, 0.0], "bio-201", "2024-04-10T09:00:00+00:00")])
        assert await store.count(_NAME) == 3
        hits = await store.search(_NAME, [1.0, 0.0, 0.0], limit=2)
        assert {h.id for h in hits} == {"a", "b"}

    @pytest.mark.asyncio
    async def test_upsert_without_vector_raises(self, store) -> None:
        await store.create_collection(_NAME, CollectionConfig(vector_size=3))
        with pytest.raises(VectorStoreError):
            await store.upsert(_NAME, [IndexEntry(id="x", payload={"course_id": "c"})])

    @pytest.mark.asyncio
    async def test_exact_filter(self, store) -> None:
        await _seeded(store)
        only_bio = PayloadFilter(must=(FieldCondition(key="course_id", match="bio-201"),))
        hits = await store.search(_NAME, [1.0, 0.0, 0.0], limit=3, payload_filter=only_bio)
        assert [h.id for h in hits] == ["b"]
        assert await store.count(_NAME, only_bio) == 1

    @pytest.mark.asyncio
    async def test_string_range_filtered_client_side(self, store) -> None:
        await _seeded(store)
        april_onwards = PayloadFilter(
            must=(FieldCondition(key="created_at", gte="2024-04-01T00:00:00+00:00"),)
        )
        hits = await store.search(_NAME, [1.0, 0.0, 0.0], limit=3, payload_filter=april_onwards)
        assert [h.id for h in hits] == ["c", "b"]

    @pytest.mark.asyncio
    async def test_sparse_and_fused_query(self, store) -> None:
        await _seeded(store)
        sparse = SparseVector(indices=[2], values=[1.0])
        sparse_only = await store.query(_NAME, [Prefetch(using="sparse", limit=5, sparse=sparse)], limit=5)
        assert [p.id for p in sparse_only] == ["c", "a"]

        fused = await store.query(
            _NAME,
            [
                Prefetch(using="dense", limit=3, dense=[1.0, 0.0, 0.0]),
                Prefetch(using="sparse", limit=3, sparse=sparse),
            ],
            limit=2,
        )
        assert {p.id for p in fused} == {"a", "c"}

    @pytest.mark.asyncio
    async def test_invalid_prefetch(self, store) -> None:
        await _seeded(store)
        with pytest.raises(VectorStoreError, match="Invalid prefetch"):
            await store.query(_NAME, [Prefetch(using="dense", limit=3)], limit=3)

    @pytest.mark.asyncio
    async def test_delete_by_filter_and_ids(self, store) -> None:
        await _seeded(store)
        await store.delete(_NAME, PayloadFilter(must=(FieldCondition(key="course_id", match="phys-101"),)))
        assert await store.count(_NAME) == 1
        await store.delete_points(_NAME, ["b"])
        assert await store.count(_NAME) == 0


# ---------------------------------------------------------------------------
# Filter translation
# ---------------------------------------------------------------------------


class TestSplitFilter:
    def test_empty(self) -> None:
        assert _split_filter(None) == (None, [])
        assert _split_filter(PayloadFilter()) == (None, [])

    def test_single_clause(self) -> None:
        where, leftover = _split_filter(PayloadFilter(must=(FieldCondition(key="course_id", match="c1"),)))
        assert where == {"course_id": {"$eq": "c1"}}
        assert leftover == []

    def test_conjunction_and_numeric_range(self) -> None:
        where, leftover = _split_filter(
            PayloadFilter(
                must=(
                    FieldCondition(key="resource_id", any=("r1", "r2")),
                    FieldCondition(key="quality_score", gte=50.0, lte=90.0),
                )
            )
        )
        assert where == {
            "$and": [
                {"resource_id": {"$in": ["r1", "r2"]}},
                {"quality_score": {"$gte": 50.0}},
                {"quality_score": {"$lte": 90.0}},
            ]
        }
        assert leftover == []

    def test_string_range_left_over(self) -> None:
        cond = FieldCondition(key="created_at", gte="2024-01-01", lte="2024-12-31")
        where, leftover = _split_filter(PayloadFilter(must=(cond,)))
        assert where is None
        assert leftover == [cond]
