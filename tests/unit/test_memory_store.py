"""Unit tests for the in-memory vector-store driver."""

from __future__ import annotations

import pytest

from course_rag.interfaces.vector_store_provider import FieldCondition, PayloadFilter, Prefetch
from course_rag.models.rag import CollectionConfig, Distance, IndexEntry, SparseVector
from course_rag.providers.vector_store.memory_store import InMemoryVectorStore
from course_rag.utils.errors import VectorStoreError


def _entry(pid: str, vector: list[float], **payload) -> IndexEntry:
    return IndexEntry(id=pid, vector=vector, payload={"text": pid, **payload})


@pytest.fixture()
def store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


class TestCollections:
    @pytest.mark.asyncio
    async def test_duplicate_create_raises(self, store: InMemoryVectorStore) -> None:
        await store.create_collection("c1", CollectionConfig(vector_size=2))
        with pytest.raises(VectorStoreError):
            await store.create_collection("c1", CollectionConfig(vector_size=2))

    @pytest.mark.asyncio
    async def test_missing_collection_raises(self, store: InMemoryVectorStore) -> None:
        with pytest.raises(VectorStoreError):
            await store.count("nope")

    @pytest.mark.asyncio
    async def test_delete_collection(self, store: InMemoryVectorStore) -> None:
        await store.create_collection("c1", CollectionConfig(vector_size=2))
        await store.delete_collection("c1")
        assert await store.list_collections() == []
        assert await store.collection_exists("c1") is False

    @pytest.mark.asyncio
    async def test_collection_info(self, store: InMemoryVectorStore) -> None:
        await store.create_collection("c1", CollectionConfig(vector_size=3, distance=Distance.DOT))
        await store.create_payload_index("c1", "course_id", "keyword")
        await store.upsert("c1", [_entry("a", [1.0, 0.0, 0.0])])
        info = await store.get_collection_info("c1")
        assert info.points_count == 1
        assert info.vector_size == 3
        assert info.distance is Distance.DOT
        assert info.payload_indexes == ["course_id"]


class TestUpsert:
    @pytest.mark.asyncio
    async def test_bad_dimension_rejects_whole_batch(self, store: InMemoryVectorStore) -> None:
        await store.create_collection("c1", CollectionConfig(vector_size=2))
        with pytest.raises(VectorStoreError):
            await store.upsert("c1", [_entry("a", [1.0, 0.0]), _entry("b", [1.0, 0.0, 0.0])])
        assert await store.count("c1") == 0

    @pytest.mark.asyncio
    async def test_upsert_replaces_by_id(self, store: InMemoryVectorStore) -> None:
        await store.create_collection("c1", CollectionConfig(vector_size=2))
        await store.upsert("c1", [_entry("a", [1.0, 0.0], version=1)])
        await store.upsert("c1", [_entry("a", [0.0, 1.0], version=2)])
        hits = await store.search("c1", [0.0, 1.0], limit=5)
        assert [(h.id, h.payload["version"]) for h in hits] == [("a", 2)]


class TestSearch:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "distance,expected",
        [
            (Distance.COSINE, ["a", "b", "c"]),
            (Distance.DOT, ["c", "a", "b"]),
            (Distance.EUCLID, ["a", "b", "c"]),
        ],
    )
    async def test_distance_functions(
        self, store: InMemoryVectorStore, distance: Distance, expected: list[str]
    ) -> None:
        await store.create_collection("c1", CollectionConfig(vector_size=2, distance=distance))
        await store.upsert(
            "c1",
            [
                _entry("a", [1.0, 0.0]),
                _entry("b", [0.7, 0.7]),
                _entry("c", [0.0, 6.0]),
            ],
        )
        hits = await store.search("c1", [1.0, 0.2], limit=3)
        assert [h.id for h in hits] == expected

    @pytest.mark.asyncio
    async def test_filtered_search(self, store: InMemoryVectorStore) -> None:
        await store.create_collection("c1", CollectionConfig(vector_size=2))
        await store.upsert(
            "c1",
            [_entry("a", [1.0, 0.0], course_id="x"), _entry("b", [1.0, 0.1], course_id="y")],
        )
        only_y = PayloadFilter(must=(FieldCondition(key="course_id", match="y"),))
        hits = await store.search("c1", [1.0, 0.0], limit=5, payload_filter=only_y)
        assert [h.id for h in hits] == ["b"]

    @pytest.mark.asyncio
    async def test_query_fuses_dense_and_sparse(self, store: InMemoryVectorStore) -> None:
        await store.create_collection("c1", CollectionConfig(vector_size=2))
        await store.upsert(
            "c1",
            [
                IndexEntry(id="a", vector=[1.0, 0.0], sparse_vector=SparseVector(indices=[1], values=[1.0])),
                IndexEntry(id="b", vector=[0.0, 1.0], sparse_vector=SparseVector(indices=[2], values=[1.0])),
                IndexEntry(id="c", vector=[0.9, 0.1], sparse_vector=SparseVector(indices=[2], values=[3.0])),
            ],
        )
        hits = await store.query(
            "c1",
            [
                Prefetch(using="dense", limit=3, dense=[1.0, 0.0]),
                Prefetch(using="sparse", limit=3, sparse=SparseVector(indices=[2], values=[1.0])),
            ],
            limit=3,
        )
        # c is second in dense and first in sparse, so it wins the fusion.
        assert hits[0].id == "c"
        assert {h.id for h in hits} == {"a", "b", "c"}

    @pytest.mark.asyncio
    async def test_invalid_prefetch_raises(self, store: InMemoryVectorStore) -> None:
        await store.create_collection("c1", CollectionConfig(vector_size=2))
        with pytest.raises(VectorStoreError):
            await store.query("c1", [Prefetch(using="dense", limit=3)], limit=3)


class TestDelete:
    @pytest.mark.asyncio
    async def test_delete_by_filter_and_ids(self, store: InMemoryVectorStore) -> None:
        await store.create_collection("c1", CollectionConfig(vector_size=2))
        await store.upsert(
            "c1",
            [
                _entry("a", [1.0, 0.0], course_id="x"),
                _entry("b", [1.0, 0.0], course_id="y"),
                _entry("c", [1.0, 0.0], course_id="y"),
            ],
        )
        await store.delete("c1", PayloadFilter(must=(FieldCondition(key="course_id", match="x"),)))
        assert await store.count("c1") == 2
        await store.delete_points("c1", ["b", "missing"])
        assert await store.count("c1") == 1
