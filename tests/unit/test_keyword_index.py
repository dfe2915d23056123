"""Unit tests for the BM25 KeywordIndex and the hashed SparseEncoder."""

from __future__ import annotations

import math

import pytest

from course_rag.interfaces.vector_store_provider import FieldCondition, PayloadFilter
from course_rag.models.rag import SearchType
from course_rag.services.retrieval.keyword_index import KeywordIndex
from course_rag.services.retrieval.sparse_encoder import SparseEncoder
from tests.conftest import make_entry

_DOCS = [
    ("k1", "Entropy measures disorder. Entropy always grows in isolated systems.", "phys"),
    ("k2", "The Carnot cycle bounds engine efficiency.", "phys"),
    ("k3", "Enzymes lower activation energy in cells.", "bio"),
]


def _populated() -> KeywordIndex:
    index = KeywordIndex()
    index.add([make_entry(pid, text, course_id=course) for pid, text, course in _DOCS])
    return index


# ---------------------------------------------------------------------------
# KeywordIndex
# ---------------------------------------------------------------------------


class TestKeywordIndex:
    def test_empty_index(self, keyword_index: KeywordIndex) -> None:
        assert keyword_index.is_populated is False
        assert len(keyword_index) == 0
        assert keyword_index.search("entropy") == []

    def test_only_documents_sharing_a_term_match(self) -> None:
        results = _populated().search("entropy of systems")
        assert [r.id for r in results] == ["k1"]
        assert results[0].search_type is SearchType.KEYWORD
        assert results[0].text.startswith("Entropy measures")
        assert results[0].metadata["course_id"] == "phys"

    def test_ranked_by_bm25(self) -> None:
        index = _populated()
        index.add([make_entry("k4", "Engine efficiency matters.", course_id="phys")])
        results = index.search("carnot engine efficiency")
        assert results[0].id == "k2"
        assert {r.id for r in results} == {"k2", "k4"}

    def test_stopword_only_query_returns_nothing(self) -> None:
        assert _populated().search("the and of") == []

    def test_top_k(self) -> None:
        index = KeywordIndex()
        index.add([make_entry(f"d{i}", f"energy topic {i}") for i in range(5)])
        assert len(index.search("energy", top_k=2)) == 2
        assert index.search("energy", top_k=0) == []

    def test_payload_filter(self) -> None:
        only_bio = PayloadFilter(must=(FieldCondition(key="course_id", match="bio"),))
        results = _populated().search("energy efficiency", payload_filter=only_bio)
        assert [r.id for r in results] == ["k3"]

    def test_add_replaces_by_id(self) -> None:
        index = _populated()
        index.add([make_entry("k1", "Now about photosynthesis instead.")])
        assert len(index) == 3
        assert index.search("entropy") == []
        assert [r.id for r in index.search("photosynthesis")] == ["k1"]

    def test_delete_and_delete_by_filter(self) -> None:
        index = _populated()
        assert index.delete(["k2", "missing"]) == 1
        removed = index.delete_by_filter(PayloadFilter(must=(FieldCondition(key="course_id", match="phys"),)))
        assert removed == 1
        assert [r.id for r in index.search("entropy energy")] == ["k3"]

    def test_clear(self) -> None:
        index = _populated()
        index.clear()
        assert index.is_populated is False
        assert index.search("entropy") == []


# ---------------------------------------------------------------------------
# SparseEncoder
# ---------------------------------------------------------------------------


class TestSparseEncoder:
    def test_indices_sorted_and_weights_log_scaled(self) -> None:
        vector = SparseEncoder().encode("entropy entropy entropy heat")
        assert vector.indices == sorted(vector.indices)
        assert sorted(vector.values) == pytest.approx([1.0, 1.0 + math.log(3)])

    def test_stopwords_and_short_terms_dropped(self) -> None:
        assert SparseEncoder().encode("the a of x").is_empty

    def test_deterministic(self) -> None:
        encoder = SparseEncoder()
        assert encoder.encode("Carnot engine") == encoder.encode("carnot ENGINE")

    def test_shared_terms_produce_overlap(self) -> None:
        encoder = SparseEncoder()
        a = encoder.encode("carnot engine efficiency").as_dict()
        b = encoder.encode("engine efficiency limits").as_dict()
        c = encoder.encode("photosynthesis").as_dict()
        assert len(set(a) & set(b)) == 2
        assert set(a).isdisjoint(c)

    def test_encode_many(self) -> None:
        encoder = SparseEncoder()
        texts = ["heat", "work"]
        assert encoder.encode_many(texts) == [encoder.encode(t) for t in texts]