"""Shared pytest fixtures for the course_rag test suite."""

from __future__ import annotations

import hashlib
import math
from pathlib import Path

import pytest
import pytest_asyncio

from course_rag.config.settings import Settings
from course_rag.interfaces.embedding_provider import EmbedOptions, IEmbeddingProvider
from course_rag.models.document import SourceDocument
from course_rag.models.rag import CollectionConfig, IndexEntry
from course_rag.providers.cache.memory_cache import MemoryCacheProvider
from course_rag.providers.vector_store.memory_store import InMemoryVectorStore
from course_rag.services.retrieval.keyword_index import KeywordIndex
from course_rag.services.retrieval.sparse_encoder import SparseEncoder
from course_rag.services.retrieval.vector_index import VectorIndex
from course_rag.utils.text_analysis import content_terms

# ---------------------------------------------------------------------------
# Embedding fixtures
# ---------------------------------------------------------------------------

EMBEDDING_DIM = 64


def hash_to_vector(text: str, dim: int = EMBEDDING_DIM) -> list[float]:
    """Deterministic bag-of-words embedding.

    Every content term is hashed into one of *dim* buckets and the result is
    normalised to unit length, so texts sharing vocabulary land close
    together.  Text with no content terms gets a fixed unit vector.
    """
    values = [0.0] * dim
    for term in content_terms(text):
        digest = hashlib.sha256(term.encode("utf-8")).digest()
        values[digest[0] % dim] += 1.0
    magnitude = math.sqrt(sum(v * v for v in values))
    if magnitude == 0.0:
        values[0] = 1.0
        return values
    return [v / magnitude for v in values]


class FakeEmbeddingProvider(IEmbeddingProvider):
    """In-memory deterministic embedding provider that records its calls."""

    def __init__(self, dim: int = EMBEDDING_DIM) -> None:
        self.dim = dim
        self.calls: list[tuple[list[str], EmbedOptions | None]] = []

    async def embed(self, texts: list[str], options: EmbedOptions | None = None) -> list[list[float]]:
        self.calls.append((list(texts), options))
        return [hash_to_vector(t, self.dim) for t in texts]

    async def embed_single(self, text: str, options: EmbedOptions | None = None) -> list[float]:
        return (await self.embed([text], options))[0]

    def get_dimension(self) -> int:
        return self.dim

    def get_provider_name(self) -> str:
        return "fake-embedding"

    def is_available(self) -> bool:
        return True


@pytest.fixture
def fake_embedder() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


# ---------------------------------------------------------------------------
# Index fixtures
# ---------------------------------------------------------------------------

COLLECTION = "test_course"


@pytest.fixture
def memory_store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest_asyncio.fixture
async def vector_index(memory_store: InMemoryVectorStore) -> VectorIndex:
    """VectorIndex over an in-memory store with ``COLLECTION`` already created."""
    index = VectorIndex(memory_store, cache=MemoryCacheProvider())
    await index.create_collection(COLLECTION, CollectionConfig(vector_size=EMBEDDING_DIM))
    return index


@pytest.fixture
def keyword_index() -> KeywordIndex:
    return KeywordIndex()


def make_entry(
    entry_id: str,
    text: str,
    dim: int = EMBEDDING_DIM,
    **payload: object,
) -> IndexEntry:
    """Build an IndexEntry with a bag-of-words vector and a sparse vector."""
    return IndexEntry(
        id=entry_id,
        vector=hash_to_vector(text, dim),
        sparse_vector=SparseEncoder().encode(text),
        payload={"text": text, **payload},
    )


# ---------------------------------------------------------------------------
# Content fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def lecture_text() -> str:
    """Three-paragraph lecture excerpt used by chunker and pipeline tests."""
    return (
        "Thermodynamics studies how energy moves between systems and how that "
        "movement limits the work a machine can perform. The first law states "
        "that energy is conserved: heat added to a system either raises its "
        "internal energy or is spent as work on the surroundings.\n\n"
        "Entropy measures how many microscopic arrangements are consistent with "
        "a macroscopic state. The second law says the entropy of an isolated "
        "system never decreases, which is why heat flows from hot bodies to "
        "cold ones and never the other way without outside effort.\n\n"
        "A Carnot engine is an idealised cycle operating between two reservoirs. "
        "Its efficiency depends only on the reservoir temperatures, and no real "
        "engine working between the same temperatures can do better. Engineers "
        "use this bound to judge how much improvement a real design can achieve."
    )


@pytest.fixture
def lecture_source(lecture_text: str) -> SourceDocument:
    return SourceDocument(
        text=lecture_text,
        title="Thermodynamics Lecture 3",
        resource_id="res-thermo-3",
        content_type="lecture_notes",
    )


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Settings pointing every on-disk resource at *tmp_path*."""
    return Settings(
        _env_file=None,
        jina_api_key="jina_test_key",
        embedding_dimensions=EMBEDDING_DIM,
        vector_store="memory",
        collection_name=COLLECTION,
        metadata_db_path=str(tmp_path / "meta.db"),
        chromadb_persist_dir=str(tmp_path / "chroma"),
        min_chunk_size=10,
        max_chunk_size=200,
        chunk_overlap=5,
        embedding_inter_batch_delay=0.0,
    )
