"""Chunk, vector, index and search-result models.

These are the units that flow between the chunker, the embedding provider,
the vector / keyword indexes and the retriever:

    Chunk -> EmbeddingVector -> IndexEntry -> (index) -> SearchResult

Everything except :class:`SearchResult` is persisted in some form;
search results are produced per query and never stored.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


class ChunkStrategy(str, Enum):
    SEMANTIC = "semantic"
    FIXED = "fixed"
    SENTENCE = "sentence"
    PARAGRAPH = "paragraph"


class SearchType(str, Enum):
    SEMANTIC = "semantic"
    KEYWORD = "keyword"
    HYBRID = "hybrid"


class Distance(str, Enum):
    COSINE = "Cosine"
    EUCLID = "Euclid"
    DOT = "Dot"


# ---------------------------------------------------------------------------
# Chunk -- the atomic retrieval unit.
# ---------------------------------------------------------------------------
class Chunk(BaseModel):
    """A bounded span of a document's text.

    ``position`` is the ``(start, end)`` character span in the sanitized
    text.  ``content_hash`` is the SHA-256 of the whitespace-normalised,
    lower-cased content and is used for de-duplication.
    """

    model_config = ConfigDict(frozen=True)

    chunk_id: str = Field(description="UUID of this chunk.")
    document_id: str = Field(description="Parent document identifier.")
    index: int = Field(ge=0, description="Ordinal position within the document.")
    content: str = Field(description="Chunk text.")
    position: tuple[int, int] = Field(description="(start, end) character span.")
    tokens: int = Field(ge=0, description="Token count per the configured counter.")
    content_hash: str = Field(description="SHA-256 of normalised content.")
    strategy: ChunkStrategy = Field(description="Strategy that produced this chunk.")
    sentences: int = Field(default=0, ge=0)
    words: int = Field(default=0, ge=0)

    @property
    def length(self) -> int:
        return len(self.content)


# ---------------------------------------------------------------------------
# Vectors
# ---------------------------------------------------------------------------
class SparseVector(BaseModel):
    """Weighted lexical terms as parallel ``indices`` / ``values`` arrays."""

    model_config = ConfigDict(frozen=True)

    indices: list[int] = Field(default_factory=list)
    values: list[float] = Field(default_factory=list)

    @field_validator("values")
    @classmethod
    def _same_length(cls, values: list[float], info: ValidationInfo) -> list[float]:
        indices = info.data.get("indices", [])
        if len(indices) != len(values):
            raise ValueError("Sparse vector indices and values must have equal length")
        return values

    def as_dict(self) -> dict[int, float]:
        return dict(zip(self.indices, self.values))

    @property
    def is_empty(self) -> bool:
        return not self.indices


class EmbeddingVector(BaseModel):
    """Dense (and optionally sparse) representation of one chunk."""

    model_config = ConfigDict(frozen=True)

    chunk_id: str
    vector: list[float]
    sparse: SparseVector | None = None

    @property
    def dimension(self) -> int:
        return len(self.vector)


class IndexEntry(BaseModel):
    """The persisted unit in the vector and keyword indexes.

    ``payload`` carries the chunk text under ``"text"`` plus the filterable
    fields: ``quality_score``, ``resource_id``, ``course_id``,
    ``document_id``, ``language``, ``created_at``, ``content_type``,
    ``chunk_index`` and ``title``.

    ``vector`` is validated by the vector index, not by this model.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    vector: list[float] | None = None
    sparse_vector: SparseVector | None = None
    payload: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_embedding(cls, embedding: EmbeddingVector, payload: dict[str, Any]) -> "IndexEntry":
        return cls(
            id=embedding.chunk_id,
            vector=embedding.vector,
            sparse_vector=embedding.sparse,
            payload=payload,
        )

    @property
    def text(self) -> str:
        return str(self.payload.get("text", ""))


# ---------------------------------------------------------------------------
# Search results
# ---------------------------------------------------------------------------
class SearchResult(BaseModel):
    """One ranked hit.  Ephemeral: produced per query, never persisted.

    ``relevance_score`` and ``original_index`` are only set once the result
    has passed through the reranker.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    score: float
    text: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    search_type: SearchType
    relevance_score: float | None = None
    original_index: int | None = None

    @field_validator("score")
    @classmethod
    def _finite(cls, score: float) -> float:
        if not math.isfinite(score):
            raise ValueError("score must be finite")
        return score


# ---------------------------------------------------------------------------
# Collection / operation results
# ---------------------------------------------------------------------------
class CollectionConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    vector_size: int = Field(gt=0)
    distance: Distance = Distance.COSINE
    sparse_enabled: bool = True


class CollectionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    existed: bool


class InsertOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    batch_size: int = Field(default=100, gt=0, le=1000)
    wait: bool = True


class InsertResult(BaseModel):
    """Outcome of a validated batch upsert.

    A failed sub-batch does not roll back earlier ones, so ``inserted`` can
    be less than the number of entries submitted while ``errors`` is
    non-empty.
    """

    model_config = ConfigDict(frozen=True)

    inserted: int = Field(default=0, ge=0)
    batches: int = Field(default=0, ge=0)
    failed_batches: int = Field(default=0, ge=0)
    errors: list[str] = Field(default_factory=list)


class DeleteResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    deleted_count: int = Field(default=0, ge=0)


class CollectionInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    points_count: int = Field(default=0, ge=0)
    vector_size: int = Field(default=0, ge=0)
    distance: Distance = Distance.COSINE
    sparse_enabled: bool = False
    payload_indexes: list[str] = Field(default_factory=list)
