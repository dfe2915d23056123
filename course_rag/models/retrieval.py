"""Retrieval request / response models and the request state machine.

A retrieval request moves through::

    RECEIVED -> EMBEDDING_QUERY -> RETRIEVING -> [RERANKING] -> CACHED_AND_RETURNED

A cache hit jumps straight from ``RECEIVED`` to ``CACHED_AND_RETURNED``, and
a keyword-only request skips ``EMBEDDING_QUERY``.  The states visited are
recorded on the response for diagnostics.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from course_rag.models.rag import SearchResult, SearchType


class RetrievalState(str, Enum):
    RECEIVED = "RECEIVED"
    EMBEDDING_QUERY = "EMBEDDING_QUERY"
    RETRIEVING = "RETRIEVING"
    RERANKING = "RERANKING"
    CACHED_AND_RETURNED = "CACHED_AND_RETURNED"


class RetrievalOptions(BaseModel):
    """Per-request retrieval knobs.

    ``top_k`` is the candidate pool pulled from each index; ``final_top_k``
    is how many results survive reranking.
    """

    model_config = ConfigDict(frozen=True)

    course_id: str | None = None
    resource_ids: list[str] | None = None
    min_quality: float | None = Field(default=None, ge=0.0, le=100.0)
    language: str | None = None
    content_type: str | None = None
    search_mode: SearchType = SearchType.HYBRID
    enable_reranking: bool = True
    top_k: int = Field(default=20, gt=0, le=200)
    final_top_k: int = Field(default=10, gt=0, le=200)

    def filters(self) -> dict[str, Any]:
        """Return the recognised filter keys that are actually set."""
        raw = {
            "course_id": self.course_id,
            "resource_ids": self.resource_ids,
            "min_quality": self.min_quality,
            "language": self.language,
            "content_type": self.content_type,
        }
        return {k: v for k, v in raw.items() if v is not None}


class RetrievalResponse(BaseModel):
    """Final, possibly degraded, retrieval result handed to the caller."""

    model_config = ConfigDict(frozen=True)

    results: list[SearchResult] = Field(default_factory=list)
    search_type: SearchType
    filters: dict[str, Any] = Field(default_factory=dict)
    total_found: int = Field(default=0, ge=0)
    cached: bool = False
    reranked: bool = False
    notes: list[str] = Field(
        default_factory=list,
        description="Diagnostic notes for degraded results (fallbacks taken).",
    )
    states: list[RetrievalState] = Field(default_factory=list)


class RetrievalError(BaseModel):
    """Structured error with a stable ``kind`` for programmatic handling."""

    model_config = ConfigDict(frozen=True)

    kind: str
    message: str


class RetrievalOutcome(BaseModel):
    """Explicit success-or-error result of :meth:`RAGPipeline.retrieve`."""

    model_config = ConfigDict(frozen=True)

    response: RetrievalResponse | None = None
    error: RetrievalError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, response: RetrievalResponse) -> "RetrievalOutcome":
        return cls(response=response)

    @classmethod
    def failure(cls, kind: str, message: str) -> "RetrievalOutcome":
        return cls(error=RetrievalError(kind=kind, message=message))
