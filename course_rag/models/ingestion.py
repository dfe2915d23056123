"""Batch ingestion options and results.

Per-document failures never abort a batch: each document ends up either in
``success`` or in ``failed`` with a reason.  A low quality score is a policy
outcome, not an error, so it is reported through
:attr:`FailureReason.QUALITY_BELOW_THRESHOLD`.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from course_rag.models.rag import ChunkStrategy


class FailureReason(str, Enum):
    QUALITY_BELOW_THRESHOLD = "Quality below threshold"
    CANCELLED = "Ingestion cancelled"
    NO_CHUNKS = "No chunks produced"
    ERROR = "Processing error"


class IngestOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    quality_threshold: float = Field(default=50.0, ge=0.0, le=100.0)
    chunk_strategy: ChunkStrategy = ChunkStrategy.SEMANTIC
    content_type: str | None = None


class IngestedDocument(BaseModel):
    model_config = ConfigDict(frozen=True)

    document_id: str
    resource_id: str | None = None
    title: str
    chunk_count: int = Field(ge=0)
    quality_score: float = Field(ge=0.0, le=100.0)
    language: str = "en"


class FailedDocument(BaseModel):
    """A document that was not indexed.

    ``reason`` is a :class:`FailureReason` value for policy outcomes or the
    error message for unexpected failures; ``kind`` carries the error kind
    when an exception caused the failure.
    """

    model_config = ConfigDict(frozen=True)

    title: str
    resource_id: str | None = None
    reason: str
    kind: str | None = None
    quality_score: float | None = None


class BatchIngestionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: list[IngestedDocument] = Field(default_factory=list)
    failed: list[FailedDocument] = Field(default_factory=list)
    total_chunks: int = Field(default=0, ge=0)
    average_quality: float = Field(default=0.0, ge=0.0, le=100.0)
    cancelled: bool = False
    duration_seconds: float = Field(default=0.0, ge=0.0)


class MetadataRecord(BaseModel):
    """Correlation row written once per successfully ingested document."""

    model_config = ConfigDict(frozen=True)

    course_id: str | None = None
    resource_id: str | None = None
    document_id: str
    chunk_count: int = Field(ge=0)
    quality_score: float = Field(ge=0.0, le=100.0)
    embedding_model: str = ""
    chunk_strategy: str = ""
    language: str = "en"
    created_at: str = Field(description="ISO-8601 UTC timestamp.")
