"""course_rag domain models -- re-exports all public model classes.

The models are organized across five submodules by domain concern:
    - document.py   -- Source documents, sanitized documents, structure metadata
    - rag.py        -- Chunks, vectors, index entries, search results
    - quality.py    -- Quality reports and their component scores
    - retrieval.py  -- Retrieval options, responses and the request state machine
    - ingestion.py  -- Batch ingestion options, results and metadata records
"""

from __future__ import annotations

from course_rag.models.document import (
    Document,
    DocumentMetadata,
    SourceDocument,
    StructureMetadata,
)
from course_rag.models.ingestion import (
    BatchIngestionResult,
    FailedDocument,
    FailureReason,
    IngestedDocument,
    IngestOptions,
    MetadataRecord,
)
from course_rag.models.quality import (
    CoherenceLevel,
    CoherenceScore,
    QualityIssue,
    QualityReport,
    ReadabilityScore,
    Severity,
)
from course_rag.models.rag import (
    Chunk,
    ChunkStrategy,
    CollectionConfig,
    CollectionInfo,
    CollectionResult,
    DeleteResult,
    Distance,
    EmbeddingVector,
    IndexEntry,
    InsertOptions,
    InsertResult,
    SearchResult,
    SearchType,
    SparseVector,
)
from course_rag.models.retrieval import (
    RetrievalError,
    RetrievalOptions,
    RetrievalOutcome,
    RetrievalResponse,
    RetrievalState,
)

__all__ = [
    "BatchIngestionResult",
    "Chunk",
    "ChunkStrategy",
    "CoherenceLevel",
    "CoherenceScore",
    "CollectionConfig",
    "CollectionInfo",
    "CollectionResult",
    "DeleteResult",
    "Distance",
    "Document",
    "DocumentMetadata",
    "EmbeddingVector",
    "FailedDocument",
    "FailureReason",
    "IndexEntry",
    "IngestOptions",
    "IngestedDocument",
    "InsertOptions",
    "InsertResult",
    "MetadataRecord",
    "QualityIssue",
    "QualityReport",
    "ReadabilityScore",
    "RetrievalError",
    "RetrievalOptions",
    "RetrievalOutcome",
    "RetrievalResponse",
    "RetrievalState",
    "SearchResult",
    "SearchType",
    "Severity",
    "SourceDocument",
    "SparseVector",
    "StructureMetadata",
]
