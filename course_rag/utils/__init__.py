"""Utility modules for course_rag.

Available utility modules (the most used names are re-exported here):

- **errors** -- Exception hierarchy rooted at CourseRAGError; every subclass
  carries a stable ``kind`` string callers can switch on.
- **concurrency** -- Semaphore-throttled gather and the cooperative
  CancellationToken used by batched embedding.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
- **retry** -- Exponential backoff with jitter for external service calls.
- **fusion** -- Reciprocal Rank Fusion over ranked id lists.
- **text_analysis** (not re-exported here) -- Sentence splitting, term
  extraction, syllable counting, language detection and TF-IDF helpers.
- **tokenization** (not re-exported here) -- Word and tiktoken token
  counters used by the chunker.
- **json_repair** (not re-exported here) -- Lenient JSON extraction for
  external service responses.
"""

# -- Exception hierarchy ----------------------------------------------------
from course_rag.utils.errors import (
    ConfigurationError,
    CourseRAGError,
    ExternalServiceError,
    IngestionCancelledError,
    VectorStoreError,
)

# -- Async concurrency helpers ---------------------------------------------
from course_rag.utils.concurrency import CancellationToken, throttled_gather

# -- Structured logging setup ----------------------------------------------
from course_rag.utils.logging import configure_logging, get_logger

# -- Retry / fusion ----------------------------------------------------------
from course_rag.utils.fusion import reciprocal_rank_fusion
from course_rag.utils.retry import RetryPolicy, retry_async

__all__ = [
    "CancellationToken",
    "ConfigurationError",
    "CourseRAGError",
    "ExternalServiceError",
    "IngestionCancelledError",
    "RetryPolicy",
    "VectorStoreError",
    "configure_logging",
    "get_logger",
    "reciprocal_rank_fusion",
    "retry_async",
    "throttled_gather",
]
