"""Custom exception hierarchy for course_rag.

All library exceptions inherit from :class:`CourseRAGError`, which carries an
optional ``provider_name`` so error handlers can identify which external
service (e.g. "jina", "openai", "chromadb") caused the failure, and a stable
class-level ``kind`` string that callers can switch on programmatically.

The hierarchy is organized by pipeline domain:

    CourseRAGError  (base -- catch-all for any course_rag error)
    +-- InvalidContentError      (empty / unusable input text)
    +-- DimensionMismatchError   (vector dimension disagreement)
    +-- InvalidVectorError       (missing / non-finite vector values)
    +-- NoDocumentsIngestedError (query before any ingestion)
    +-- NoIndexAvailableError    (requested index mode is not populated)
    +-- NoFilterProvidedError    (unsafe unfiltered delete)
    +-- NoVectorsProvidedError   (hybrid search with no query vectors)
    +-- ExternalServiceError     (embedding / rerank HTTP failure)
    +-- VectorStoreError         (vector-store driver failure)
    +-- ParseError               (malformed JSON from an external service)
    +-- ConfigurationError       (startup / missing config)
    +-- IngestionCancelledError  (cooperative cancellation observed)

Only :class:`ExternalServiceError` is ever retryable, and only for network
errors, HTTP 429 and HTTP 5xx responses.
"""

from __future__ import annotations


class CourseRAGError(Exception):
    """Base exception for all course_rag errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[jina] Rate limit exceeded``.
    """

    kind: str = "internal"
    retryable: bool = False

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def to_dict(self) -> dict[str, str]:
        """Return the structured ``{kind, message}`` form handed to callers."""
        return {"kind": self.kind, "message": self._message}

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Input validation errors
# ---------------------------------------------------------------------------

class InvalidContentError(CourseRAGError):
    """Raised when the sanitizer or chunker receives null / empty input."""

    kind = "invalid_content"

    def __init__(
        self,
        message: str = "Content is empty or invalid",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class InvalidVectorError(CourseRAGError):
    """Raised when a vector is missing, empty, or contains non-finite values."""

    kind = "invalid_vector"

    def __init__(
        self,
        message: str = "Invalid vector",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class DimensionMismatchError(CourseRAGError):
    """Raised when vectors disagree on dimensionality.

    Carries the ``expected`` and ``found`` dimensions so callers can fix the
    embedding call that produced the offending vector.
    """

    kind = "dimension_mismatch"

    def __init__(
        self,
        expected: int,
        found: int,
        message: str | None = None,
        provider_name: str | None = None,
    ) -> None:
        self._expected = expected
        self._found = found
        super().__init__(
            message=message
            or (
                "All vectors must have the same dimension. "
                f"Expected {expected}, but found {found}"
            ),
            provider_name=provider_name,
        )

    @property
    def expected(self) -> int:
        return self._expected

    @property
    def found(self) -> int:
        return self._found


# ---------------------------------------------------------------------------
# Caller errors: querying or mutating without the required preconditions
# ---------------------------------------------------------------------------

class NoDocumentsIngestedError(CourseRAGError):
    """Raised when retrieval is attempted before any document was ingested."""

    kind = "no_documents_ingested"

    def __init__(
        self,
        message: str = "No documents have been ingested yet",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class NoIndexAvailableError(CourseRAGError):
    """Raised when the index required by the requested search mode is empty."""

    kind = "no_index_available"

    def __init__(
        self,
        message: str = "No index is available for the requested search mode",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class NoFilterProvidedError(CourseRAGError):
    """Raised when a delete is requested without any recognised filter."""

    kind = "no_filter_provided"

    def __init__(
        self,
        message: str = "Filter conditions are required for deletion",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class NoVectorsProvidedError(CourseRAGError):
    """Raised when hybrid search is called with neither dense nor sparse vector."""

    kind = "no_vectors_provided"

    def __init__(
        self,
        message: str = "At least one of dense or sparse vector must be provided",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# External service errors
# ---------------------------------------------------------------------------

class ExternalServiceError(CourseRAGError):
    """Raised when an embedding or rerank API call fails.

    ``status_code`` is ``None`` for transport-level failures (timeouts,
    connection resets).  :attr:`retryable` is derived from it: transport
    errors, 429 and 5xx are retryable; every other status is not.
    """

    kind = "external_service"

    def __init__(
        self,
        message: str = "External service call failed",
        provider_name: str | None = None,
        status_code: int | None = None,
        retry_after: float | None = None,
    ) -> None:
        self._status_code = status_code
        self._retry_after = retry_after
        super().__init__(message=message, provider_name=provider_name)

    @property
    def status_code(self) -> int | None:
        return self._status_code

    @property
    def retry_after(self) -> float | None:
        return self._retry_after

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        if self._status_code is None:
            return True
        return self._status_code == 429 or self._status_code >= 500


class VectorStoreError(CourseRAGError):
    """Raised when the vector-store driver rejects or fails an operation."""

    kind = "vector_store"

    def __init__(
        self,
        message: str = "Vector store operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ParseError(CourseRAGError):
    """Raised when a JSON response cannot be parsed even after repair."""

    kind = "parse_error"

    def __init__(
        self,
        message: str = "Failed to parse JSON response",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Lifecycle errors
# ---------------------------------------------------------------------------

class ConfigurationError(CourseRAGError):
    """Raised when configuration is invalid or missing at startup."""

    kind = "configuration"

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class IngestionCancelledError(CourseRAGError):
    """Raised when an ingestion run observes a cancellation signal."""

    kind = "cancelled"

    def __init__(
        self,
        message: str = "Ingestion cancelled",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
