"""Orchestrator for the document ingestion pipeline.

Pipeline stages: **sanitize -> chunk -> assess -> gate -> embed -> index -> record**.

The :class:`IngestionService` coordinates its collaborators (sanitizer,
chunker, quality assessor, embedding provider, vector and keyword indexes,
metadata store) without any of them knowing about each other.  All of them
are injected via the constructor so providers can be swapped without
touching this class.

Documents in a batch are processed one after another; a failure is recorded
against that document and the batch moves on.  Within a document the chunk
texts are embedded in batches of ``embedding_batch_size`` with at most
``embedding_concurrency`` batches in flight.  A :class:`CancellationToken`
is checked before each batch is dispatched; once it fires, no new batch
starts and every document not yet indexed is reported as cancelled.
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from typing import Any

import structlog

from course_rag.interfaces.embedding_provider import EmbedOptions, IEmbeddingProvider
from course_rag.interfaces.metadata_store import IMetadataStore
from course_rag.models.document import Document, SourceDocument
from course_rag.models.ingestion import (
    BatchIngestionResult,
    FailedDocument,
    FailureReason,
    IngestedDocument,
    IngestOptions,
    MetadataRecord,
)
from course_rag.models.rag import Chunk, EmbeddingVector, IndexEntry, InsertOptions
from course_rag.services.ingestion.chunker import ChunkingEngine
from course_rag.services.ingestion.quality_assessor import QualityAssessor
from course_rag.services.ingestion.sanitizer import Sanitizer
from course_rag.services.retrieval.keyword_index import KeywordIndex
from course_rag.services.retrieval.retrieval_cache import RetrievalCache
from course_rag.services.retrieval.sparse_encoder import SparseEncoder
from course_rag.services.retrieval.vector_index import VectorIndex
from course_rag.utils.concurrency import CancellationToken, throttled_gather
from course_rag.utils.errors import (
    CourseRAGError,
    ExternalServiceError,
    IngestionCancelledError,
    VectorStoreError,
)

logger = structlog.get_logger(logger_name=__name__)


class IngestionService:
    """Turns :class:`SourceDocument` batches into indexed chunks."""

    def __init__(
        self,
        sanitizer: Sanitizer,
        chunker: ChunkingEngine,
        assessor: QualityAssessor,
        embedding_provider: IEmbeddingProvider,
        vector_index: VectorIndex,
        keyword_index: KeywordIndex,
        collection_name: str,
        sparse_encoder: SparseEncoder | None = None,
        metadata_store: IMetadataStore | None = None,
        retrieval_cache: RetrievalCache | None = None,
        embedding_batch_size: int = 10,
        embedding_concurrency: int = 3,
        inter_batch_delay: float = 0.1,
        upsert_batch_size: int = 100,
    ) -> None:
        self._sanitizer = sanitizer
        self._chunker = chunker
        self._assessor = assessor
        self._embedder = embedding_provider
        self._vector_index = vector_index
        self._keyword_index = keyword_index
        self._collection = collection_name
        self._sparse = sparse_encoder or SparseEncoder()
        self._metadata_store = metadata_store
        self._retrieval_cache = retrieval_cache
        self._batch_size = max(1, embedding_batch_size)
        self._concurrency = max(1, embedding_concurrency)
        self._inter_batch_delay = inter_batch_delay
        self._upsert_batch_size = upsert_batch_size

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def ingest_documents(
        self,
        documents: list[SourceDocument],
        course_id: str | None = None,
        options: IngestOptions | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> BatchIngestionResult:
        """Ingest *documents* and report per-document outcomes.

        Never raises for a single bad document; its failure is recorded in
        ``failed`` with a reason (and error kind when an exception caused it).
        """
        opts = options or IngestOptions()
        token = cancel_token or CancellationToken()
        start = time.monotonic()

        success: list[IngestedDocument] = []
        failed: list[FailedDocument] = []
        cancelled = False

        logger.info(
            "ingestion_started",
            course_id=course_id,
            documents=len(documents),
            strategy=opts.chunk_strategy.value,
            quality_threshold=opts.quality_threshold,
        )

        for position, source in enumerate(documents):
            if token.cancelled:
                cancelled = True
                failed.extend(self._cancelled(documents[position:]))
                break
            try:
                outcome = await self._ingest_one(source, course_id, opts, token)
            except IngestionCancelledError:
                cancelled = True
                failed.extend(self._cancelled(documents[position:]))
                break
            except CourseRAGError as exc:
                logger.warning(
                    "document_ingestion_failed",
                    title=source.title,
                    resource_id=source.resource_id,
                    kind=exc.kind,
                    error=exc.message,
                )
                failed.append(
                    FailedDocument(
                        title=_title(source),
                        resource_id=source.resource_id,
                        reason=exc.message,
                        kind=exc.kind,
                    )
                )
                continue
            except Exception as exc:
                logger.error(
                    "document_ingestion_error",
                    title=source.title,
                    resource_id=source.resource_id,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                failed.append(
                    FailedDocument(
                        title=_title(source),
                        resource_id=source.resource_id,
                        reason=str(exc) or FailureReason.ERROR.value,
                        kind="internal",
                    )
                )
                continue

            if isinstance(outcome, FailedDocument):
                failed.append(outcome)
            else:
                success.append(outcome)

        if success and self._retrieval_cache is not None:
            await self._retrieval_cache.clear()

        total_chunks = sum(d.chunk_count for d in success)
        average_quality = (
            sum(d.quality_score for d in success) / len(success) if success else 0.0
        )
        result = BatchIngestionResult(
            success=success,
            failed=failed,
            total_chunks=total_chunks,
            average_quality=round(average_quality, 2),
            cancelled=cancelled,
            duration_seconds=round(time.monotonic() - start, 3),
        )
        logger.info(
            "ingestion_complete",
            course_id=course_id,
            succeeded=len(success),
            failed=len(failed),
            chunks=total_chunks,
            average_quality=result.average_quality,
            cancelled=cancelled,
            time_s=result.duration_seconds,
        )
        return result

    # ------------------------------------------------------------------
    # One document
    # ------------------------------------------------------------------

    async def _ingest_one(
        self,
        source: SourceDocument,
        course_id: str | None,
        opts: IngestOptions,
        token: CancellationToken,
    ) -> IngestedDocument | FailedDocument:
        document = self._sanitizer.build_document(source, course_id=course_id)
        if opts.content_type and not document.content_type:
            document = document.model_copy(update={"content_type": opts.content_type})

        chunks = self._chunker.chunk(document, opts.chunk_strategy)
        if not chunks:
            return FailedDocument(
                title=document.title,
                resource_id=source.resource_id,
                reason=FailureReason.NO_CHUNKS.value,
            )

        report = self._assessor.assess(document, chunks)
        quality = source.quality_score if source.quality_score is not None else report.overall_score
        if quality < opts.quality_threshold:
            logger.info(
                "document_below_quality_threshold",
                title=document.title,
                quality_score=quality,
                threshold=opts.quality_threshold,
                recommendations=report.recommendations,
            )
            return FailedDocument(
                title=document.title,
                resource_id=source.resource_id,
                reason=FailureReason.QUALITY_BELOW_THRESHOLD.value,
                quality_score=quality,
            )

        vectors = await self._embed([c.content for c in chunks], token)
        entries = self._entries(document, chunks, vectors, quality, source.metadata)
        await self._index(entries)

        await self._record(document, len(chunks), quality, opts)
        logger.info(
            "document_ingested",
            document_id=document.document_id,
            title=document.title,
            chunks=len(chunks),
            quality_score=round(quality, 2),
        )
        return IngestedDocument(
            document_id=document.document_id,
            resource_id=source.resource_id,
            title=document.title,
            chunk_count=len(chunks),
            quality_score=quality,
            language=document.language,
        )

    async def _embed(self, texts: list[str], token: CancellationToken) -> list[list[float]]:
        """Embed *texts* in throttled batches, preserving order."""
        options = EmbedOptions()

        async def _batch(batch: list[str]) -> list[list[float]]:
            # Checked inside the semaphore slot: queued batches never start
            # after cancellation, in-flight ones finish.
            token.raise_if_cancelled()
            vectors = await self._embedder.embed(batch, options)
            if self._inter_batch_delay > 0:
                await asyncio.sleep(self._inter_batch_delay)
            return vectors

        batches = [texts[i : i + self._batch_size] for i in range(0, len(texts), self._batch_size)]
        results = await throttled_gather(
            [_batch(b) for b in batches], limit=self._concurrency, return_exceptions=True
        )

        errors = [r for r in results if isinstance(r, BaseException)]
        for err in errors:
            if isinstance(err, IngestionCancelledError):
                raise err
        if errors:
            raise errors[0]

        vectors = [v for batch in results for v in batch]
        if len(vectors) != len(texts):
            raise ExternalServiceError(
                message=f"Embedding returned {len(vectors)} vectors for {len(texts)} chunks",
                provider_name=self._embedder.get_provider_name(),
            )
        return vectors

    def _entries(
        self,
        document: Document,
        chunks: list[Chunk],
        vectors: list[list[float]],
        quality: float,
        extra: dict[str, Any],
    ) -> list[IndexEntry]:
        created_at = datetime.now(timezone.utc).isoformat()
        sparse = self._sparse.encode_many([chunk.content for chunk in chunks])
        entries: list[IndexEntry] = []
        for chunk, vector, sparse_vector in zip(chunks, vectors, sparse):
            embedding = EmbeddingVector(chunk_id=chunk.chunk_id, vector=vector, sparse=sparse_vector)
            payload: dict[str, Any] = {
                **extra,
                "text": chunk.content,
                "quality_score": quality,
                "resource_id": document.resource_id,
                "course_id": document.course_id,
                "document_id": document.document_id,
                "language": document.language,
                "created_at": created_at,
                "content_type": document.content_type,
                "chunk_index": chunk.index,
                "title": document.title,
                "tokens": chunk.tokens,
            }
            entries.append(IndexEntry.from_embedding(embedding, payload))
        return entries

    async def _index(self, entries: list[IndexEntry]) -> None:
        result = await self._vector_index.insert_vectors(
            self._collection, entries, InsertOptions(batch_size=self._upsert_batch_size)
        )
        if result.failed_batches:
            # Keep both indexes consistent: nothing from this document stays.
            await self._vector_index.client.delete_points(self._collection, [e.id for e in entries])
            raise VectorStoreError(message="; ".join(result.errors))
        self._keyword_index.add(entries)

    async def _record(
        self,
        document: Document,
        chunk_count: int,
        quality: float,
        opts: IngestOptions,
    ) -> None:
        if self._metadata_store is None:
            return
        record = MetadataRecord(
            course_id=document.course_id,
            resource_id=document.resource_id,
            document_id=document.document_id,
            chunk_count=chunk_count,
            quality_score=quality,
            embedding_model=self._embedder.get_provider_name(),
            chunk_strategy=opts.chunk_strategy.value,
            language=document.language,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        try:
            await self._metadata_store.record(record)
        except Exception as exc:
            # Chunks are already indexed; the document still counts as ingested.
            logger.error("metadata_record_failed", document_id=document.document_id, error=str(exc))

    @staticmethod
    def _cancelled(remaining: list[SourceDocument]) -> list[FailedDocument]:
        return [
            FailedDocument(
                title=_title(source),
                resource_id=source.resource_id,
                reason=FailureReason.CANCELLED.value,
                kind="cancelled",
            )
            for source in remaining
        ]


def _title(source: SourceDocument) -> str:
    return source.title or "Untitled Document"
