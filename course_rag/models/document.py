"""Document models: the sanitized source text and its structural metadata.

A :class:`Document` is created once per ingestion request by the sanitizer
and is immutable afterwards; the chunker and quality assessor only read it.
:class:`SourceDocument` is the looser input shape handed in by the external
orchestrator (already-extracted text plus whatever metadata it knows).
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class SourceDocument(BaseModel):
    """A raw document submitted for ingestion.

    ``quality_score`` lets the caller override the assessed score (e.g. a
    manually curated resource); when ``None`` the assessor's
    ``overall_score`` is used for the quality gate.
    """

    model_config = ConfigDict(frozen=True)

    text: str = Field(description="Extracted plain text of the resource.")
    title: str | None = Field(default=None, description="Explicit title, if known.")
    resource_id: str | None = Field(
        default=None, description="Identifier of the resource in the caller's system."
    )
    quality_score: float | None = Field(
        default=None,
        ge=0.0,
        le=100.0,
        description="Caller-supplied quality score (0-100) overriding assessment.",
    )
    language: str | None = Field(default=None, description="Language hint (ISO-639-1).")
    content_type: str | None = Field(default=None, description='e.g. "lecture_notes".')
    metadata: dict[str, Any] = Field(default_factory=dict)


class StructureMetadata(BaseModel):
    """Counts of structural elements found in the sanitized text."""

    model_config = ConfigDict(frozen=True)

    paragraphs: int = Field(default=0, ge=0)
    headings: int = Field(default=0, ge=0)
    heading_titles: list[str] = Field(default_factory=list)
    list_items: int = Field(default=0, ge=0)
    bullet_items: int = Field(default=0, ge=0)
    numbered_items: int = Field(default=0, ge=0)
    code_blocks: int = Field(default=0, ge=0)
    sentences: int = Field(default=0, ge=0)
    total_lines: int = Field(default=0, ge=0)

    @property
    def has_structure(self) -> bool:
        return self.headings > 0 or self.list_items > 0 or self.code_blocks > 0


class DocumentMetadata(BaseModel):
    """Descriptive metadata extracted from the sanitized text."""

    model_config = ConfigDict(frozen=True)

    title: str = Field(default="Untitled Document")
    language: str = Field(default="en", description='ISO-639-1 code or "unknown".')
    key_phrases: list[str] = Field(default_factory=list)
    word_count: int = Field(default=0, ge=0)
    character_count: int = Field(default=0, ge=0)
    estimated_reading_minutes: int = Field(default=0, ge=0)


class Document(BaseModel):
    """A sanitized document owned by the ingestion pipeline until chunked."""

    model_config = ConfigDict(frozen=True)

    document_id: str = Field(description="UUID assigned at sanitization time.")
    raw_text: str = Field(description="Text exactly as received.")
    sanitized_text: str = Field(description="Output of Sanitizer.sanitize().")
    language: str = Field(default="en")
    structure: StructureMetadata = Field(default_factory=StructureMetadata)
    metadata: DocumentMetadata = Field(default_factory=DocumentMetadata)
    resource_id: str | None = Field(default=None)
    course_id: str | None = Field(default=None)
    content_type: str | None = Field(default=None)

    @property
    def title(self) -> str:
        return self.metadata.title
