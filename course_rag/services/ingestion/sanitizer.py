"""Text sanitization, structural analysis and metadata extraction.

The sanitizer is the first ingestion stage.  It turns extracted text (which
routinely carries PDF artefacts: NULs, zero-width characters, smart quotes,
runaway whitespace) into a canonical form, then measures its structure and
extracts descriptive metadata.  The result is an immutable
:class:`~course_rag.models.document.Document`.

``sanitize`` is idempotent: ``sanitize(sanitize(x)) == sanitize(x)``.
"""

from __future__ import annotations

import hashlib
import math
import re
import uuid
from collections import Counter

import structlog

from course_rag.models.document import Document, DocumentMetadata, SourceDocument, StructureMetadata
from course_rag.utils.errors import InvalidContentError
from course_rag.utils.text_analysis import (
    ALL_STOPWORDS,
    detect_language,
    split_sentences,
    tf_idf_vectors,
    words,
)

logger = structlog.get_logger(logger_name=__name__)

_UNTITLED = "Untitled Document"
_READING_WORDS_PER_MINUTE = 200

# Code points rewritten before whitespace normalisation: smart single and
# double quotes, em / en dashes, exotic spaces, line / paragraph separators
# and zero-width characters (including the BOM).
_SINGLE_QUOTES = (0x2018, 0x2019, 0x201A, 0x201B, 0x2032)
_DOUBLE_QUOTES = (0x201C, 0x201D, 0x201E, 0x201F, 0x2033)
_DASHES = (0x2013, 0x2014)
_SPACES = (0x00A0, 0x2007, 0x202F)
_LINE_SEPARATORS = (0x2028, 0x2029)
_ZERO_WIDTH = (0x200B, 0x200C, 0x200D, 0x2060, 0xFEFF)

_TRANSLATION: dict[int, str | None] = {
    **{cp: "'" for cp in _SINGLE_QUOTES},
    **{cp: '"' for cp in _DOUBLE_QUOTES},
    **{cp: "--" for cp in _DASHES},
    **{cp: " " for cp in _SPACES},
    **{cp: "\n" for cp in _LINE_SEPARATORS},
    **{cp: None for cp in _ZERO_WIDTH},
}

_CONTROL_RE = re.compile(r"[\x00-\x08\x0b-\x1f\x7f]")
_HSPACE_RE = re.compile(r"[ \t\f\v]+")
_TRAILING_SPACE_RE = re.compile(r" *\n *")
_EXCESS_NEWLINES_RE = re.compile(r"\n{3,}")
_PARAGRAPH_SPLIT_RE = re.compile(r"\n\s*\n")

_HEADING_RE = re.compile(r"^#{1,6}\s+(.+)$")
_BULLET_RE = re.compile(r"^[-*•]\s+")
_NUMBERED_RE = re.compile(r"^\d+[.)]\s+")
_FENCE_RE = re.compile(r"^```")


class Sanitizer:
    """Canonicalises raw text and derives a :class:`Document` from it."""

    def __init__(self, key_phrase_limit: int = 10) -> None:
        self._key_phrase_limit = key_phrase_limit

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def sanitize(self, text: str | None) -> str:
        """Return the canonical form of *text*.

        Raises
        ------
        InvalidContentError
            If *text* is ``None`` or blank after trimming.
        """
        if text is None or not text.strip():
            raise InvalidContentError("Document content is empty")

        cleaned = text.replace("\r\n", "\n").replace("\r", "\n")
        cleaned = cleaned.translate(_TRANSLATION)
        # \t survives the control-character pass and is then folded into
        # ordinary horizontal whitespace.
        cleaned = _CONTROL_RE.sub("", cleaned)
        cleaned = _HSPACE_RE.sub(" ", cleaned)
        cleaned = _TRAILING_SPACE_RE.sub("\n", cleaned)
        cleaned = _EXCESS_NEWLINES_RE.sub("\n\n", cleaned)
        cleaned = cleaned.strip()

        if not cleaned:
            raise InvalidContentError("Document content is empty after sanitization")
        return cleaned

    def analyze_structure(self, text: str) -> StructureMetadata:
        """Count paragraphs, headings, list items, code blocks, sentences and lines."""
        lines = text.split("\n")
        heading_titles: list[str] = []
        bullets = numbered = code_blocks = 0
        in_code = False

        for line in lines:
            stripped = line.strip()
            if _FENCE_RE.match(stripped):
                if in_code:
                    code_blocks += 1
                in_code = not in_code
                continue
            if in_code:
                continue
            heading = _HEADING_RE.match(stripped)
            if heading:
                heading_titles.append(heading.group(1).strip())
            elif _BULLET_RE.match(stripped):
                bullets += 1
            elif _NUMBERED_RE.match(stripped):
                numbered += 1

        paragraphs = [p for p in _PARAGRAPH_SPLIT_RE.split(text) if p.strip()]
        return StructureMetadata(
            paragraphs=len(paragraphs),
            headings=len(heading_titles),
            heading_titles=heading_titles,
            list_items=bullets + numbered,
            bullet_items=bullets,
            numbered_items=numbered,
            code_blocks=code_blocks,
            sentences=len(split_sentences(text)),
            total_lines=len(lines),
        )

    def extract_metadata(self, source: SourceDocument, text: str) -> DocumentMetadata:
        """Derive title, language, key phrases, counts and reading time."""
        word_count = len(text.split())
        language = source.language or detect_language(text)
        return DocumentMetadata(
            title=source.title or self._extract_title(text),
            language=language,
            key_phrases=self.extract_key_phrases(text),
            word_count=word_count,
            character_count=len(text),
            estimated_reading_minutes=math.ceil(word_count / _READING_WORDS_PER_MINUTE),
        )

    def extract_key_phrases(self, text: str) -> list[str]:
        """Return the top TF-IDF terms, IDF computed across paragraphs.

        Stopwords and terms of three characters or fewer are excluded.
        """
        paragraphs = [p for p in _PARAGRAPH_SPLIT_RE.split(text) if p.strip()]
        tokenized = [
            [w for w in (t.lower() for t in words(p)) if len(w) > 3 and w not in ALL_STOPWORDS]
            for p in paragraphs
        ]
        scores: Counter[str] = Counter()
        for vector in tf_idf_vectors(tokenized):
            for term, weight in vector.items():
                scores[term] += weight
        ranked = sorted(scores.items(), key=lambda kv: (-kv[1], kv[0]))
        return [term for term, _ in ranked[: self._key_phrase_limit]]

    def deduplicate_paragraphs(self, text: str) -> str:
        """Drop exact-duplicate paragraphs, keeping the first occurrence.

        Paragraphs compare by the hash of their lower-cased,
        whitespace-collapsed content.
        """
        seen: set[str] = set()
        kept: list[str] = []
        for para in _PARAGRAPH_SPLIT_RE.split(text):
            normalised = " ".join(para.split()).lower()
            if not normalised:
                continue
            digest = hashlib.sha256(normalised.encode("utf-8")).hexdigest()
            if digest in seen:
                continue
            seen.add(digest)
            kept.append(para.strip())
        return "\n\n".join(kept)

    def build_document(
        self,
        source: SourceDocument,
        course_id: str | None = None,
        deduplicate: bool = True,
    ) -> Document:
        """Run the full sanitizer stage over *source*."""
        sanitized = self.sanitize(source.text)
        if deduplicate:
            sanitized = self.deduplicate_paragraphs(sanitized)
        metadata = self.extract_metadata(source, sanitized)
        structure = self.analyze_structure(sanitized)

        document = Document(
            document_id=str(uuid.uuid4()),
            raw_text=source.text,
            sanitized_text=sanitized,
            language=metadata.language,
            structure=structure,
            metadata=metadata,
            resource_id=source.resource_id,
            course_id=course_id,
            content_type=source.content_type,
        )
        logger.debug(
            "document_sanitized",
            document_id=document.document_id,
            resource_id=source.resource_id,
            original_length=len(source.text),
            sanitized_length=len(sanitized),
            language=metadata.language,
        )
        return document

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _extract_title(text: str) -> str:
        lines = [line.strip() for line in text.split("\n") if line.strip()]
        if len(lines) < 2:
            return _UNTITLED
        first = lines[0].lstrip("#").strip()
        if 5 <= len(first) <= 100:
            return first
        return _UNTITLED
