"""Unit tests for the Sanitizer -- canonicalisation, structure and metadata."""

from __future__ import annotations

import pytest

from course_rag.models.document import SourceDocument
from course_rag.services.ingestion.sanitizer import Sanitizer
from course_rag.utils.errors import InvalidContentError

ZERO_WIDTH_SPACE = chr(0x200B)
BOM = chr(0xFEFF)
LEFT_DQUOTE = chr(0x201C)
RIGHT_DQUOTE = chr(0x201D)
RIGHT_SQUOTE = chr(0x2019)
EM_DASH = chr(0x2014)
NBSP = chr(0x00A0)


@pytest.fixture()
def sanitizer() -> Sanitizer:
    return Sanitizer()


# ---------------------------------------------------------------------------
# sanitize()
# ---------------------------------------------------------------------------


class TestSanitize:
    """Canonical form of extracted text."""

    def test_strips_zero_width_and_bom(self, sanitizer: Sanitizer) -> None:
        raw = f"{BOM}Heat{ZERO_WIDTH_SPACE} engine"
        assert sanitizer.sanitize(raw) == "Heat engine"

    def test_rewrites_smart_punctuation(self, sanitizer: Sanitizer) -> None:
        raw = f"{LEFT_DQUOTE}It{RIGHT_SQUOTE}s hot{RIGHT_DQUOTE} {EM_DASH} he said"
        assert sanitizer.sanitize(raw) == "\"It's hot\" -- he said"

    def test_collapses_whitespace_and_newlines(self, sanitizer: Sanitizer) -> None:
        raw = f"  first\t\tline{NBSP}{NBSP}here  \r\n\r\n\r\n\r\nsecond   line  "
        assert sanitizer.sanitize(raw) == "first line here\n\nsecond line"

    def test_removes_control_characters(self, sanitizer: Sanitizer) -> None:
        assert sanitizer.sanitize("abc\x00def\x07") == "abcdef"

    def test_is_idempotent(self, sanitizer: Sanitizer) -> None:
        raw = (
            f"{BOM}  Title line\r\n\r\n\r\n{LEFT_DQUOTE}Quoted{RIGHT_DQUOTE}\t text"
            f"{ZERO_WIDTH_SPACE} with  {EM_DASH} dashes \n\n\n\nend  "
        )
        once = sanitizer.sanitize(raw)
        assert sanitizer.sanitize(once) == once

    @pytest.mark.parametrize("raw", [None, "", "   ", "\n\n\t"])
    def test_blank_input_raises(self, sanitizer: Sanitizer, raw: str | None) -> None:
        with pytest.raises(InvalidContentError):
            sanitizer.sanitize(raw)

    def test_input_that_sanitizes_to_nothing_raises(self, sanitizer: Sanitizer) -> None:
        with pytest.raises(InvalidContentError):
            sanitizer.sanitize(ZERO_WIDTH_SPACE * 3 + "\x00")

    def test_error_kind(self, sanitizer: Sanitizer) -> None:
        with pytest.raises(InvalidContentError) as info:
            sanitizer.sanitize("")
        assert info.value.kind == "invalid_content"


# ---------------------------------------------------------------------------
# Structure
# ---------------------------------------------------------------------------


class TestAnalyzeStructure:
    def test_counts_markdown_elements(self, sanitizer: Sanitizer) -> None:
        text = (
            "# Heat Transfer\n\n"
            "Conduction moves heat through solids. Convection moves it through fluids.\n\n"
            "- conduction\n"
            "- convection\n"
            "1. radiation\n\n"
            "```\nq = k * A * dT\n```\n\n"
            "## Summary\n\nAll three matter."
        )
        structure = sanitizer.analyze_structure(text)

        assert structure.headings == 2
        assert structure.heading_titles == ["Heat Transfer", "Summary"]
        assert structure.bullet_items == 2
        assert structure.numbered_items == 1
        assert structure.list_items == 3
        assert structure.code_blocks == 1
        assert structure.has_structure is True

    def test_plain_prose(self, sanitizer: Sanitizer, lecture_text: str) -> None:
        structure = sanitizer.analyze_structure(lecture_text)
        assert structure.paragraphs == 3
        assert structure.headings == 0
        assert structure.sentences >= 6
        assert structure.has_structure is False

    def test_unterminated_fence_is_not_counted(self, sanitizer: Sanitizer) -> None:
        structure = sanitizer.analyze_structure("```\ncode without end")
        assert structure.code_blocks == 0


# ---------------------------------------------------------------------------
# Metadata
# ---------------------------------------------------------------------------


class TestExtractMetadata:
    def test_title_from_first_line(self, sanitizer: Sanitizer) -> None:
        text = "Introduction to Entropy\nEntropy measures disorder in a system."
        meta = sanitizer.extract_metadata(SourceDocument(text=text), text)
        assert meta.title == "Introduction to Entropy"

    def test_single_line_is_untitled(self, sanitizer: Sanitizer) -> None:
        text = "Entropy measures disorder in a system."
        meta = sanitizer.extract_metadata(SourceDocument(text=text), text)
        assert meta.title == "Untitled Document"

    def test_too_short_first_line_is_untitled(self, sanitizer: Sanitizer) -> None:
        text = "Hi\nEntropy measures disorder in a system."
        meta = sanitizer.extract_metadata(SourceDocument(text=text), text)
        assert meta.title == "Untitled Document"

    def test_explicit_title_wins(self, sanitizer: Sanitizer, lecture_source: SourceDocument) -> None:
        meta = sanitizer.extract_metadata(lecture_source, lecture_source.text)
        assert meta.title == "Thermodynamics Lecture 3"

    def test_counts_and_reading_time(self, sanitizer: Sanitizer, lecture_text: str) -> None:
        meta = sanitizer.extract_metadata(SourceDocument(text=lecture_text), lecture_text)
        assert meta.word_count == len(lecture_text.split())
        assert meta.character_count == len(lecture_text)
        assert meta.estimated_reading_minutes == 1
        assert meta.language == "en"

    def test_language_hint_is_respected(self, sanitizer: Sanitizer, lecture_text: str) -> None:
        meta = sanitizer.extract_metadata(SourceDocument(text=lecture_text, language="de"), lecture_text)
        assert meta.language == "de"

    def test_key_phrases_exclude_stopwords_and_short_terms(
        self, sanitizer: Sanitizer, lecture_text: str
    ) -> None:
        phrases = sanitizer.extract_key_phrases(lecture_text)
        assert 0 < len(phrases) <= 10
        for phrase in phrases:
            assert len(phrase) > 3
            assert phrase not in {"that", "which", "with", "between"}

    def test_key_phrase_limit(self, lecture_text: str) -> None:
        assert len(Sanitizer(key_phrase_limit=3).extract_key_phrases(lecture_text)) == 3


# ---------------------------------------------------------------------------
# Deduplication / build_document
# ---------------------------------------------------------------------------


class TestDeduplicate:
    def test_drops_repeated_paragraphs(self, sanitizer: Sanitizer) -> None:
        text = "Alpha paragraph.\n\nBeta paragraph.\n\nalpha   PARAGRAPH.\n\nGamma."
        assert sanitizer.deduplicate_paragraphs(text) == "Alpha paragraph.\n\nBeta paragraph.\n\nGamma."


class TestBuildDocument:
    def test_populates_document(self, sanitizer: Sanitizer, lecture_source: SourceDocument) -> None:
        document = sanitizer.build_document(lecture_source, course_id="phys-101")

        assert document.document_id
        assert document.raw_text == lecture_source.text
        assert document.sanitized_text == sanitizer.sanitize(lecture_source.text)
        assert document.course_id == "phys-101"
        assert document.resource_id == "res-thermo-3"
        assert document.content_type == "lecture_notes"
        assert document.title == "Thermodynamics Lecture 3"
        assert document.structure.paragraphs == 3

    def test_deduplication_can_be_disabled(self, sanitizer: Sanitizer) -> None:
        source = SourceDocument(text="Same paragraph here.\n\nSame paragraph here.")
        kept = sanitizer.build_document(source, deduplicate=False)
        deduped = sanitizer.build_document(source)
        assert kept.structure.paragraphs == 2
        assert deduped.structure.paragraphs == 1

    def test_each_build_gets_a_fresh_id(self, sanitizer: Sanitizer, lecture_source: SourceDocument) -> None:
        first = sanitizer.build_document(lecture_source)
        second = sanitizer.build_document(lecture_source)
        assert first.document_id != second.document_id
