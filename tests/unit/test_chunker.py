"""Unit tests for the ChunkingEngine -- strategy selection, size bounds, spans."""

from __future__ import annotations

import math

import pytest

from course_rag.models.document import SourceDocument
from course_rag.models.rag import ChunkStrategy
from course_rag.services.ingestion.chunker import ChunkingEngine
from course_rag.services.ingestion.sanitizer import Sanitizer
from course_rag.utils.errors import ConfigurationError, InvalidContentError

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_engine(min_size: int = 10, max_size: int = 50, overlap: int = 5) -> ChunkingEngine:
    return ChunkingEngine(min_chunk_size=min_size, max_chunk_size=max_size, overlap_size=overlap)


def _numbered_words(n: int) -> str:
    return " ".join(f"word{i}" for i in range(n))


def _sentences(*lengths: int) -> str:
    """One paragraph of sentences with the given word counts."""
    return " ".join(" ".join(["heat"] * (n - 1) + ["flows."]) for n in lengths)


def _paragraphs(*lengths: int) -> str:
    """Single-sentence paragraphs with the given word counts."""
    return "\n\n".join(_sentences(n) for n in lengths)


_UNEVEN_LENGTHS = [(5, 28, 28, 5), (31, 4, 45, 3), (1, 1, 29, 2, 30, 19), (12, 12, 12, 12)]


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class TestConfiguration:
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"min_chunk_size": 10, "max_chunk_size": 0, "overlap_size": 0},
            {"min_chunk_size": 60, "max_chunk_size": 50, "overlap_size": 0},
            {"min_chunk_size": 10, "max_chunk_size": 50, "overlap_size": 50},
            {"min_chunk_size": -1, "max_chunk_size": 50, "overlap_size": 0},
        ],
    )
    def test_invalid_sizes_rejected(self, kwargs: dict) -> None:
        with pytest.raises(ConfigurationError):
            ChunkingEngine(**kwargs)

    def test_unknown_strategy_raises(self, lecture_text: str) -> None:
        with pytest.raises(InvalidContentError):
            _make_engine().chunk(lecture_text, "by-vibes")

    @pytest.mark.parametrize("text", ["", "   \n  "])
    def test_empty_text_raises(self, text: str) -> None:
        with pytest.raises(InvalidContentError):
            _make_engine().chunk(text)


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


class TestFixedStrategy:
    """Fixed windows of exactly max_chunk_size tokens."""

    @pytest.mark.parametrize("total", [1, 49, 50, 51, 137, 200])
    def test_chunk_count_is_ceiling(self, total: int) -> None:
        chunks = _make_engine(overlap=0).chunk(_numbered_words(total), ChunkStrategy.FIXED)
        assert len(chunks) == math.ceil(total / 50)

    def test_all_but_last_are_full(self) -> None:
        chunks = _make_engine().chunk(_numbered_words(137), ChunkStrategy.FIXED)
        assert [c.tokens for c in chunks] == [50, 50, 37]

    def test_content_is_exact_source_slice(self) -> None:
        text = _numbered_words(120)
        for chunk in _make_engine().chunk(text, ChunkStrategy.FIXED):
            start, end = chunk.position
            assert text[start:end] == chunk.content

    def test_windows_cover_the_text_without_overlap(self) -> None:
        text = _numbered_words(120)
        chunks = _make_engine().chunk(text, ChunkStrategy.FIXED)
        rebuilt = " ".join(c.content for c in chunks)
        assert rebuilt == text


class TestParagraphStrategy:
    def test_three_paragraphs_three_chunks(self, lecture_text: str) -> None:
        engine = ChunkingEngine(min_chunk_size=10, max_chunk_size=200, overlap_size=5)
        chunks = engine.chunk(lecture_text, ChunkStrategy.PARAGRAPH)

        assert len(chunks) == 3
        paragraphs = lecture_text.split("\n\n")
        assert [c.content for c in chunks] == paragraphs

    def test_small_paragraphs_merge_forward(self) -> None:
        text = "Short one.\n\nTiny.\n\n" + _numbered_words(30)
        chunks = ChunkingEngine(min_chunk_size=10, max_chunk_size=100, overlap_size=0).chunk(
            text, ChunkStrategy.PARAGRAPH
        )
        assert len(chunks) == 1
        assert chunks[0].content.startswith("Short one.")

    def test_oversized_paragraph_is_packed_by_sentence(self) -> None:
        sentence = "Energy flows from hot bodies to cold bodies in every case. "
        text = (sentence * 12).strip()
        chunks = ChunkingEngine(min_chunk_size=5, max_chunk_size=40, overlap_size=0).chunk(
            text, ChunkStrategy.PARAGRAPH
        )
        assert [c.tokens for c in chunks] == [33, 33, 33, 33]

    def test_overflowing_merge_still_reaches_min(self) -> None:
        chunks = _make_engine(min_size=20, max_size=30).chunk(
            _paragraphs(15, 25, 25), ChunkStrategy.PARAGRAPH
        )
        assert [c.tokens for c in chunks] == [30, 30, 5]

    @pytest.mark.parametrize("lengths", _UNEVEN_LENGTHS)
    def test_size_bounds_hold_for_uneven_paragraphs(self, lengths: tuple[int, ...]) -> None:
        text = _paragraphs(*lengths)
        chunks = _make_engine(min_size=20, max_size=30).chunk(text, ChunkStrategy.PARAGRAPH)

        assert all(20 <= c.tokens <= 30 for c in chunks[:-1])
        assert chunks[-1].tokens <= 30
        assert sum(c.tokens for c in chunks) == sum(lengths)
        for chunk in chunks:
            start, end = chunk.position
            assert text[start:end] == chunk.content


class TestSentenceStrategy:
    def test_sentences_are_not_split(self, lecture_text: str) -> None:
        chunks = _make_engine(max_size=60).chunk(lecture_text, ChunkStrategy.SENTENCE)
        for chunk in chunks:
            assert chunk.content.rstrip().endswith((".", ":"))
            assert chunk.tokens <= 60

    def test_keeps_sentence_ends_over_min_size(self) -> None:
        chunks = _make_engine(min_size=20, max_size=30).chunk(
            _sentences(5, 28, 28, 5), ChunkStrategy.SENTENCE
        )
        assert [c.tokens for c in chunks] == [5, 28, 28, 5]
        assert all(c.content.endswith("flows.") for c in chunks)


class TestSemanticStrategy:
    def test_respects_max_size(self, lecture_text: str) -> None:
        chunks = _make_engine(min_size=10, max_size=40, overlap=5).chunk(lecture_text)
        assert chunks
        assert all(c.strategy is ChunkStrategy.SEMANTIC for c in chunks)
        assert all(c.tokens <= 40 for c in chunks)

    def test_all_chunks_but_last_reach_min_size(self, lecture_text: str) -> None:
        chunks = _make_engine(min_size=20, max_size=200, overlap=5).chunk(lecture_text)
        assert all(c.tokens >= 20 for c in chunks[:-1])

    def test_cuts_at_paragraph_breaks(self, lecture_text: str) -> None:
        chunks = _make_engine(min_size=10, max_size=200, overlap=5).chunk(lecture_text)
        assert len(chunks) == 3
        assert chunks[1].content.startswith("Entropy measures")

    def test_overlap_repeats_tail_sentences(self) -> None:
        sentences = [f"Sentence number {i} talks about heat." for i in range(12)]
        text = " ".join(sentences)
        chunks = _make_engine(min_size=30, max_size=30, overlap=12).chunk(text)
        assert len(chunks) > 1
        last_sentence_of_first = chunks[0].content.split(". ")[-1]
        assert last_sentence_of_first.rstrip(".") in chunks[1].content

    def test_long_sentence_is_hard_split(self) -> None:
        text = _numbered_words(130) + "."
        chunks = _make_engine(min_size=10, max_size=50, overlap=5).chunk(text)
        assert [c.tokens for c in chunks] == [50, 50, 30]

    def test_short_buffer_is_topped_up_before_a_long_sentence(self) -> None:
        text = _sentences(5, 28, 28, 5)
        chunks = _make_engine(min_size=20, max_size=30).chunk(text)

        assert [c.tokens for c in chunks] == [30, 30, 6]
        assert chunks[0].content.startswith("heat heat heat heat flows. heat")
        assert not chunks[0].content.endswith(".")

    @pytest.mark.parametrize("lengths", _UNEVEN_LENGTHS)
    def test_size_bounds_hold_for_uneven_sentences(self, lengths: tuple[int, ...]) -> None:
        text = _sentences(*lengths)
        chunks = _make_engine(min_size=20, max_size=30).chunk(text)

        assert all(20 <= c.tokens <= 30 for c in chunks[:-1])
        assert chunks[-1].tokens <= 30
        for chunk in chunks:
            start, end = chunk.position
            assert text[start:end] == chunk.content


# ---------------------------------------------------------------------------
# Chunk fields
# ---------------------------------------------------------------------------


class TestChunkFields:
    def test_indices_positions_and_hash(self, lecture_source: SourceDocument) -> None:
        document = Sanitizer().build_document(lecture_source)
        chunks = _make_engine(max_size=200).chunk(document)

        assert [c.index for c in chunks] == list(range(len(chunks)))
        for chunk in chunks:
            assert chunk.document_id == document.document_id
            start, end = chunk.position
            assert document.sanitized_text[start:end] == chunk.content
            assert len(chunk.content_hash) == 64
            assert chunk.words > 0
            assert chunk.sentences > 0

    def test_create_chunk_locates_position(self) -> None:
        full = "Alpha beta gamma. Delta epsilon zeta."
        chunk = _make_engine().create_chunk(
            "Delta epsilon zeta.", full, index=0, document_id="d", strategy=ChunkStrategy.SENTENCE
        )
        assert chunk is not None
        assert chunk.position == (18, 37)
        assert chunk.tokens == 3

    def test_create_chunk_blank_returns_none(self) -> None:
        assert (
            _make_engine().create_chunk("  ", "x", index=0, document_id="d", strategy=ChunkStrategy.FIXED)
            is None
        )

    def test_equal_content_hashes_match(self) -> None:
        engine = _make_engine()
        a = engine.create_chunk("Heat  flows", "", index=0, document_id="a", strategy=ChunkStrategy.FIXED)
        b = engine.create_chunk("heat flows", "", index=0, document_id="b", strategy=ChunkStrategy.FIXED)
        assert a is not None and b is not None
        assert a.content_hash == b.content_hash
