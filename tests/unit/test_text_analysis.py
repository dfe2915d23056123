"""Unit tests for the shared text-analysis primitives and token counters."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from course_rag.utils.errors import ConfigurationError
from course_rag.utils.text_analysis import (
    content_terms,
    cosine_similarity,
    count_syllables,
    detect_language,
    ends_with_terminator,
    sparse_dot,
    split_sentences,
    tf_idf_vectors,
)
from course_rag.utils.tokenization import WordTokenCounter, build_token_counter


# ---------------------------------------------------------------------------
# Sentences
# ---------------------------------------------------------------------------


class TestSplitSentences:
    def test_abbreviations_and_decimals(self) -> None:
        text = "Dr. Smith arrived at 3.5 p.m. today. It rained! Why?"
        sentences = split_sentences(text)
        assert [s.text for s in sentences] == [
            "Dr. Smith arrived at 3.5 p.m. today.",
            "It rained!",
            "Why?",
        ]

    def test_offsets_point_into_source(self) -> None:
        text = "  First one.   Second one"
        for sentence in split_sentences(text):
            assert text[sentence.start : sentence.end] == sentence.text
        assert split_sentences(text)[-1].text == "Second one"

    def test_closing_quote_stays_with_sentence(self) -> None:
        sentences = split_sentences('He said "stop." Then left.')
        assert sentences[0].text == 'He said "stop."'

    def test_blank(self) -> None:
        assert split_sentences("   ") == []

    @pytest.mark.parametrize(
        "text,expected",
        [("Done.", True), ("Really?)", True), ("trailing words", False), ("", False)],
    )
    def test_ends_with_terminator(self, text: str, expected: bool) -> None:
        assert ends_with_terminator(text) is expected


# ---------------------------------------------------------------------------
# Words and language
# ---------------------------------------------------------------------------


class TestWords:
    def test_content_terms_drop_stopwords(self) -> None:
        assert content_terms("The Carnot engine and the heat") == ["carnot", "engine", "heat"]

    def test_content_terms_min_length(self) -> None:
        assert content_terms("x ray of ok light", min_length=3) == ["ray", "light"]

    @pytest.mark.parametrize("word,expected", [("cat", 1), ("reading", 2), ("syllable", 3), ("make", 1)])
    def test_count_syllables(self, word: str, expected: int) -> None:
        assert count_syllables(word) == expected

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("the cat is on the mat and it is happy", "en"),
            ("el gato y la casa de los padres", "es"),
            ("le chat est dans la maison avec les enfants", "fr"),
            ("Xylophone zebra", "en"),
            ("12345 67890", "unknown"),
            ("", "unknown"),
        ],
    )
    def test_detect_language(self, text: str, expected: str) -> None:
        assert detect_language(text) == expected


# ---------------------------------------------------------------------------
# TF-IDF and similarity
# ---------------------------------------------------------------------------


class TestSimilarity:
    def test_identical_documents(self) -> None:
        a, b = tf_idf_vectors([["heat", "engine"], ["heat", "engine"]])
        assert cosine_similarity(a, b) == pytest.approx(1.0)

    def test_disjoint_documents(self) -> None:
        a, b = tf_idf_vectors([["heat"], ["cell"]])
        assert cosine_similarity(a, b) == 0.0

    def test_empty_document_vector(self) -> None:
        assert tf_idf_vectors([[], ["x"]])[0] == {}
        assert cosine_similarity({}, {"x": 1.0}) == 0.0

    def test_sparse_dot(self) -> None:
        assert sparse_dot({1: 2.0}, {1: 3.0, 2: 1.0}) == 6.0


# ---------------------------------------------------------------------------
# Token counters
# ---------------------------------------------------------------------------


class TestTokenCounters:
    def test_word_counter(self) -> None:
        counter = WordTokenCounter()
        assert counter.count("a  b\nc") == 3
        assert counter.count("") == 0
        assert counter.spans("ab cd") == [(0, 2), (3, 5)]

    def test_word_spans_slice_back_to_tokens(self) -> None:
        text = "  heat\tflows\n\ndownhill. "
        counter = WordTokenCounter()
        assert [text[s:e] for s, e in counter.spans(text)] == ["heat", "flows", "downhill."]
        assert len(counter.spans(text)) == counter.count(text)

    @pytest.mark.parametrize("name", ["", "word"])
    def test_build_word(self, name: str) -> None:
        assert isinstance(build_token_counter(name), WordTokenCounter)

    def test_build_tiktoken_default_encoding(self) -> None:
        with patch(
            "course_rag.utils.tokenization.TiktokenTokenCounter.from_encoding_name"
        ) as factory:
            build_token_counter("tiktoken")
            build_token_counter("tiktoken:o200k_base")
        assert [c.args[0] for c in factory.call_args_list] == ["cl100k_base", "o200k_base"]

    def test_build_unknown(self) -> None:
        with pytest.raises(ConfigurationError, match="Unknown token counter"):
            build_token_counter("sentencepiece")
