"""Unit tests for best-effort JSON parsing of external responses."""

from __future__ import annotations

import json

import pytest

from course_rag.utils.errors import ParseError
from course_rag.utils.json_repair import parse_json_response, repair_json


class TestParseJsonResponse:
    def test_plain_json(self) -> None:
        assert parse_json_response('{"a": 1}') == {"a": 1}

    def test_markdown_fence(self) -> None:
        text = 'Here you go:\n```json\n{"results": [1, 2]}\n```\nAnything else?'
        assert parse_json_response(text) == {"results": [1, 2]}

    def test_surrounding_chatter(self) -> None:
        assert parse_json_response('Sure! [1, 2, 3] hope that helps') == [1, 2, 3]

    def test_trailing_commas(self) -> None:
        assert parse_json_response('{"a": [1, 2,], "b": 3,}') == {"a": [1, 2], "b": 3}

    def test_truncated_object_drops_partial_tail(self) -> None:
        text = '{"data": [{"index": 0, "embedding": [0.1, 0.2]}, {"index": 1, "embedding": [0.3'
        assert parse_json_response(text) == {"data": [{"index": 0, "embedding": [0.1, 0.2]}]}

    def test_truncated_without_closer(self) -> None:
        assert parse_json_response('{"results": [1, 2') == {"results": [1, 2]}

    def test_unterminated_string(self) -> None:
        assert parse_json_response('{"detail": "rate limi') == {"detail": "rate limi"}

    @pytest.mark.parametrize("text", ["", "   \n", None])
    def test_empty_body(self, text: str | None) -> None:
        with pytest.raises(ParseError, match="Empty response body"):
            parse_json_response(text, provider_name="jina")  # type: ignore[arg-type]

    def test_unrecoverable(self) -> None:
        with pytest.raises(ParseError) as info:
            parse_json_response("upstream timed out", provider_name="jina")
        assert info.value.provider_name == "jina"
        assert info.value.kind == "parse_error"


class TestRepairJson:
    def test_brackets_inside_strings_ignored(self) -> None:
        repaired = repair_json('{"text": "a } and ] inside", "n": [1')
        assert json.loads(repaired) == {"text": "a } and ] inside", "n": [1]}

    def test_escaped_quote(self) -> None:
        repaired = repair_json('{"q": "say \\"hi\\"", "x": {"y": 2')
        assert json.loads(repaired) == {"q": 'say "hi"', "x": {"y": 2}}

    def test_dangling_comma_before_added_closers(self) -> None:
        assert json.loads(repair_json('[1, 2,')) == [1, 2]

    def test_valid_json_unchanged(self) -> None:
        assert repair_json('{"a": [1]}') == '{"a": [1]}'
