"""Tests for LLM response parsing."""

import pytest
from harvest.common.llm_utils import parse_llm_json, strip_code_fences


class TestParseLlmJson:
    def test_valid_json(self):
        assert parse_llm_json('{"key": "value"}') == {"key": "value"}

    def test_json_with_markdown_fences(self):
        raw = '```json\n{"related_cases": [], "note": "none"}\n```'
        assert parse_llm_json(raw) == {"related_cases": [], "note": "none"}

    def test_json_with_plain_fences(self):
        assert parse_llm_json('```\n{"a": 1}\n```') == {"a": 1}

    def test_json_embedded_in_text(self):
        raw = 'Here is the result: {"key": "value"} and some trailing text.'
        assert parse_llm_json(raw) == {"key": "value"}

    def test_nested_json(self):
        raw = '{"related_cases": [{"case_id": 1}, {"case_id": 2}]}'
        assert len(parse_llm_json(raw)["related_cases"]) == 2

    def test_no_json_raises(self):
        with pytest.raises(ValueError, match="not valid JSON"):
            parse_llm_json("This is not JSON at all")

    def test_empty_string_raises(self):
        with pytest.raises(ValueError, match="empty"):
            parse_llm_json("   ")

    def test_broken_braces_raise(self):
        with pytest.raises(ValueError):
            parse_llm_json('{"broken: json')


class TestStripCodeFences:
    def test_unfenced_text_is_untouched(self):
        assert strip_code_fences('{"a": 1}') == '{"a": 1}'
