"""Unit tests for model response normalization."""

import pytest

from gitarchitect.errors import MalformedResponseError
from gitarchitect.llm.parsing import parse_json_response, strip_code_fences


class TestStripCodeFences:
    """Tests for fence removal."""

    def test_json_fence(self) -> None:
        """Test a fenced JSON block."""
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_bare_fence(self) -> None:
        """Test a fence without a language tag."""
        assert strip_code_fences('```\n[1, 2]\n```\n') == "[1, 2]"

    def test_unfenced(self) -> None:
        """Test that plain text is only stripped."""
        assert strip_code_fences('  {"a": 1}  ') == '{"a": 1}'


class TestParseJsonResponse:
    """Tests for tolerant JSON parsing."""

    def test_plain_json(self) -> None:
        """Test JSON without decoration."""
        assert parse_json_response('{"files": ["a.py"]}') == {"files": ["a.py"]}

    def test_fenced_json(self) -> None:
        """Test JSON inside a markdown fence."""
        assert parse_json_response('```json\n["a.py", "b.py"]\n```') == ["a.py", "b.py"]

    def test_fence_inside_prose(self) -> None:
        """Test a fenced block surrounded by explanations."""
        text = 'Here are the files:\n```json\n{"files": ["a.py"]}\n```\nHope this helps!'

        assert parse_json_response(text) == {"files": ["a.py"]}

    def test_span_inside_prose(self) -> None:
        """Test an unfenced object surrounded by prose."""
        text = 'Sure! {"title": "T", "steps": []} Let me know.'

        assert parse_json_response(text) == {"title": "T", "steps": []}

    def test_empty_response(self) -> None:
        """Test that empty output is malformed."""
        with pytest.raises(MalformedResponseError, match="empty"):
            parse_json_response("   ")

    def test_invalid_keeps_raw_response(self) -> None:
        """Test that the raw text is preserved for diagnosis."""
        with pytest.raises(MalformedResponseError) as exc_info:
            parse_json_response("I cannot help with that.")

        assert exc_info.value.raw_response == "I cannot help with that."
