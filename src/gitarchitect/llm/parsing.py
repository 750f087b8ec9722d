"""Normalization of model output before JSON parsing.

Local backends in particular wrap JSON in markdown fences or surround it
with prose. Every JSON-mode call site goes through parse_json_response.
"""

import json
import re
from typing import Any

from gitarchitect.errors import MalformedResponseError

_FENCE_RE = re.compile(r"^\s*```[A-Za-z0-9_-]*[ \t]*\r?\n?(.*?)\r?\n?[ \t]*```\s*$", re.DOTALL)
_EMBEDDED_FENCE_RE = re.compile(r"```(?:json|JSON)?[ \t]*\r?\n(.*?)\r?\n?[ \t]*```", re.DOTALL)


def strip_code_fences(text: str) -> str:
    """Remove a markdown code fence wrapping the whole text.

    >>> strip_code_fences('```json\\n{"a": 1}\\n```')
    '{"a": 1}'
    """
    match = _FENCE_RE.match(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def _extract_json_span(text: str) -> str | None:
    """Return the outermost {...} or [...] span of text, if any."""
    starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
    if not starts:
        return None
    start = min(starts)
    closer = "}" if text[start] == "{" else "]"
    end = text.rfind(closer)
    if end <= start:
        return None
    return text[start : end + 1]


def parse_json_response(text: str) -> Any:
    """Parse a model response as JSON.

    Tries, in order: the fence-stripped text, the first fenced block inside
    surrounding prose, and the outermost bracketed span.

    Args:
        text: Raw model output

    Returns:
        Parsed JSON value

    Raises:
        MalformedResponseError: If no candidate parses, with the raw text kept
    """
    if not text or not text.strip():
        raise MalformedResponseError("Model returned an empty response", raw_response=text or "")

    candidates = [strip_code_fences(text)]
    embedded = _EMBEDDED_FENCE_RE.search(text)
    if embedded:
        candidates.append(embedded.group(1).strip())
    span = _extract_json_span(text)
    if span:
        candidates.append(span)

    last_error: json.JSONDecodeError | None = None
    for candidate in candidates:
        try:
            return json.loads(candidate)
        except json.JSONDecodeError as e:
            last_error = e

    raise MalformedResponseError(
        f"Model response is not valid JSON: {last_error}",
        raw_response=text,
    )
