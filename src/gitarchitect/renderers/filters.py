"""Jinja2 filters for plan export.

Model-authored text can contain newlines and backticks that would break a
one-line Markdown checklist item; these filters normalize it.
"""

import re

_WHITESPACE_RE = re.compile(r"\s+")


def one_line(text: str | None) -> str:
    """Collapse all whitespace runs (including newlines) into single spaces."""
    if not text:
        return ""
    return _WHITESPACE_RE.sub(" ", str(text)).strip()


def code_span(text: str | None) -> str:
    """Wrap text in an inline Markdown code span.

    Uses a fence longer than any backtick run inside the text, padding
    with spaces when the text starts or ends with a backtick.

    >>> code_span("src/app.ts")
    '`src/app.ts`'
    """
    value = one_line(text)
    if not value:
        return ""
    longest = max((len(run) for run in re.findall(r"`+", value)), default=0)
    fence = "`" * (longest + 1)
    if value.startswith("`") or value.endswith("`"):
        value = f" {value} "
    return f"{fence}{value}{fence}"


_HEADING_RE = re.compile(r"^([ \t]{0,3})#", re.MULTILINE)


def escape_headings(text: str | None) -> str:
    """Escape ATX headings so embedded text cannot add document headings."""
    if not text:
        return ""
    return _HEADING_RE.sub(r"\1\\#", str(text).strip())
