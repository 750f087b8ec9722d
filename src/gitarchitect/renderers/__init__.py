"""Jinja2 filters used by the plan templates."""

from gitarchitect.renderers.filters import code_span, escape_headings, one_line

__all__ = ["code_span", "escape_headings", "one_line"]
