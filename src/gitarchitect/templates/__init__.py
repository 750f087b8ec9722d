"""Plan export templates.

Jinja2-based rendering with deterministic output.
"""

from gitarchitect.templates.renderer import PlanRenderer

__all__ = ["PlanRenderer"]
