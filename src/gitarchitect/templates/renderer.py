"""Plan renderer: exports a Plan as a Markdown checklist.

Rendering is deterministic: the same plan always produces the same document.
"""

import logging
from pathlib import Path
from typing import Any

from jinja2 import Environment, PackageLoader, TemplateError, select_autoescape

from gitarchitect.models.plan import Plan
from gitarchitect.renderers.filters import code_span, escape_headings, one_line

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE = "PLAN.md.j2"


class PlanRenderer:
    """Renders plans to Markdown.

    Usage:
        renderer = PlanRenderer()
        markdown = renderer.render(plan)
    """

    def __init__(self) -> None:
        """Initialize the Jinja2 environment with the package templates."""
        self._env = Environment(
            loader=PackageLoader("gitarchitect", "templates"),
            autoescape=select_autoescape(["html", "xml"]),
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )

        self._env.filters["one_line"] = one_line
        self._env.filters["code_span"] = code_span
        self._env.filters["escape_headings"] = escape_headings

    def render(
        self,
        plan: Plan,
        details: bool = False,
        template_name: str = DEFAULT_TEMPLATE,
    ) -> str:
        """Render a plan to Markdown.

        Args:
            plan: Plan to export
            details: Include step descriptions, complexity, safety checks
                and research notes under the checklist
            template_name: Template file to use

        Returns:
            Rendered Markdown

        Raises:
            ValueError: If the template is missing or fails to render
        """
        try:
            template = self._env.get_template(template_name)
        except TemplateError as e:
            logger.error("Failed to load template %s: %s", template_name, e)
            raise ValueError(f"Template not found: {template_name}") from e

        try:
            rendered = template.render(**self._build_context(plan, details))
        except TemplateError as e:
            logger.error("Template rendering failed: %s", e)
            raise ValueError(f"Template rendering failed: {e}") from e

        logger.debug("Rendered plan (%d characters)", len(rendered))
        return rendered

    def _build_context(self, plan: Plan, details: bool) -> dict[str, Any]:
        return {
            "title": plan.title,
            "summary": plan.summary,
            "steps": plan.steps,
            "research_notes": plan.research_notes,
            "details": details,
        }

    def render_to_file(self, plan: Plan, output_path: Path, details: bool = False) -> Path:
        """Render a plan and write it to a file.

        Args:
            plan: Plan to export
            output_path: Path to write output file
            details: Include step details

        Returns:
            Path to written file
        """
        content = self.render(plan, details=details)

        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(content, encoding="utf-8")
        logger.info("Wrote plan to %s", output_path)

        return output_path
