"""Preflight validation.

Backend dependencies are validated before analysis begins, not during
processing. A missing required dependency causes an immediate exit with a
clear error message instead of a partially built plan.
"""

import importlib.util
import json
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import Any

from gitarchitect.config import ArchitectConfig
from gitarchitect.models.llm_config import LLMConfig

logger = logging.getLogger(__name__)


@dataclass
class ToolCheck:
    """Result of checking a single dependency.

    Attributes:
        name: Dependency name
        available: Whether the dependency is usable
        version: Version if known
        required: Whether the dependency is required for this run
        path: Module path or endpoint if available
        message: Status message (human-readable context)
    """

    name: str
    available: bool
    version: str | None = None
    required: bool = True
    path: str | None = None
    message: str = ""


@dataclass
class PreflightResult:
    """Result of preflight validation.

    Attributes:
        success: Whether all required dependencies are available
        checks: Individual check results
        errors: Error messages for missing required dependencies
        warnings: Warning messages for missing optional dependencies
    """

    success: bool = True
    checks: list[ToolCheck] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def add_check(self, check: ToolCheck) -> None:
        """Add a check result."""
        self.checks.append(check)

        if not check.available:
            detail = f": {check.message}" if check.message else ""
            if check.required:
                self.success = False
                self.errors.append(f"{check.name} unavailable{detail}")
            else:
                self.warnings.append(f"{check.name} unavailable{detail}")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "success": self.success,
            "checks": [
                {
                    "name": c.name,
                    "available": c.available,
                    "version": c.version,
                    "required": c.required,
                    "path": c.path,
                    "message": c.message,
                }
                for c in self.checks
            ],
            "errors": self.errors,
            "warnings": self.warnings,
        }


class PreflightChecker:
    """Validates model backend and hosting prerequisites before analysis.

    Usage:
        checker = PreflightChecker()
        result = checker.check_all(config)
        if not result.success:
            raise typer.Exit(code=1)
    """

    def __init__(self, timeout: int = 5) -> None:
        """Initialize preflight checker.

        Args:
            timeout: Timeout in seconds for endpoint pings
        """
        self.timeout = timeout

    def check_litellm(self, required: bool = True) -> ToolCheck:
        """Check if the LiteLLM package is importable."""
        litellm_spec = importlib.util.find_spec("litellm")
        if litellm_spec is None:
            return ToolCheck(
                name="litellm",
                available=False,
                required=required,
                message="Install with: pip install litellm",
            )

        from importlib.metadata import PackageNotFoundError, version

        try:
            litellm_version: str | None = version("litellm")
        except PackageNotFoundError:
            litellm_version = None

        return ToolCheck(
            name="litellm",
            available=True,
            version=litellm_version,
            required=required,
            path=litellm_spec.origin,
            message="Unified LLM interface (Python package)",
        )

    def check_backend_config(self, llm: LLMConfig) -> ToolCheck:
        """Check that the configured backend can be called at all.

        Args:
            llm: Model backend configuration

        Returns:
            ToolCheck result
        """
        name = f"llm:{llm.provider}"

        if not llm.enabled:
            return ToolCheck(
                name=name,
                available=False,
                message="Model backend is disabled (llm.enabled: false)",
            )

        if llm.provider == "gemini" and not llm.api_key:
            return ToolCheck(
                name=name,
                available=False,
                message="API key required. Set llm.api_key or GEMINI_API_KEY env var",
            )

        for warning in llm.validate():
            logger.warning(warning)

        return ToolCheck(
            name=name,
            available=True,
            path=llm.api_base,
            message=f"Model: {llm.get_litellm_model_name()}",
        )

    def check_local_endpoint(self, api_base: str) -> ToolCheck:
        """Check that a local OpenAI-compatible endpoint responds.

        Pings the models listing, which every compatible server exposes.

        Args:
            api_base: Endpoint base URL (e.g. http://localhost:11434/v1)

        Returns:
            ToolCheck result
        """
        url = f"{api_base.rstrip('/')}/models"
        request = urllib.request.Request(url, method="GET")

        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as response:
                payload = json.loads(response.read().decode() or "{}")
        except (urllib.error.URLError, OSError, ValueError) as e:
            logger.debug("Local endpoint ping failed: %s", e)
            return ToolCheck(
                name="local-endpoint",
                available=False,
                message=f"Endpoint not responding at {api_base}",
            )

        models = payload.get("data") if isinstance(payload, dict) else None
        count = len(models) if isinstance(models, list) else 0
        return ToolCheck(
            name="local-endpoint",
            available=True,
            path=api_base,
            message=f"Local model server ({count} models listed)",
        )

    def check_github_token(self, token: str | None) -> ToolCheck:
        """Check for a hosting token. Optional: anonymous access is rate limited."""
        if token:
            return ToolCheck(
                name="github-token",
                available=True,
                required=False,
                message="Authenticated repository access",
            )
        return ToolCheck(
            name="github-token",
            available=False,
            required=False,
            message="Anonymous access is limited to 60 requests/hour. Set GITHUB_TOKEN",
        )

    def check_all(self, config: ArchitectConfig, ping_endpoint: bool = True) -> PreflightResult:
        """Run all preflight checks.

        Args:
            config: Loaded configuration
            ping_endpoint: Contact the local endpoint (skipped for hosted backends)

        Returns:
            PreflightResult with all check results
        """
        result = PreflightResult()

        result.add_check(self.check_litellm(required=True))

        backend = self.check_backend_config(config.llm)
        result.add_check(backend)

        if backend.available and config.llm.is_local and ping_endpoint and config.llm.api_base:
            result.add_check(self.check_local_endpoint(config.llm.api_base))

        result.add_check(self.check_github_token(config.github.token))

        return result
