"""GitArchitect configuration system.

Configuration is YAML-based with a handful of CLI overrides (--model,
--provider, --branch). Supports environment variable substitution (${VAR})
in config files.

Configuration file discovery (in priority order):
1. CLI --config argument
2. ./.gitarchitect/config.yaml
3. ./gitarchitect.yaml
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from gitarchitect.models.llm_config import DEFAULT_LOCAL_API_BASE, LLMConfig
from gitarchitect.security.scanner import ScannerConfig
from gitarchitect.tree.serializer import MAX_TREE_LINES

# Upper bound on stage-1 selection, whatever the configuration asks for
MAX_SELECTED_FILES = 10

# =============================================================================
# Configuration Dataclasses
# =============================================================================


@dataclass
class GitHubConfig:
    """Repository hosting configuration.

    Attributes:
        api_base: REST API base URL
        raw_base: Raw content base URL
        token: Optional access token (raises the rate limit, reaches private repos)
        timeout: Request timeout in seconds
    """

    api_base: str = "https://api.github.com"
    raw_base: str = "https://raw.githubusercontent.com"
    token: str | None = None
    timeout: float = 30.0

    def __post_init__(self) -> None:
        """Validate hosting configuration."""
        if self.timeout <= 0:
            raise ValueError(f"github.timeout must be positive (got {self.timeout})")


@dataclass
class AnalysisConfig:
    """Context budget configuration.

    Attributes:
        max_selected_files: Files chosen by stage-1 selection (at most 10)
        max_tree_lines: Node lines in a tree digest (at most 500)
        max_file_size_bytes: Files above this size are filtered out of the tree
        max_file_chars: Characters of each file placed in the synthesis prompt
        max_readme_chars: Characters of the README placed in the synthesis prompt
        max_concurrent_fetches: Parallel file fetches
        deep_research: Run web research before synthesis when the backend supports it
    """

    max_selected_files: int = 10
    max_tree_lines: int = 500
    max_file_size_bytes: int = 102_400
    max_file_chars: int = 12_000
    max_readme_chars: int = 20_000
    max_concurrent_fetches: int = 8
    deep_research: bool = True

    def __post_init__(self) -> None:
        """Validate analysis limits."""
        for name in (
            "max_selected_files",
            "max_tree_lines",
            "max_file_size_bytes",
            "max_file_chars",
            "max_readme_chars",
            "max_concurrent_fetches",
        ):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                raise ValueError(f"analysis.{name} must be a positive integer (got {value!r})")
        for name, ceiling in (
            ("max_selected_files", MAX_SELECTED_FILES),
            ("max_tree_lines", MAX_TREE_LINES),
        ):
            value = getattr(self, name)
            if value > ceiling:
                raise ValueError(f"analysis.{name} must be at most {ceiling} (got {value})")


def _default_llm_config() -> LLMConfig:
    return LLMConfig(provider="local", model="llama3.2", api_base=DEFAULT_LOCAL_API_BASE)


@dataclass
class ArchitectConfig:
    """Top-level GitArchitect configuration.

    Attributes:
        github: Repository hosting settings
        llm: Model backend settings (local Ollama by default)
        analysis: Context budget settings
        security: Secret scanner settings
    """

    github: GitHubConfig = field(default_factory=GitHubConfig)
    llm: LLMConfig = field(default_factory=_default_llm_config)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    security: ScannerConfig = field(default_factory=ScannerConfig)

    # Runtime overrides (set by CLI)
    _config_path: Path | None = field(default=None, repr=False)

    @property
    def config_path(self) -> Path | None:
        """Get the path to the config file that was loaded."""
        return self._config_path


# =============================================================================
# Environment Variable Substitution
# =============================================================================


def substitute_env_vars(value: Any) -> Any:
    """Substitute environment variables in config values.

    Supports ${VAR} syntax for environment variable substitution.
    Example: ${GEMINI_API_KEY} -> value of GEMINI_API_KEY

    Args:
        value: Config value (string, dict, list, or other)

    Returns:
        Value with environment variables substituted

    Raises:
        ValueError: If a referenced variable is not set
    """
    if isinstance(value, str):
        pattern = re.compile(r"\$\{([^}]+)\}")

        def replace_var(match: re.Match[str]) -> str:
            var_name = match.group(1)
            env_value = os.environ.get(var_name)
            if env_value is None:
                raise ValueError(f"Environment variable not set: {var_name}")
            return env_value

        return pattern.sub(replace_var, value)

    elif isinstance(value, dict):
        return {k: substitute_env_vars(v) for k, v in value.items()}

    elif isinstance(value, list):
        return [substitute_env_vars(v) for v in value]

    return value


# =============================================================================
# Config File Discovery
# =============================================================================


def find_config_file(start_path: Path | None = None) -> Path | None:
    """Find configuration file in standard locations.

    Search order:
    1. ./.gitarchitect/config.yaml
    2. ./gitarchitect.yaml

    Args:
        start_path: Starting directory for search (defaults to cwd)

    Returns:
        Path to config file if found, None otherwise
    """
    if start_path is None:
        start_path = Path.cwd()

    start_path = start_path.resolve()

    candidates = [
        start_path / ".gitarchitect" / "config.yaml",
        start_path / "gitarchitect.yaml",
    ]

    for candidate in candidates:
        if candidate.exists():
            return candidate

    return None


# =============================================================================
# Config Loading
# =============================================================================


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    """Return a config section, which must be a mapping if present."""
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"Config section '{name}' must be a mapping")
    return section


def load_config_from_dict(data: dict[str, Any]) -> ArchitectConfig:
    """Load configuration from a dictionary.

    Credentials missing from the file fall back to GEMINI_API_KEY and
    GITHUB_TOKEN in the environment.

    Args:
        data: Configuration dictionary

    Returns:
        ArchitectConfig instance

    Raises:
        ValueError: If a value is invalid
        UnconfiguredError: If the selected backend lacks credentials
    """
    data = substitute_env_vars(data)

    config = ArchitectConfig()

    github_data = _section(data, "github")
    config.github = GitHubConfig(
        api_base=github_data.get("api_base", config.github.api_base),
        raw_base=github_data.get("raw_base", config.github.raw_base),
        token=github_data.get("token") or os.environ.get("GITHUB_TOKEN") or None,
        timeout=float(github_data.get("timeout", config.github.timeout)),
    )

    if "llm" in data:
        llm_data = dict(_section(data, "llm"))
        provider = str(llm_data.get("provider") or "local").lower().strip()
        if provider == "gemini" and not llm_data.get("api_key"):
            llm_data["api_key"] = os.environ.get("GEMINI_API_KEY")
        llm_data.setdefault("model", "llama3.2" if provider == "local" else "gemini-2.5-flash")
        config.llm = LLMConfig.from_dict(llm_data)

    if "analysis" in data:
        analysis_data = _section(data, "analysis")
        defaults = AnalysisConfig()
        config.analysis = AnalysisConfig(
            max_selected_files=analysis_data.get("max_selected_files", defaults.max_selected_files),
            max_tree_lines=analysis_data.get("max_tree_lines", defaults.max_tree_lines),
            max_file_size_bytes=analysis_data.get(
                "max_file_size_bytes", defaults.max_file_size_bytes
            ),
            max_file_chars=analysis_data.get("max_file_chars", defaults.max_file_chars),
            max_readme_chars=analysis_data.get("max_readme_chars", defaults.max_readme_chars),
            max_concurrent_fetches=analysis_data.get(
                "max_concurrent_fetches", defaults.max_concurrent_fetches
            ),
            deep_research=bool(analysis_data.get("deep_research", defaults.deep_research)),
        )

    if "security" in data:
        security_data = _section(data, "security")
        defaults_sc = ScannerConfig()
        config.security = ScannerConfig(
            entropy_mode=security_data.get("entropy_mode", defaults_sc.entropy_mode),
            entropy_threshold=float(
                security_data.get("entropy_threshold", defaults_sc.entropy_threshold)
            ),
            entropy_min_length=int(
                security_data.get("entropy_min_length", defaults_sc.entropy_min_length)
            ),
            entropy_max_length=int(
                security_data.get("entropy_max_length", defaults_sc.entropy_max_length)
            ),
            max_scan_chars=int(security_data.get("max_scan_chars", defaults_sc.max_scan_chars)),
        )

    return config


def apply_llm_overrides(
    config: ArchitectConfig,
    provider: str | None = None,
    model: str | None = None,
) -> ArchitectConfig:
    """Apply --provider/--model CLI overrides to a loaded configuration.

    Switching provider drops the endpoint and key of the old one, so the new
    provider picks up its own defaults and environment credentials.

    Raises:
        ValueError: If the provider is unknown
        UnconfiguredError: If the new provider lacks credentials
    """
    if provider is None and model is None:
        return config

    llm_data: dict[str, Any] = dict(config.llm.to_dict(include_secrets=True))
    if provider is not None and provider.lower().strip() != config.llm.provider:
        provider = provider.lower().strip()
        llm_data.update(provider=provider, api_base=None, api_key=None)
        if provider == "gemini":
            llm_data["api_key"] = os.environ.get("GEMINI_API_KEY")
        if model is None:
            model = "llama3.2" if provider == "local" else "gemini-2.5-flash"
    if model is not None:
        llm_data["model"] = model

    config.llm = LLMConfig.from_dict(llm_data)
    return config


def load_config(
    config_path: Path | None = None,
    auto_discover: bool = True,
) -> ArchitectConfig:
    """Load configuration from file.

    Args:
        config_path: Explicit path to config file
        auto_discover: Whether to search for config file if not specified

    Returns:
        ArchitectConfig instance

    Raises:
        FileNotFoundError: If config_path specified but doesn't exist
    """
    if config_path is not None:
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        found_path = config_path
    elif auto_discover:
        found_path = find_config_file()
    else:
        found_path = None

    if found_path is not None:
        with open(found_path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file must contain a mapping: {found_path}")
        config = load_config_from_dict(data)
        config._config_path = found_path
    else:
        config = load_config_from_dict({})

    return config


def create_default_config() -> str:
    """Create default configuration YAML content.

    Returns:
        YAML string with default configuration and comments
    """
    return '''# GitArchitect Configuration

# Repository hosting
github:
  # token: "${GITHUB_TOKEN}"  # Optional; raises the API rate limit
  timeout: 30

# Model backend
# Default: a local OpenAI-compatible server (Ollama), so no code leaves the machine
llm:
  provider: "local"      # local (Ollama, LM Studio, vLLM), gemini
  model: "llama3.2"
  api_base: "http://localhost:11434/v1"
  # provider: "gemini"
  # model: "gemini-2.5-flash"
  # api_key: "${GEMINI_API_KEY}"  # Required for gemini
  temperature: 0         # MUST be 0 for reproducible plans
  max_tokens: 8192

# Context budget
analysis:
  max_selected_files: 10     # Files read in detail per plan
  max_tree_lines: 500        # Lines of the repository tree shown to the model
  max_file_size_bytes: 102400
  max_file_chars: 12000      # Per-file truncation in the plan prompt
  max_readme_chars: 20000
  max_concurrent_fetches: 8
  deep_research: true        # Web research (gemini only)

# Secret scanner
security:
  entropy_mode: "warn"       # off, warn, redact
  entropy_threshold: 4.5
  entropy_min_length: 20
  entropy_max_length: 200
  max_scan_chars: 500000
'''
