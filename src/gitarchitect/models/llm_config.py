"""Model backend configuration for GitArchitect.

Two backends are supported: a hosted, key-authenticated backend (Gemini) that
offers strict JSON schemas and search grounding, and a local OpenAI-compatible
endpoint (e.g. Ollama, LM Studio, vLLM) that offers neither.
"""

from dataclasses import dataclass, field

from gitarchitect.errors import UnconfiguredError

# Valid model providers
VALID_PROVIDERS = frozenset({"gemini", "local"})

DEFAULT_LOCAL_API_BASE = "http://localhost:11434/v1"


@dataclass
class LLMConfig:
    """Configuration for the model backend.

    Attributes:
        provider: Model provider (gemini, local)
        model: Model identifier (e.g., "gemini-2.5-flash", "llama3.2")
        api_key: API key (required for gemini, optional for local)
        api_base: API base URL (required for local)
        temperature: Temperature setting (must be 0 for reproducibility)
        max_tokens: Maximum response tokens
        enabled: Whether the model backend may be called at all
    """

    provider: str
    model: str
    api_key: str | None = None
    api_base: str | None = None
    temperature: float = field(default=0.0)
    max_tokens: int = field(default=8192)
    enabled: bool = field(default=True)

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        self.provider = self.provider.lower().strip()

        if self.provider not in VALID_PROVIDERS:
            raise ValueError(
                f"Invalid provider '{self.provider}'. "
                f"Must be one of: {sorted(VALID_PROVIDERS)}"
            )

        if not self.model or not self.model.strip():
            raise ValueError("Model identifier cannot be empty")
        self.model = self.model.strip()

        # Plans must be reproducible for the same inputs
        if self.temperature != 0.0:
            raise ValueError(
                f"Temperature must be 0 for reproducible plans. Got: {self.temperature}"
            )

        if self.max_tokens <= 0:
            raise ValueError(f"max_tokens must be positive. Got: {self.max_tokens}")

        if self.provider == "local":
            if not self.api_base:
                raise UnconfiguredError("api_base is required for the local provider")
            self.api_base = self.api_base.rstrip("/")
        elif self.provider == "gemini" and self.enabled and not self.api_key:
            raise UnconfiguredError(
                "api_key is required for the gemini provider "
                "(set llm.api_key or GEMINI_API_KEY)"
            )

    @property
    def is_local(self) -> bool:
        """Return True for the local OpenAI-compatible backend."""
        return self.provider == "local"

    def validate(self) -> list[str]:
        """Validate configuration and return warnings.

        Returns:
            List of warning messages (empty if no warnings)
        """
        warnings: list[str] = []

        if self.max_tokens < 2048:
            warnings.append(
                f"max_tokens is set to {self.max_tokens}, which may truncate plans"
            )

        if self.api_base and not self.api_base.startswith(("http://", "https://")):
            warnings.append(
                f"api_base '{self.api_base}' does not start with http:// or https://"
            )

        return warnings

    def to_dict(self, include_secrets: bool = False) -> dict[str, str | int | float | bool | None]:
        """Convert to dictionary for serialization.

        Args:
            include_secrets: Include the API key verbatim instead of masking it

        Returns:
            Dictionary representation of the configuration
        """
        api_key = self.api_key
        if api_key and not include_secrets:
            api_key = "***"
        return {
            "provider": self.provider,
            "model": self.model,
            "api_key": api_key,
            "api_base": self.api_base,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "enabled": self.enabled,
        }

    @classmethod
    def from_dict(cls, data: dict[str, str | int | float | bool | None]) -> "LLMConfig":
        """Create LLMConfig from dictionary.

        Args:
            data: Dictionary with configuration values

        Returns:
            LLMConfig instance
        """
        provider = str(data.get("provider") or "local")
        api_base = data.get("api_base") or None
        if api_base is None and provider.lower().strip() == "local":
            api_base = DEFAULT_LOCAL_API_BASE
        return cls(
            provider=provider,
            model=str(data.get("model") or ""),
            api_key=data.get("api_key") or None,  # type: ignore[arg-type]
            api_base=api_base,  # type: ignore[arg-type]
            temperature=float(data.get("temperature", 0.0)),  # type: ignore[arg-type]
            max_tokens=int(data.get("max_tokens", 8192)),  # type: ignore[arg-type]
            enabled=bool(data.get("enabled", True)),
        )

    def get_litellm_model_name(self) -> str:
        """Get the model name in LiteLLM format.

        Returns:
            Model name formatted for LiteLLM
        """
        if self.provider == "gemini":
            return f"gemini/{self.model}"
        # Local endpoints speak the OpenAI chat completions protocol
        return f"openai/{self.model}"
