"""Model gateway: a single interface over hosted and local LLM backends.

Both backends go through LiteLLM. Each declares its capabilities up front
(strict JSON-schema enforcement, retrieval augmentation) so the pipeline
never branches on backend identity. Temperature is fixed at 0.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import litellm

from gitarchitect.errors import (
    GatewayError,
    LLMError,
    NotFoundError,
    RateLimitedError,
    UnconfiguredError,
    UnreachableError,
)
from gitarchitect.models.llm_config import LLMConfig

logger = logging.getLogger(__name__)

GEMINI_ENDPOINT = "https://generativelanguage.googleapis.com"


@dataclass(frozen=True)
class GatewayCapabilities:
    """What a backend can do.

    Attributes:
        retrieval_augmentation: Can ground answers with web search
        strict_json_schema: Enforces a JSON schema on the response
    """

    retrieval_augmentation: bool = False
    strict_json_schema: bool = False


@dataclass
class CompletionOptions:
    """Per-call options.

    Attributes:
        json_mode: Request JSON-shaped output
        json_schema: Schema the output should follow (implies json_mode)
        schema_name: Name reported with the schema
        retrieval_augmented: Request web-search grounding if supported
        max_tokens: Override max_tokens from config
    """

    json_mode: bool = False
    json_schema: dict[str, Any] | None = None
    schema_name: str = "response"
    retrieval_augmented: bool = False
    max_tokens: int | None = None


@dataclass
class LLMResponse:
    """Response from a model completion.

    Attributes:
        content: Generated text content
        model: Model that generated the response
        usage: Token usage statistics
        finish_reason: Reason for completion (stop, length, etc.)
    """

    content: str
    model: str
    usage: dict[str, int] = field(default_factory=dict)
    finish_reason: str | None = None


class ModelGateway(ABC):
    """Abstract language-model backend."""

    @property
    @abstractmethod
    def capabilities(self) -> GatewayCapabilities:
        """Return what this backend supports."""
        ...

    @property
    @abstractmethod
    def endpoint(self) -> str:
        """Return the endpoint named in connection errors."""
        ...

    @abstractmethod
    def complete(
        self,
        system_instruction: str,
        user_prompt: str,
        options: CompletionOptions | None = None,
    ) -> LLMResponse:
        """Generate a completion.

        Raises:
            UnconfiguredError: If credentials are rejected
            RateLimitedError: If the backend throttles the request
            UnreachableError: If the endpoint cannot be reached
            NotFoundError: If the model does not exist
            LLMError: For any other backend failure
        """
        ...

    def check_available(self) -> bool:
        """Check if the backend answers a minimal request.

        Returns:
            True if the backend is reachable and credentials are valid
        """
        try:
            self.complete("Reply with the single word ok.", "ok?", CompletionOptions(max_tokens=10))
            return True
        except (GatewayError, UnconfiguredError) as e:
            logger.debug("Model backend unavailable: %s", e)
            return False


class LiteLLMGateway(ModelGateway):
    """Shared LiteLLM call path; subclasses add provider-specific arguments."""

    def __init__(self, config: LLMConfig) -> None:
        """Initialize the gateway with configuration.

        Args:
            config: Model configuration with provider, model and credentials
        """
        self.config = config

    def _provider_kwargs(
        self,
        messages: list[dict[str, str]],
        options: CompletionOptions,
    ) -> dict[str, Any]:
        """Return provider-specific completion arguments; may edit messages."""
        return {}

    def complete(
        self,
        system_instruction: str,
        user_prompt: str,
        options: CompletionOptions | None = None,
    ) -> LLMResponse:
        """Generate a completion through LiteLLM."""
        options = options or CompletionOptions()
        messages: list[dict[str, str]] = []
        if system_instruction:
            messages.append({"role": "system", "content": system_instruction})
        messages.append({"role": "user", "content": user_prompt})

        completion_kwargs: dict[str, Any] = {
            "model": self.config.get_litellm_model_name(),
            "messages": messages,
            "temperature": 0,
            "max_tokens": options.max_tokens or self.config.max_tokens,
        }
        completion_kwargs.update(self._provider_kwargs(messages, options))

        logger.debug(
            "Calling %s (json=%s, schema=%s, retrieval=%s, %d prompt chars)",
            completion_kwargs["model"],
            options.json_mode or options.json_schema is not None,
            options.schema_name if options.json_schema else None,
            options.retrieval_augmented,
            sum(len(m["content"]) for m in messages),
        )

        try:
            response = litellm.completion(**completion_kwargs)
        except litellm.exceptions.AuthenticationError as e:
            raise UnconfiguredError(
                f"Authentication failed for {self.config.provider}: {e}"
            ) from e
        except litellm.exceptions.RateLimitError as e:
            raise RateLimitedError(f"Rate limit exceeded for {self.config.provider}: {e}") from e
        except (litellm.exceptions.APIConnectionError, litellm.exceptions.Timeout) as e:
            raise UnreachableError(self.endpoint, str(e)) from e
        except litellm.exceptions.NotFoundError as e:
            raise NotFoundError(f"Model '{self.config.model}' not found: {e}") from e
        except Exception as e:
            raise LLMError(f"LLM completion failed: {e}") from e

        choice = response.choices[0]
        content = choice.message.content or ""

        usage: dict[str, int] = {}
        if getattr(response, "usage", None):
            usage = {
                "prompt_tokens": response.usage.prompt_tokens or 0,
                "completion_tokens": response.usage.completion_tokens or 0,
                "total_tokens": response.usage.total_tokens or 0,
            }

        if choice.finish_reason == "length":
            logger.warning("Response from %s was cut off at max_tokens", self.config.model)

        return LLMResponse(
            content=content,
            model=response.model or self.config.model,
            usage=usage,
            finish_reason=choice.finish_reason,
        )


class HostedModelGateway(LiteLLMGateway):
    """Key-authenticated Gemini backend.

    Supports strict JSON-schema responses and Google Search grounding.
    """

    @property
    def capabilities(self) -> GatewayCapabilities:
        return GatewayCapabilities(retrieval_augmentation=True, strict_json_schema=True)

    @property
    def endpoint(self) -> str:
        return self.config.api_base or GEMINI_ENDPOINT

    def _provider_kwargs(
        self,
        messages: list[dict[str, str]],
        options: CompletionOptions,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"api_key": self.config.api_key}
        if self.config.api_base:
            kwargs["api_base"] = self.config.api_base

        if options.json_schema is not None:
            kwargs["response_format"] = {
                "type": "json_schema",
                "json_schema": {
                    "name": options.schema_name,
                    "schema": options.json_schema,
                    "strict": True,
                },
            }
        elif options.json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        if options.retrieval_augmented:
            kwargs["tools"] = [{"googleSearch": {}}]

        return kwargs


class LocalModelGateway(LiteLLMGateway):
    """OpenAI-compatible chat endpoint (Ollama, LM Studio, vLLM).

    JSON output is only hinted; a requested schema is appended to the system
    instruction. Retrieval augmentation is not available.
    """

    @property
    def capabilities(self) -> GatewayCapabilities:
        return GatewayCapabilities(retrieval_augmentation=False, strict_json_schema=False)

    @property
    def endpoint(self) -> str:
        return self.config.api_base or ""

    def _provider_kwargs(
        self,
        messages: list[dict[str, str]],
        options: CompletionOptions,
    ) -> dict[str, Any]:
        # The OpenAI client refuses to send requests without some key
        kwargs: dict[str, Any] = {
            "api_base": self.config.api_base,
            "api_key": self.config.api_key or "local",
        }

        if options.json_schema is not None:
            schema_text = json.dumps(options.json_schema, indent=2)
            instruction = (
                "Respond with a single JSON value that conforms to this JSON schema. "
                "Do not wrap it in markdown.\n"
                f"{schema_text}"
            )
            if messages and messages[0]["role"] == "system":
                messages[0]["content"] = f"{messages[0]['content']}\n\n{instruction}"
            else:
                messages.insert(0, {"role": "system", "content": instruction})

        if options.json_mode or options.json_schema is not None:
            kwargs["response_format"] = {"type": "json_object"}

        if options.retrieval_augmented:
            logger.debug("Retrieval augmentation requested but unsupported by local backend")

        return kwargs


def create_gateway(config: LLMConfig) -> ModelGateway:
    """Create a model gateway from configuration.

    Args:
        config: Model configuration

    Returns:
        Gateway for the configured provider

    Raises:
        UnconfiguredError: If the model backend is disabled
    """
    if not config.enabled:
        raise UnconfiguredError("Model backend is disabled in configuration")

    if config.provider == "gemini":
        return HostedModelGateway(config)
    return LocalModelGateway(config)
