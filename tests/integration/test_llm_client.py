"""Integration tests for the LiteLLM-backed model gateways.

LiteLLM is patched at its completion entry point, so these verify the
arguments each backend sends and how backend failures are translated,
without making actual API calls.
"""

import json
from unittest.mock import MagicMock, patch

import litellm
import pytest

from gitarchitect.errors import (
    LLMError,
    NotFoundError,
    RateLimitedError,
    UnconfiguredError,
    UnreachableError,
)
from gitarchitect.llm.client import (
    GEMINI_ENDPOINT,
    CompletionOptions,
    HostedModelGateway,
    LocalModelGateway,
    create_gateway,
)
from gitarchitect.llm.prompts import PLAN_SCHEMA
from gitarchitect.models.llm_config import LLMConfig


@pytest.fixture
def gemini_config() -> LLMConfig:
    """Return a hosted backend configuration."""
    return LLMConfig(provider="gemini", model="gemini-2.5-flash", api_key="test-api-key")


@pytest.fixture
def local_config() -> LLMConfig:
    """Return a local endpoint configuration."""
    return LLMConfig(provider="local", model="llama3.2", api_base="http://localhost:11434/v1")


@pytest.fixture
def mock_litellm_response() -> MagicMock:
    """Create a mock LiteLLM response."""
    mock_response = MagicMock()
    mock_response.choices = [
        MagicMock(
            message=MagicMock(content='{"files": ["src/app.py"]}'),
            finish_reason="stop",
        )
    ]
    mock_response.model = "gemini-2.5-flash"
    mock_response.usage = MagicMock(prompt_tokens=10, completion_tokens=5, total_tokens=15)
    return mock_response


class TestCreateGateway:
    """Tests for gateway selection."""

    def test_gemini(self, gemini_config: LLMConfig) -> None:
        """Test that the hosted provider gets retrieval support."""
        gateway = create_gateway(gemini_config)

        assert isinstance(gateway, HostedModelGateway)
        assert gateway.capabilities.retrieval_augmentation is True
        assert gateway.endpoint == GEMINI_ENDPOINT

    def test_local(self, local_config: LLMConfig) -> None:
        """Test that the local provider has no retrieval."""
        gateway = create_gateway(local_config)

        assert isinstance(gateway, LocalModelGateway)
        assert gateway.capabilities.retrieval_augmentation is False
        assert gateway.endpoint == "http://localhost:11434/v1"

    def test_disabled(self) -> None:
        """Test that a disabled backend is unconfigured."""
        config = LLMConfig(provider="gemini", model="gemini-2.5-flash", enabled=False)

        with pytest.raises(UnconfiguredError, match="disabled"):
            create_gateway(config)


class TestHostedCompletion:
    """Tests for the Gemini call path."""

    def test_schema_and_search(
        self, gemini_config: LLMConfig, mock_litellm_response: MagicMock
    ) -> None:
        """Test strict schema output and search grounding arguments."""
        gateway = HostedModelGateway(gemini_config)
        options = CompletionOptions(
            json_mode=True,
            json_schema=PLAN_SCHEMA,
            schema_name="implementation_plan",
            retrieval_augmented=True,
        )

        with patch("litellm.completion", return_value=mock_litellm_response) as mock_call:
            response = gateway.complete("Be an architect.", "Plan it.", options)

        kwargs = mock_call.call_args[1]
        assert kwargs["model"] == "gemini/gemini-2.5-flash"
        assert kwargs["api_key"] == "test-api-key"
        assert kwargs["temperature"] == 0
        assert kwargs["max_tokens"] == 8192
        assert kwargs["messages"] == [
            {"role": "system", "content": "Be an architect."},
            {"role": "user", "content": "Plan it."},
        ]
        assert kwargs["response_format"]["type"] == "json_schema"
        assert kwargs["response_format"]["json_schema"]["name"] == "implementation_plan"
        assert kwargs["response_format"]["json_schema"]["strict"] is True
        assert kwargs["tools"] == [{"googleSearch": {}}]
        assert response.content == '{"files": ["src/app.py"]}'
        assert response.usage == {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15}
        assert response.finish_reason == "stop"

    def test_plain_text(self, gemini_config: LLMConfig, mock_litellm_response: MagicMock) -> None:
        """Test that free-text calls send no format or tools."""
        gateway = HostedModelGateway(gemini_config)

        with patch("litellm.completion", return_value=mock_litellm_response) as mock_call:
            gateway.complete("", "Hello!")

        kwargs = mock_call.call_args[1]
        assert "response_format" not in kwargs
        assert "tools" not in kwargs
        assert kwargs["messages"] == [{"role": "user", "content": "Hello!"}]

    def test_max_tokens_override(
        self, gemini_config: LLMConfig, mock_litellm_response: MagicMock
    ) -> None:
        """Test the per-call token limit."""
        gateway = HostedModelGateway(gemini_config)

        with patch("litellm.completion", return_value=mock_litellm_response) as mock_call:
            gateway.complete("sys", "user", CompletionOptions(max_tokens=10))

        assert mock_call.call_args[1]["max_tokens"] == 10


class TestLocalCompletion:
    """Tests for the OpenAI-compatible call path."""

    def test_schema_in_system_message(
        self, local_config: LLMConfig, mock_litellm_response: MagicMock
    ) -> None:
        """Test that the schema is appended to the instructions."""
        gateway = LocalModelGateway(local_config)
        schema = {"type": "object", "properties": {"files": {"type": "array"}}}

        with patch("litellm.completion", return_value=mock_litellm_response) as mock_call:
            gateway.complete("Pick files.", "Tree here", CompletionOptions(json_schema=schema))

        kwargs = mock_call.call_args[1]
        assert kwargs["model"] == "openai/llama3.2"
        assert kwargs["api_base"] == "http://localhost:11434/v1"
        assert kwargs["api_key"] == "local"
        assert kwargs["response_format"] == {"type": "json_object"}
        system = kwargs["messages"][0]
        assert system["role"] == "system"
        assert system["content"].startswith("Pick files.\n\n")
        assert json.dumps(schema, indent=2) in system["content"]
        assert "tools" not in kwargs

    def test_schema_without_system_instruction(
        self, local_config: LLMConfig, mock_litellm_response: MagicMock
    ) -> None:
        """Test that a system message is created for the schema."""
        gateway = LocalModelGateway(local_config)

        with patch("litellm.completion", return_value=mock_litellm_response) as mock_call:
            gateway.complete("", "Tree here", CompletionOptions(json_schema={"type": "object"}))

        messages = mock_call.call_args[1]["messages"]
        assert [m["role"] for m in messages] == ["system", "user"]

    def test_retrieval_ignored(
        self, local_config: LLMConfig, mock_litellm_response: MagicMock
    ) -> None:
        """Test that retrieval requests do not reach a local endpoint."""
        gateway = LocalModelGateway(local_config)

        with patch("litellm.completion", return_value=mock_litellm_response) as mock_call:
            gateway.complete("sys", "user", CompletionOptions(retrieval_augmented=True))

        assert "tools" not in mock_call.call_args[1]

    def test_configured_key_used(self, mock_litellm_response: MagicMock) -> None:
        """Test that an explicit key replaces the placeholder."""
        config = LLMConfig(
            provider="local",
            model="qwen2.5",
            api_base="http://localhost:1234/v1",
            api_key="lm-studio",
        )

        with patch("litellm.completion", return_value=mock_litellm_response) as mock_call:
            LocalModelGateway(config).complete("sys", "user")

        assert mock_call.call_args[1]["api_key"] == "lm-studio"

    def test_truncated_response_logged(
        self,
        local_config: LLMConfig,
        mock_litellm_response: MagicMock,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Test that hitting max_tokens is reported."""
        mock_litellm_response.choices[0].finish_reason = "length"

        with patch("litellm.completion", return_value=mock_litellm_response):
            response = LocalModelGateway(local_config).complete("sys", "user")

        assert response.finish_reason == "length"
        assert "cut off" in caplog.text


class TestErrorTranslation:
    """Tests for mapping LiteLLM exceptions onto gateway errors."""

    def test_authentication(self, gemini_config: LLMConfig) -> None:
        """Test that rejected credentials mean unconfigured."""
        with patch("litellm.completion") as mock_call:
            mock_call.side_effect = litellm.exceptions.AuthenticationError(
                message="Invalid API key",
                llm_provider="gemini",
                model="gemini-2.5-flash",
            )

            with pytest.raises(UnconfiguredError, match="Authentication failed"):
                HostedModelGateway(gemini_config).complete("sys", "user")

    def test_rate_limit(self, gemini_config: LLMConfig) -> None:
        """Test throttling."""
        with patch("litellm.completion") as mock_call:
            mock_call.side_effect = litellm.exceptions.RateLimitError(
                message="Quota exceeded",
                llm_provider="gemini",
                model="gemini-2.5-flash",
            )

            with pytest.raises(RateLimitedError, match="Rate limit exceeded"):
                HostedModelGateway(gemini_config).complete("sys", "user")

    def test_connection(self, local_config: LLMConfig) -> None:
        """Test that connection failures name the endpoint."""
        with patch("litellm.completion") as mock_call:
            mock_call.side_effect = litellm.exceptions.APIConnectionError(
                message="Connection refused",
                llm_provider="openai",
                model="llama3.2",
            )

            with pytest.raises(UnreachableError) as exc_info:
                LocalModelGateway(local_config).complete("sys", "user")

        assert exc_info.value.endpoint == "http://localhost:11434/v1"

    def test_model_not_found(self, local_config: LLMConfig) -> None:
        """Test an unknown model."""
        with patch("litellm.completion") as mock_call:
            mock_call.side_effect = litellm.exceptions.NotFoundError(
                message="model 'llama3.2' not found",
                llm_provider="openai",
                model="llama3.2",
            )

            with pytest.raises(NotFoundError, match="llama3.2"):
                LocalModelGateway(local_config).complete("sys", "user")

    def test_unknown_error(self, local_config: LLMConfig) -> None:
        """Test the catch-all."""
        with patch("litellm.completion") as mock_call:
            mock_call.side_effect = Exception("Unknown error")

            with pytest.raises(LLMError, match="LLM completion failed"):
                LocalModelGateway(local_config).complete("sys", "user")


class TestCheckAvailable:
    """Tests for the availability check."""

    def test_available(self, local_config: LLMConfig, mock_litellm_response: MagicMock) -> None:
        """Test a responding backend."""
        with patch("litellm.completion", return_value=mock_litellm_response):
            assert LocalModelGateway(local_config).check_available() is True

    def test_unavailable(self, local_config: LLMConfig) -> None:
        """Test that failures are reported as False."""
        with patch("litellm.completion", side_effect=Exception("API error")):
            assert LocalModelGateway(local_config).check_available() is False
