"""Unit tests for preflight checks."""

import urllib.error
from unittest.mock import MagicMock, patch

from gitarchitect.config import load_config_from_dict
from gitarchitect.models.llm_config import LLMConfig
from gitarchitect.utils.preflight import PreflightChecker, PreflightResult, ToolCheck


def mock_urlopen_response(body: bytes) -> MagicMock:
    """Build a context-manager response for urllib.request.urlopen."""
    response = MagicMock()
    response.read.return_value = body
    response.__enter__ = MagicMock(return_value=response)
    response.__exit__ = MagicMock(return_value=False)
    return response


class TestLiteLLMCheck:
    """Tests for check_litellm."""

    def test_litellm_available(self) -> None:
        """Test check_litellm when the package is installed."""
        checker = PreflightChecker()

        with patch("importlib.util.find_spec") as mock_find_spec:
            mock_find_spec.return_value = MagicMock(origin="/path/to/litellm/__init__.py")
            result = checker.check_litellm(required=True)

        assert result.available is True
        assert result.path == "/path/to/litellm/__init__.py"
        assert "Unified LLM interface" in result.message

    def test_litellm_not_available(self) -> None:
        """Test check_litellm when the package is missing."""
        checker = PreflightChecker()

        with patch("importlib.util.find_spec", return_value=None):
            result = checker.check_litellm(required=True)

        assert result.available is False
        assert "pip install litellm" in result.message


class TestBackendConfigCheck:
    """Tests for check_backend_config."""

    def test_local_backend(self) -> None:
        """Test a usable local configuration."""
        llm = LLMConfig(provider="local", model="llama3.2", api_base="http://localhost:11434/v1")

        result = PreflightChecker().check_backend_config(llm)

        assert result.available is True
        assert result.name == "llm:local"
        assert result.message == "Model: openai/llama3.2"

    def test_disabled_backend(self) -> None:
        """Test that a disabled backend fails the check."""
        llm = LLMConfig(provider="gemini", model="gemini-2.5-flash", enabled=False)

        result = PreflightChecker().check_backend_config(llm)

        assert result.available is False
        assert "disabled" in result.message


class TestLocalEndpointCheck:
    """Tests for check_local_endpoint."""

    def test_endpoint_responds(self) -> None:
        """Test a server listing two models."""
        body = b'{"object": "list", "data": [{"id": "llama3.2"}, {"id": "qwen2.5"}]}'

        with patch("urllib.request.urlopen", return_value=mock_urlopen_response(body)) as mock_open:
            result = PreflightChecker().check_local_endpoint("http://localhost:11434/v1/")

        assert result.available is True
        assert result.message == "Local model server (2 models listed)"
        assert mock_open.call_args[0][0].full_url == "http://localhost:11434/v1/models"

    def test_endpoint_down(self) -> None:
        """Test a refused connection."""
        with patch("urllib.request.urlopen", side_effect=urllib.error.URLError("refused")):
            result = PreflightChecker().check_local_endpoint("http://localhost:11434/v1")

        assert result.available is False
        assert "http://localhost:11434/v1" in result.message

    def test_non_json_body(self) -> None:
        """Test that a garbage response counts as unavailable."""
        with patch("urllib.request.urlopen", return_value=mock_urlopen_response(b"<html>")):
            result = PreflightChecker().check_local_endpoint("http://localhost:8080/v1")

        assert result.available is False


class TestPreflightResult:
    """Tests for aggregating checks."""

    def test_required_failure(self) -> None:
        """Test that a missing required check fails the result."""
        result = PreflightResult()

        result.add_check(ToolCheck(name="litellm", available=False, message="missing"))

        assert result.success is False
        assert result.errors == ["litellm unavailable: missing"]

    def test_optional_failure(self) -> None:
        """Test that a missing optional check only warns."""
        result = PreflightResult()

        result.add_check(ToolCheck(name="github-token", available=False, required=False))

        assert result.success is True
        assert result.warnings == ["github-token unavailable"]
        assert result.to_dict()["checks"][0]["name"] == "github-token"


class TestCheckAll:
    """Tests for check_all."""

    def test_without_ping(self) -> None:
        """Test that no endpoint is contacted when pinging is off."""
        config = load_config_from_dict({})

        with patch("urllib.request.urlopen") as mock_open:
            result = PreflightChecker().check_all(config, ping_endpoint=False)

        mock_open.assert_not_called()
        assert [c.name for c in result.checks] == ["litellm", "llm:local", "github-token"]
        assert result.success is True
        assert any("GITHUB_TOKEN" in w for w in result.warnings)

    def test_with_ping(self) -> None:
        """Test that the local endpoint is checked after the backend."""
        config = load_config_from_dict({"github": {"token": "t"}})

        with patch("urllib.request.urlopen", side_effect=urllib.error.URLError("down")):
            result = PreflightChecker().check_all(config)

        assert [c.name for c in result.checks] == [
            "litellm",
            "llm:local",
            "local-endpoint",
            "github-token",
        ]
        assert result.success is False
