"""Shared pytest fixtures for GitArchitect tests.

Fixtures are organized by category:
- Environment: keeps credentials from the developer's shell out of tests,
  and restores the package logger after CLI runs
- Configuration: test configs for the local and hosted backends
- Pipeline: pipelines wired to in-memory gateways
"""

import logging
from collections.abc import Iterator
from typing import Any

import pytest

from gitarchitect.config import ArchitectConfig, load_config_from_dict
from gitarchitect.models.repository import RepositoryEntry
from gitarchitect.pipeline import AnalysisPipeline
from gitarchitect.utils.logging import ROOT_LOGGER_NAME
from tests.fixtures import FakeModelGateway, FakeRepositoryGateway, sample_entries

# =============================================================================
# Environment Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def clean_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove credential variables that config loading falls back to."""
    for name in ("GITHUB_TOKEN", "GEMINI_API_KEY"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def reset_package_logger() -> Iterator[None]:
    """Undo CLI logging setup so caplog keeps seeing package records."""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def full_config() -> dict[str, Any]:
    """Return a complete configuration dictionary with all sections."""
    return {
        "github": {
            "api_base": "https://api.github.test",
            "raw_base": "https://raw.github.test",
            "token": "test-token",
            "timeout": 10,
        },
        "llm": {
            "provider": "local",
            "model": "llama3.2",
            "api_base": "http://localhost:11434/v1",
            "temperature": 0,
            "max_tokens": 4096,
        },
        "analysis": {
            "max_selected_files": 5,
            "max_tree_lines": 200,
            "max_concurrent_fetches": 2,
            "deep_research": False,
        },
        "security": {
            "entropy_mode": "warn",
            "entropy_threshold": 4.5,
        },
    }


@pytest.fixture
def config() -> ArchitectConfig:
    """Return a default configuration (local backend, research on)."""
    return load_config_from_dict({})


# =============================================================================
# Pipeline Fixtures
# =============================================================================


@pytest.fixture
def entries() -> list[RepositoryEntry]:
    """Return the sample repository tree."""
    return sample_entries()


@pytest.fixture
def repo_gateway() -> FakeRepositoryGateway:
    """Return an in-memory repository gateway with the sample tree."""
    return FakeRepositoryGateway()


@pytest.fixture
def model_gateway() -> FakeModelGateway:
    """Return a model gateway with no scripted responses yet."""
    return FakeModelGateway()


@pytest.fixture
def pipeline(
    config: ArchitectConfig,
    repo_gateway: FakeRepositoryGateway,
    model_gateway: FakeModelGateway,
) -> AnalysisPipeline:
    """Return a pipeline wired to the fake gateways."""
    return AnalysisPipeline(config, repo_gateway, model_gateway)
