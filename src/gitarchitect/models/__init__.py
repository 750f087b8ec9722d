"""Data models for GitArchitect."""

from gitarchitect.models.analysis import (
    AnalysisError,
    AnalysisRun,
    PipelineState,
    SanitizedFile,
    SelectionResult,
)
from gitarchitect.models.llm_config import LLMConfig
from gitarchitect.models.plan import ChatRole, ChatTurn, Complexity, Plan, Step
from gitarchitect.models.repository import (
    EntryKind,
    RepositoryEntry,
    RepositoryRef,
    parse_repo_id,
)

__all__ = [
    "AnalysisError",
    "AnalysisRun",
    "ChatRole",
    "ChatTurn",
    "Complexity",
    "EntryKind",
    "LLMConfig",
    "PipelineState",
    "Plan",
    "RepositoryEntry",
    "RepositoryRef",
    "SanitizedFile",
    "SelectionResult",
    "Step",
    "parse_repo_id",
]
