"""Analysis run entities.

This module contains entities related to a single pipeline invocation:
- PipelineState: Stage of the selection-then-analysis state machine
- AnalysisError: Non-fatal errors encountered during a run
- SanitizedFile: Redacted file content ready to be shown to a model
- AnalysisRun: Aggregated record of one end-to-end run
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from gitarchitect.models.plan import Plan


class PipelineState(Enum):
    """State of the analysis pipeline."""

    IDLE = "idle"
    RESEARCHING_CONTEXT = "researching_context"
    SELECTING_FILES = "selecting_files"
    FETCHING_AND_SANITIZING = "fetching_and_sanitizing"
    SYNTHESIZING_PLAN = "synthesizing_plan"
    PLAN_READY = "plan_ready"
    REFINING = "refining"


@dataclass
class AnalysisError:
    """Non-fatal error encountered during a run.

    Attributes:
        component: Component that degraded (selection, fetch, readme, research)
        message: Error description
        file_path: File that caused the error (if applicable)
        recoverable: Whether the run continued after this error
    """

    component: str
    message: str
    file_path: str | None = None
    recoverable: bool = True

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "component": self.component,
            "message": self.message,
            "file_path": self.file_path,
            "recoverable": self.recoverable,
        }


@dataclass
class SanitizedFile:
    """File content after secret redaction.

    Attributes:
        path: Repository path
        content: Redacted content (or an [Error: ...] placeholder)
        warnings: What was redacted (rule, line, redacted context)
        fetch_error: Fetch failure message when content is a placeholder
    """

    path: str
    content: str
    warnings: list[str] = field(default_factory=list)
    fetch_error: str | None = None

    @property
    def fetched(self) -> bool:
        """Return True if the content was actually fetched."""
        return self.fetch_error is None

    def summary_dict(self) -> dict[str, Any]:
        """Summarize without content, for run reports."""
        return {
            "path": self.path,
            "chars": len(self.content),
            "warnings": list(self.warnings),
            "fetch_error": self.fetch_error,
        }


@dataclass
class SelectionResult:
    """Outcome of stage-1 file selection.

    Attributes:
        paths: Validated paths, at most the configured limit
        used_fallback: Whether the deterministic fallback produced the paths
    """

    paths: list[str] = field(default_factory=list)
    used_fallback: bool = False


@dataclass
class AnalysisRun:
    """Record of one end-to-end pipeline run.

    Attributes:
        repository: Repository identifier (owner/name)
        branch: Branch analyzed
        goal: User goal
        problems: User pain points
        state: Final pipeline state
        timestamp: Run start time (UTC)
        total_entries: Entries returned by the repository gateway
        filtered_entries: Entries left after artifact/binary/size filtering
        candidate_files: Files offered to stage-1 selection
        relevant_files: Validated stage-1 selection
        used_fallback_selection: Whether stage 1 fell back to the heuristic
        sanitized_files: Fetched and redacted files
        reference_warnings: Advisory warnings about unverified plan paths
        research_notes: Research text used for synthesis
        plan: Synthesized plan
        errors: Non-fatal errors
    """

    repository: str
    branch: str
    goal: str
    problems: str = ""
    state: PipelineState = PipelineState.IDLE
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    total_entries: int = 0
    filtered_entries: int = 0
    candidate_files: int = 0
    relevant_files: list[str] = field(default_factory=list)
    used_fallback_selection: bool = False
    sanitized_files: list[SanitizedFile] = field(default_factory=list)
    reference_warnings: list[str] = field(default_factory=list)
    research_notes: str | None = None
    plan: Plan | None = None
    errors: list[AnalysisError] = field(default_factory=list)

    def add_error(self, error: AnalysisError) -> None:
        """Add a non-fatal error."""
        self.errors.append(error)

    def has_errors(self) -> bool:
        """Check if any errors occurred."""
        return len(self.errors) > 0

    @property
    def security_warnings(self) -> list[str]:
        """Return every redaction warning, prefixed with its file path."""
        return [
            f"{sanitized.path}: {warning}"
            for sanitized in self.sanitized_files
            for warning in sanitized.warnings
        ]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "repository": self.repository,
            "branch": self.branch,
            "goal": self.goal,
            "problems": self.problems,
            "state": self.state.value,
            "timestamp": self.timestamp.isoformat(),
            "total_entries": self.total_entries,
            "filtered_entries": self.filtered_entries,
            "candidate_files": self.candidate_files,
            "relevant_files": list(self.relevant_files),
            "used_fallback_selection": self.used_fallback_selection,
            "sanitized_files": [f.summary_dict() for f in self.sanitized_files],
            "reference_warnings": list(self.reference_warnings),
            "research_notes": self.research_notes,
            "plan": self.plan.to_dict() if self.plan else None,
            "errors": [e.to_dict() for e in self.errors],
        }
