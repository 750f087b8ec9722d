"""Plan data model: the structured implementation plan returned to callers.

A Plan is only ever replaced wholesale (synthesis or refinement), never
patched. The JSON form uses the camelCase keys of the model contract so a
plan can be echoed back to the backend verbatim during refinement.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class Complexity(Enum):
    """Bounded complexity estimate for a single step."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"

    @classmethod
    def parse(cls, value: Any) -> "Complexity":
        """Parse a complexity label case-insensitively.

        Raises:
            ValueError: If the label is not Low, Medium or High
        """
        if isinstance(value, cls):
            return value
        label = str(value).strip().lower()
        for member in cls:
            if member.value.lower() == label:
                return member
        raise ValueError(f"Invalid complexity '{value}'. Must be one of: Low, Medium, High")


class ChatRole(Enum):
    """Author of a chat turn."""

    USER = "user"
    MODEL = "model"


@dataclass
class Step:
    """Single phased, imperative step of a Plan.

    Attributes:
        id: Step number, unique within the plan
        title: Short imperative title
        description: What to do
        rationale: Why the step is needed
        technical_details: Implementation notes
        affected_files: Paths touched (existing, or phrased as a creation)
        complexity: Low, Medium or High
        safety_checks: Checks that keep the application working
    """

    id: int
    title: str
    description: str = ""
    rationale: str = ""
    technical_details: str = ""
    affected_files: list[str] = field(default_factory=list)
    complexity: Complexity = Complexity.MEDIUM
    safety_checks: list[str] = field(default_factory=list)

    @property
    def primary_file(self) -> str | None:
        """Return the first affected file, if any."""
        return self.affected_files[0] if self.affected_files else None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the camelCase JSON form of the model contract."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "rationale": self.rationale,
            "technicalDetails": self.technical_details,
            "affectedFiles": list(self.affected_files),
            "complexity": self.complexity.value,
            "safetyChecks": list(self.safety_checks),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Step":
        """Create a Step from its JSON form.

        Raises:
            ValueError: If required fields are missing or invalid
        """
        if not isinstance(data, dict):
            raise ValueError(f"Step must be an object, got {type(data).__name__}")

        step_id = data.get("id")
        if isinstance(step_id, bool) or step_id is None:
            raise ValueError("Step is missing an integer 'id'")
        try:
            step_id = int(step_id)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Step id must be an integer, got {step_id!r}") from e

        title = data.get("title")
        if not isinstance(title, str) or not title.strip():
            raise ValueError(f"Step {step_id} is missing a title")

        if "complexity" not in data:
            raise ValueError(f"Step {step_id} is missing a complexity")

        return cls(
            id=step_id,
            title=title.strip(),
            description=_as_text(data.get("description")),
            rationale=_as_text(data.get("rationale")),
            technical_details=_as_text(data.get("technicalDetails")),
            affected_files=_as_string_list(data.get("affectedFiles"), "affectedFiles"),
            complexity=Complexity.parse(data["complexity"]),
            safety_checks=_as_string_list(data.get("safetyChecks"), "safetyChecks"),
        )


@dataclass
class Plan:
    """Structured implementation plan.

    Attributes:
        title: Plan title
        summary: High level executive summary
        steps: Ordered steps
        research_notes: Optional research context used during synthesis
    """

    title: str
    summary: str
    steps: list[Step] = field(default_factory=list)
    research_notes: str | None = None

    def __post_init__(self) -> None:
        """Validate step id uniqueness."""
        seen: set[int] = set()
        for step in self.steps:
            if step.id in seen:
                raise ValueError(f"Duplicate step id: {step.id}")
            seen.add(step.id)

    def get_step(self, step_id: int) -> Step | None:
        """Return the step with the given id, if present."""
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the camelCase JSON form of the model contract."""
        data: dict[str, Any] = {
            "title": self.title,
            "summary": self.summary,
        }
        if self.research_notes is not None:
            data["researchNotes"] = self.research_notes
        data["steps"] = [step.to_dict() for step in self.steps]
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "Plan":
        """Create a Plan from its JSON form.

        Raises:
            ValueError: If the data does not have the Plan shape
        """
        if not isinstance(data, dict):
            raise ValueError(f"Plan must be an object, got {type(data).__name__}")

        title = data.get("title")
        if not isinstance(title, str) or not title.strip():
            raise ValueError("Plan is missing a title")

        summary = data.get("summary")
        if not isinstance(summary, str):
            raise ValueError("Plan is missing a summary")

        raw_steps = data.get("steps")
        if not isinstance(raw_steps, list):
            raise ValueError("Plan is missing a steps array")

        research_notes = data.get("researchNotes")
        if research_notes is not None and not isinstance(research_notes, str):
            research_notes = str(research_notes)

        return cls(
            title=title.strip(),
            summary=summary.strip(),
            steps=[Step.from_dict(item) for item in raw_steps],
            research_notes=research_notes or None,
        )


@dataclass
class ChatTurn:
    """One turn of a per-step follow-up conversation.

    Attributes:
        role: user or model
        content: Message text
        timestamp: When the turn was recorded (UTC)
    """

    role: ChatRole
    content: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChatTurn":
        """Create a ChatTurn from dictionary."""
        timestamp = data.get("timestamp")
        if isinstance(timestamp, (int, float)):
            # Millisecond epoch timestamps from browser clients
            parsed = datetime.fromtimestamp(timestamp / 1000, tz=UTC)
        elif isinstance(timestamp, str):
            parsed = datetime.fromisoformat(timestamp)
        else:
            parsed = datetime.now(UTC)

        return cls(
            role=ChatRole(str(data.get("role", "user")).lower()),
            content=str(data.get("content", "")),
            timestamp=parsed,
        )


def _as_text(value: Any) -> str:
    """Coerce an optional JSON value to stripped text."""
    if value is None:
        return ""
    return str(value).strip()


def _as_string_list(value: Any, field_name: str) -> list[str]:
    """Coerce an optional JSON array to a list of non-empty strings."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if not isinstance(value, list):
        raise ValueError(f"'{field_name}' must be an array of strings")
    return [str(item).strip() for item in value if str(item).strip()]
