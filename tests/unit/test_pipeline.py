"""Unit tests for the pipeline's pure helpers."""

import pytest

from gitarchitect.errors import MalformedResponseError
from gitarchitect.models.plan import Complexity, Plan, Step
from gitarchitect.pipeline import (
    PipelineOptions,
    RepoContext,
    find_unverified_references,
    parse_plan,
    select_fallback_files,
)
from tests.fixtures import dir_entry, file_entry, plan_json


class TestPipelineOptions:
    """Tests for PipelineOptions."""

    def test_default_options(self) -> None:
        """Test that defaults defer to configuration."""
        options = PipelineOptions()

        assert options.deep_research is None
        assert options.include_readme is True
        assert options.max_selected_files is None


class TestParsePlan:
    """Tests for parse_plan."""

    def test_valid_plan(self) -> None:
        """Test the model contract shape."""
        plan = parse_plan(plan_json())

        assert plan.title == "Add authentication"
        assert [s.id for s in plan.steps] == [1, 2]
        assert plan.steps[1].complexity == Complexity.MEDIUM

    def test_not_json(self) -> None:
        """Test that prose is malformed."""
        with pytest.raises(MalformedResponseError):
            parse_plan("Here is your plan: step one, do things.")

    def test_wrong_shape_keeps_raw(self) -> None:
        """Test that a JSON array is rejected with the raw text preserved."""
        with pytest.raises(MalformedResponseError, match="plan shape") as exc_info:
            parse_plan('[{"id": 1}]')

        assert exc_info.value.raw_response == '[{"id": 1}]'

    def test_invalid_complexity(self) -> None:
        """Test that step validation errors become malformed responses."""
        bad_step = {"id": 1, "title": "T", "complexity": "Trivial"}

        with pytest.raises(MalformedResponseError, match="complexity"):
            parse_plan(plan_json(steps=[bad_step]))


class TestSelectFallbackFiles:
    """Tests for the deterministic fallback selection."""

    def test_manifest_readme_and_sources(self) -> None:
        """Test the pick order: manifest, README, then sources under src/."""
        entries = [
            file_entry("README.md"),
            file_entry("package.json"),
            dir_entry("src"),
            file_entry("src/index.js"),
            file_entry("src/App.jsx"),
            file_entry("src/api.js"),
            file_entry("docs/guide.md"),
        ]

        assert select_fallback_files(entries) == [
            "package.json",
            "README.md",
            "src/App.jsx",
            "src/api.js",
            "src/index.js",
        ]

    def test_root_manifest_preferred(self) -> None:
        """Test that the shallowest manifest wins."""
        entries = [file_entry("web/package.json"), file_entry("pyproject.toml")]

        assert select_fallback_files(entries) == ["pyproject.toml"]

    def test_source_limit(self) -> None:
        """Test that only five source files are taken from the source root."""
        entries = [file_entry(f"lib/mod{i}.py") for i in range(8)]

        assert select_fallback_files(entries) == [f"lib/mod{i}.py" for i in range(5)]

    def test_max_files(self) -> None:
        """Test the overall limit."""
        entries = [file_entry("package.json"), file_entry("README.md"), file_entry("src/a.js")]

        assert select_fallback_files(entries, max_files=2) == ["package.json", "README.md"]

    def test_empty(self) -> None:
        """Test that an empty tree selects nothing."""
        assert select_fallback_files([]) == []


class TestUnverifiedReferences:
    """Tests for affected-file verification."""

    @pytest.fixture
    def tree_paths(self) -> list[str]:
        """Return the known repository paths."""
        return ["src/app.ts", "src/lib/db.ts", "README.md"]

    def make_plan(self, *files: str) -> Plan:
        """Build a one-step plan touching files."""
        return Plan(
            title="T",
            summary="S",
            steps=[Step(id=1, title="Edit", affected_files=list(files), complexity=Complexity.LOW)],
        )

    def test_known_paths(self, tree_paths: list[str]) -> None:
        """Test files, annotated files and parent directories."""
        plan = self.make_plan("src/app.ts", "./src/lib/db.ts (modify)", "src/lib/")

        assert find_unverified_references(plan, tree_paths) == []

    def test_new_files_allowed(self, tree_paths: list[str]) -> None:
        """Test that creations are not flagged."""
        plan = self.make_plan("src/auth.ts (new)", "Create src/middleware.ts")

        assert find_unverified_references(plan, tree_paths) == []

    def test_unknown_path_warns(self, tree_paths: list[str]) -> None:
        """Test an invented path."""
        plan = self.make_plan("src/ghost.ts")

        warnings = find_unverified_references(plan, tree_paths)

        assert warnings == [
            "Step 1: 'src/ghost.ts' is not in the repository tree and is not marked as a new file"
        ]


class TestRepoContext:
    """Tests for RepoContext."""

    def test_from_entries(self) -> None:
        """Test that the structure is the tree digest."""
        context = RepoContext.from_entries("octo/app", [file_entry("src/app.py")])

        assert context.name == "octo/app"
        assert "app.py" in context.structure
        assert "src/" in context.structure
