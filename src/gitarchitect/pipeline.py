"""Context-bounded analysis pipeline.

Turns a repository into a bounded, redacted context and a structured plan:

1. Fetch the repository tree and filter out artifacts, binaries and large files
2. (Optional) Research the goal with a retrieval-augmented backend
3. Stage 1: ask the model which files matter, then keep only paths that exist
4. Fetch the selected files concurrently and redact secrets
5. Stage 2: synthesize a plan from the digest, files, goal and research
6. Refine the plan on request, one refinement at a time

Model output is never trusted for file existence: stage-1 paths are filtered
against the tree after generation.
"""

import logging
import re
import threading
from collections.abc import Iterable, Iterator, Sequence
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from gitarchitect.config import MAX_SELECTED_FILES, ArchitectConfig
from gitarchitect.errors import GatewayError, MalformedResponseError, UnreachableError
from gitarchitect.gateways.base import README_NOT_FOUND, RepositoryGateway
from gitarchitect.gateways.github import GitHubGateway
from gitarchitect.llm.client import CompletionOptions, ModelGateway, create_gateway
from gitarchitect.llm.parsing import parse_json_response
from gitarchitect.llm.prompts import (
    FILE_SELECTION_SCHEMA,
    FILE_SELECTION_SYSTEM_PROMPT,
    PLAN_SCHEMA,
    PLAN_SYSTEM_PROMPT,
    REFACTOR_SYSTEM_PROMPT,
    RESEARCH_SYSTEM_PROMPT,
    build_file_selection_prompt,
    build_plan_prompt,
    build_refactor_prompt,
    build_research_prompt,
    build_step_question_prompt,
    build_step_question_system_prompt,
)
from gitarchitect.models.analysis import (
    AnalysisError,
    AnalysisRun,
    PipelineState,
    SanitizedFile,
    SelectionResult,
)
from gitarchitect.models.plan import ChatRole, ChatTurn, Plan, Step
from gitarchitect.models.repository import RepositoryEntry, parse_repo_id
from gitarchitect.security.scanner import SecretScanner
from gitarchitect.tree.serializer import (
    MAX_TREE_LINES,
    file_paths,
    filter_important,
    filter_tree,
    generate_tree_digest,
    is_important_file,
    normalize_path,
)

logger = logging.getLogger(__name__)

RESEARCH_UNAVAILABLE_NOTE = (
    "Internet research unavailable for the configured model backend. "
    "Proceeding with internal knowledge."
)
RESEARCH_EMPTY_NOTE = "Research completed but no summary generated."
RESEARCH_SKIPPED_NOTE = "Deep research was not requested for this plan."
RESEARCH_FAILED_NOTE = "Internet research failed. Proceeding with internal knowledge."
NO_ANSWER_NOTE = "I couldn't generate an answer."

# Dependency manifests, in the order they are preferred by the fallback selection
MANIFEST_NAMES = (
    "package.json",
    "pyproject.toml",
    "requirements.txt",
    "go.mod",
    "cargo.toml",
    "pom.xml",
    "build.gradle",
    "gemfile",
    "composer.json",
    "setup.py",
)
SOURCE_ROOTS = ("src", "lib", "app", "source", "pkg")
FALLBACK_SOURCE_FILES = 5

_CREATION_MARKERS = ("create", "new file", "(new)")


@dataclass
class PipelineOptions:
    """Options for controlling a pipeline run.

    Attributes:
        deep_research: Run web research before synthesis (None = use config)
        include_readme: Put the README in the synthesis prompt
        max_selected_files: Override analysis.max_selected_files (capped at 10)
    """

    deep_research: bool | None = None
    include_readme: bool = True
    max_selected_files: int | None = None


@dataclass
class RepoContext:
    """Repository context sent along with refinement requests.

    Attributes:
        name: Repository identifier (owner/name)
        structure: Tree digest
    """

    name: str
    structure: str

    @classmethod
    def from_entries(
        cls,
        name: str,
        entries: Iterable[RepositoryEntry],
        max_lines: int = MAX_TREE_LINES,
    ) -> "RepoContext":
        """Build a context from tree entries."""
        return cls(name=name, structure=generate_tree_digest(entries, max_lines=max_lines))


def parse_plan(text: str) -> Plan:
    """Parse model output into a Plan.

    Raises:
        MalformedResponseError: If the text is not JSON or not plan-shaped
    """
    data = parse_json_response(text)
    try:
        return Plan.from_dict(data)
    except ValueError as e:
        raise MalformedResponseError(
            f"Model response does not match the plan shape: {e}",
            raw_response=text,
        ) from e


def select_fallback_files(
    entries: Iterable[RepositoryEntry],
    max_files: int = 10,
) -> list[str]:
    """Pick files deterministically when the model's selection is unusable.

    Takes the root-most dependency manifest, the root-most README, and up to
    five source files under the first conventional source root present.

    Args:
        entries: Filtered tree entries
        max_files: Maximum number of paths returned

    Returns:
        Selected paths
    """
    files = sorted(file_paths(entries), key=lambda p: (p.count("/"), p.lower(), p))

    def basename(path: str) -> str:
        return path.rsplit("/", 1)[-1].lower()

    selected: list[str] = []

    manifests = [path for path in files if basename(path) in MANIFEST_NAMES]
    if manifests:
        selected.append(
            min(manifests, key=lambda p: (p.count("/"), MANIFEST_NAMES.index(basename(p)), p))
        )

    readme = next((path for path in files if basename(path).startswith("readme")), None)
    if readme:
        selected.append(readme)

    for root in SOURCE_ROOTS:
        under_root = sorted(path for path in files if path.startswith(f"{root}/"))
        if not under_root:
            continue
        preferred = [path for path in under_root if is_important_file(path)] or under_root
        selected.extend(preferred[:FALLBACK_SOURCE_FILES])
        break

    return list(dict.fromkeys(selected))[:max_files]


def _is_creation(reference: str) -> bool:
    lowered = reference.lower()
    return any(marker in lowered for marker in _CREATION_MARKERS)


def find_unverified_references(plan: Plan, tree_paths: Iterable[str]) -> list[str]:
    """List affected files that are neither in the tree nor marked as creations.

    Plans may legitimately propose new files, so these are warnings only.

    Args:
        plan: Synthesized plan
        tree_paths: Repository paths (files and directories)

    Returns:
        One warning per unverified reference
    """
    known = {normalize_path(path).rstrip("/") for path in tree_paths}
    # Parent directories count as known even when the listing omits them
    for path in list(known):
        parts = path.split("/")
        for depth in range(1, len(parts)):
            known.add("/".join(parts[:depth]))

    warnings: list[str] = []
    for step in plan.steps:
        for reference in step.affected_files:
            if _is_creation(reference):
                continue
            # Drop trailing annotations such as "src/app.ts (modify)"
            candidate = normalize_path(re.split(r"\s+[(\-:]", reference.strip(), maxsplit=1)[0])
            if candidate.rstrip("/") in known:
                continue
            warnings.append(
                f"Step {step.id}: '{reference}' is not in the repository tree "
                "and is not marked as a new file"
            )
    return warnings


class AnalysisPipeline:
    """Orchestrates selection, sanitization, synthesis and refinement.

    All collaborators are injected: the repository gateway, the model
    gateway and (optionally) the secret scanner. Nothing is shared across
    runs except the refinement lock.

    States: IDLE -> RESEARCHING_CONTEXT -> SELECTING_FILES ->
    FETCHING_AND_SANITIZING -> SYNTHESIZING_PLAN -> PLAN_READY, then
    REFINING <-> PLAN_READY. Any failure resets the state to IDLE.
    """

    def __init__(
        self,
        config: ArchitectConfig,
        repository_gateway: RepositoryGateway,
        model_gateway: ModelGateway,
        scanner: SecretScanner | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            config: GitArchitect configuration
            repository_gateway: Source of trees and file contents
            model_gateway: Language-model backend
            scanner: Secret scanner (built from config.security if None)
        """
        self.config = config
        self.repository_gateway = repository_gateway
        self.model_gateway = model_gateway
        self.scanner = scanner or SecretScanner(config.security)
        self.state = PipelineState.IDLE
        self._refine_lock = threading.Lock()

    @contextmanager
    def _stage(self, state: PipelineState) -> Iterator[None]:
        """Enter a pipeline state; return to IDLE if the stage raises."""
        self.state = state
        logger.debug("Pipeline state: %s", state.value)
        try:
            yield
        except Exception:
            self.state = PipelineState.IDLE
            raise

    # =========================================================================
    # End-to-end run
    # =========================================================================

    def run(
        self,
        repo_id: str,
        goal: str,
        problems: str = "",
        branch: str | None = None,
        options: PipelineOptions | None = None,
    ) -> AnalysisRun:
        """Execute the full pipeline for one repository.

        Args:
            repo_id: owner/name or a GitHub URL
            goal: What the user wants to achieve
            problems: Current pain points
            branch: Branch to analyze (default branch if None)
            options: Run options

        Returns:
            AnalysisRun with the plan and everything that went into it

        Raises:
            ValueError: If the repository reference or goal is invalid
            NotFoundError, RateLimitedError, UnreachableError: If the tree
                cannot be acquired or a model call fails
            MalformedResponseError: If the synthesized plan cannot be parsed
        """
        options = options or PipelineOptions()
        repo_id = parse_repo_id(repo_id)
        if not goal or not goal.strip():
            raise ValueError("A goal is required to plan against")

        deep_research = (
            self.config.analysis.deep_research
            if options.deep_research is None
            else options.deep_research
        )
        max_files = min(
            options.max_selected_files or self.config.analysis.max_selected_files,
            MAX_SELECTED_FILES,
        )

        logger.info("Starting analysis pipeline for %s", repo_id)

        try:
            if branch is None:
                details = self.repository_gateway.get_repo_details(repo_id)
                branch = details.default_branch or "main"
                logger.debug("Resolved default branch: %s", branch)

            run = AnalysisRun(repository=repo_id, branch=branch, goal=goal, problems=problems)

            logger.info("Stage 1: Fetching repository tree (%s)", branch)
            entries = self.repository_gateway.get_tree(repo_id, branch)
            filtered = filter_tree(entries, max_file_size=self.config.analysis.max_file_size_bytes)
            run.total_entries = len(entries)
            run.filtered_entries = len(filtered)
            run.candidate_files = len(self._selection_candidates(filtered))
            logger.info(
                "Tree: %d entries, %d after filtering, %d candidates for selection",
                run.total_entries,
                run.filtered_entries,
                run.candidate_files,
            )

            logger.info("Stage 2: Researching context")
            run.research_notes = self._research_for_run(run, deep_research)

            logger.info("Stage 3: Selecting relevant files")
            selection = self.identify_relevant_files(
                goal, problems, filtered, repo_id, max_files=max_files
            )
            run.relevant_files = selection.paths
            run.used_fallback_selection = selection.used_fallback
            if selection.used_fallback:
                run.add_error(
                    AnalysisError(
                        component="selection",
                        message="Model file selection unusable; heuristic selection used",
                    )
                )
            logger.info("Selected %d files: %s", len(selection.paths), ", ".join(selection.paths))

            readme = self._readme_for_run(run, options.include_readme)

            logger.info("Stage 4: Fetching and sanitizing %d files", len(selection.paths))
            run.sanitized_files = self.fetch_and_sanitize_files(selection.paths, repo_id, branch)
            for sanitized in run.sanitized_files:
                if sanitized.fetch_error:
                    run.add_error(
                        AnalysisError(
                            component="fetch",
                            message=sanitized.fetch_error,
                            file_path=sanitized.path,
                        )
                    )

            logger.info("Stage 5: Synthesizing plan")
            run.plan = self.synthesize_plan(
                repo_id,
                filtered,
                goal,
                problems,
                run.research_notes or "",
                run.sanitized_files,
                readme=readme,
            )

            run.reference_warnings = find_unverified_references(
                run.plan, [entry.path for entry in entries]
            )
            for warning in run.reference_warnings:
                logger.warning("Unverified reference: %s", warning)

            run.state = self.state
        except Exception:
            self.state = PipelineState.IDLE
            raise

        logger.info(
            "Plan ready: %s (%d steps, %d warnings, %d errors)",
            run.plan.title,
            len(run.plan.steps),
            len(run.security_warnings) + len(run.reference_warnings),
            len(run.errors),
        )
        return run

    def _research_for_run(self, run: AnalysisRun, deep_research: bool) -> str:
        """Run optional research, degrading backend failures to a note."""
        if not deep_research:
            return RESEARCH_SKIPPED_NOTE
        try:
            return self.perform_deep_research(run.repository, run.goal, run.problems)
        except UnreachableError:
            raise
        except GatewayError as e:
            logger.warning("Research failed, continuing without it: %s", e)
            run.add_error(AnalysisError(component="research", message=str(e)))
            return RESEARCH_FAILED_NOTE

    def _readme_for_run(self, run: AnalysisRun, include_readme: bool) -> str | None:
        """Fetch the README; failures are recorded and skipped."""
        if not include_readme:
            return None
        try:
            readme = self.repository_gateway.get_readme(run.repository, run.branch)
        except GatewayError as e:
            logger.warning("README unavailable: %s", e)
            run.add_error(AnalysisError(component="readme", message=str(e)))
            return None
        return None if readme == README_NOT_FOUND else readme

    # =========================================================================
    # Stage 1: file selection
    # =========================================================================

    @staticmethod
    def _selection_candidates(filtered_tree: Sequence[RepositoryEntry]) -> list[RepositoryEntry]:
        """Files offered to stage 1: important files, else every file."""
        return filter_important(filtered_tree) or [e for e in filtered_tree if e.is_file]

    def identify_relevant_files(
        self,
        goal: str,
        problems: str,
        filtered_tree: Sequence[RepositoryEntry],
        repo_name: str,
        max_files: int | None = None,
    ) -> SelectionResult:
        """Ask the model which files matter, keeping only paths that exist.

        Args:
            goal: User goal
            problems: User pain points
            filtered_tree: Filtered repository entries
            repo_name: Repository identifier
            max_files: Maximum number of paths (config default if None, at most 10)

        Returns:
            SelectionResult; paths are always a subset of the tree's files

        Raises:
            GatewayError: If the model backend fails (not for bad output)
        """
        max_files = min(
            max_files or self.config.analysis.max_selected_files, MAX_SELECTED_FILES
        )

        with self._stage(PipelineState.SELECTING_FILES):
            candidates = self._selection_candidates(filtered_tree)
            if not candidates:
                logger.info("Empty tree, nothing to select")
                return SelectionResult()

            valid_paths = file_paths(filtered_tree)
            digest = generate_tree_digest(
                candidates, max_lines=self.config.analysis.max_tree_lines
            )
            prompt = build_file_selection_prompt(repo_name, goal, problems, digest, max_files)

            response = self.model_gateway.complete(
                FILE_SELECTION_SYSTEM_PROMPT,
                prompt,
                CompletionOptions(
                    json_mode=True,
                    json_schema=FILE_SELECTION_SCHEMA,
                    schema_name="file_selection",
                ),
            )

            try:
                paths = self._validate_selection(response.content, valid_paths, max_files)
            except MalformedResponseError as e:
                logger.warning("File selection response unusable (%s); using heuristic", e)
                return SelectionResult(
                    paths=select_fallback_files(filtered_tree, max_files),
                    used_fallback=True,
                )

            if not paths:
                logger.warning("Model selected no existing files; using heuristic")
                return SelectionResult(
                    paths=select_fallback_files(filtered_tree, max_files),
                    used_fallback=True,
                )

            return SelectionResult(paths=paths)

    @staticmethod
    def _validate_selection(text: str, valid_paths: set[str], max_files: int) -> list[str]:
        """Parse a selection response and filter it against the tree.

        Raises:
            MalformedResponseError: If the response is not a list of paths
        """
        data: Any = parse_json_response(text)
        if isinstance(data, dict):
            data = data.get("files")
        if not isinstance(data, list):
            raise MalformedResponseError(
                "Expected a JSON array of paths or an object with a 'files' array",
                raw_response=text,
            )

        selected: list[str] = []
        dropped: list[str] = []
        for item in data:
            if not isinstance(item, str):
                continue
            path = normalize_path(item)
            if path not in valid_paths:
                dropped.append(item)
                continue
            if path not in selected:
                selected.append(path)

        if dropped:
            logger.info("Dropped %d selected paths not in the tree: %s", len(dropped), dropped[:10])
        return selected[:max_files]

    # =========================================================================
    # Fetch and sanitize
    # =========================================================================

    def _fetch_one(self, repo_name: str, path: str, branch: str) -> tuple[str | None, str | None]:
        """Fetch one file, returning (content, error)."""
        try:
            return self.repository_gateway.get_file_content(repo_name, path, branch), None
        except GatewayError as e:
            logger.warning("Failed to fetch %s: %s", path, e)
            return None, str(e)

    def fetch_and_sanitize_files(
        self,
        paths: Sequence[str],
        repo_name: str,
        branch: str,
    ) -> list[SanitizedFile]:
        """Fetch files concurrently, then redact each one.

        A fetch failure affects only its own file, whose content becomes an
        "[Error: ...]" placeholder.

        Args:
            paths: Selected paths
            repo_name: Repository identifier
            branch: Branch name

        Returns:
            SanitizedFile per path, in input order
        """
        with self._stage(PipelineState.FETCHING_AND_SANITIZING):
            if not paths:
                return []

            workers = max(1, min(self.config.analysis.max_concurrent_fetches, len(paths)))
            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = [
                    executor.submit(self._fetch_one, repo_name, path, branch) for path in paths
                ]
                fetched = [future.result() for future in futures]

            results: list[SanitizedFile] = []
            for path, (content, error) in zip(paths, fetched, strict=True):
                if content is None:
                    message = error or "unknown error"
                    results.append(
                        SanitizedFile(path=path, content=f"[Error: {message}]", fetch_error=message)
                    )
                    continue

                detection = self.scanner.scan(content, path)
                results.append(
                    SanitizedFile(
                        path=path,
                        content=detection.redacted_text,
                        warnings=detection.warnings,
                    )
                )

            return results

    # =========================================================================
    # Stage 2: synthesis
    # =========================================================================

    def synthesize_plan(
        self,
        repo_name: str,
        filtered_tree: Sequence[RepositoryEntry],
        goal: str,
        problems: str,
        research_notes: str,
        sanitized_files: Sequence[SanitizedFile],
        readme: str | None = None,
    ) -> Plan:
        """Synthesize a plan from the bounded context.

        Args:
            repo_name: Repository identifier
            filtered_tree: Filtered repository entries
            goal: User goal
            problems: User pain points
            research_notes: Research findings or explanatory note
            sanitized_files: Redacted file contents
            readme: Optional README text (redacted before use)

        Returns:
            Plan carrying research_notes

        Raises:
            MalformedResponseError: If the response is not a valid plan
        """
        with self._stage(PipelineState.SYNTHESIZING_PLAN):
            analysis = self.config.analysis
            digest = generate_tree_digest(filtered_tree, max_lines=analysis.max_tree_lines)
            if readme:
                readme = self.scanner.scan(readme, "README").redacted_text

            prompt = build_plan_prompt(
                repo_name=repo_name,
                tree_digest=digest,
                goal=goal,
                problems=problems,
                research_notes=research_notes,
                files=sanitized_files,
                readme=readme,
                max_file_chars=analysis.max_file_chars,
                max_readme_chars=analysis.max_readme_chars,
            )

            response = self.model_gateway.complete(
                PLAN_SYSTEM_PROMPT,
                prompt,
                CompletionOptions(
                    json_mode=True,
                    json_schema=PLAN_SCHEMA,
                    schema_name="implementation_plan",
                ),
            )
            plan = parse_plan(response.content)
            plan.research_notes = research_notes or None

            self.state = PipelineState.PLAN_READY
            logger.debug("Synthesized plan with %d steps", len(plan.steps))
            return plan

    # =========================================================================
    # Refinement and follow-up
    # =========================================================================

    def refactor_plan(self, current_plan: Plan, feedback: str, repo_context: RepoContext) -> Plan:
        """Replace a plan with a revised one according to feedback.

        Refinements run one at a time. Research notes are carried over when
        the backend omits them.

        Args:
            current_plan: Plan to revise, sent verbatim
            feedback: Free-text change request
            repo_context: Repository name and structure

        Returns:
            Replacement Plan

        Raises:
            ValueError: If feedback is empty
            MalformedResponseError: If the response is not a valid plan
        """
        if not feedback or not feedback.strip():
            raise ValueError("Feedback cannot be empty")

        with self._refine_lock, self._stage(PipelineState.REFINING):
            prompt = build_refactor_prompt(
                current_plan.to_dict(),
                feedback,
                repo_context.name,
                repo_context.structure,
            )
            response = self.model_gateway.complete(
                REFACTOR_SYSTEM_PROMPT,
                prompt,
                CompletionOptions(
                    json_mode=True,
                    json_schema=PLAN_SCHEMA,
                    schema_name="implementation_plan",
                ),
            )
            plan = parse_plan(response.content)
            if not plan.research_notes:
                plan.research_notes = current_plan.research_notes

            self.state = PipelineState.PLAN_READY
            logger.info("Plan refined: %d -> %d steps", len(current_plan.steps), len(plan.steps))
            return plan

    def perform_deep_research(self, repo_name: str, goal: str, problems: str) -> str:
        """Research the goal on the web before synthesis.

        Returns RESEARCH_UNAVAILABLE_NOTE without calling the backend when it
        has no retrieval capability.

        Raises:
            GatewayError: If the backend call fails
        """
        if not self.model_gateway.capabilities.retrieval_augmentation:
            logger.info("Model backend has no web retrieval; skipping research")
            return RESEARCH_UNAVAILABLE_NOTE

        with self._stage(PipelineState.RESEARCHING_CONTEXT):
            response = self.model_gateway.complete(
                RESEARCH_SYSTEM_PROMPT,
                build_research_prompt(repo_name, goal, problems),
                CompletionOptions(retrieval_augmented=True),
            )
            return response.content.strip() or RESEARCH_EMPTY_NOTE

    def ask_step_question(
        self,
        step: Step,
        chat_history: Sequence[ChatTurn],
        repo_name: str,
    ) -> str:
        """Answer a follow-up question about one step.

        The whole transcript is sent every time; the last turn is the
        question.

        Raises:
            ValueError: If the history is empty or does not end with a user turn
        """
        if not chat_history:
            raise ValueError("Chat history must contain the question being asked")
        if chat_history[-1].role != ChatRole.USER:
            raise ValueError("The last chat turn must be the user's question")

        response = self.model_gateway.complete(
            build_step_question_system_prompt(repo_name),
            build_step_question_prompt(step, chat_history),
        )
        return response.content.strip() or NO_ANSWER_NOTE


def create_pipeline(config: ArchitectConfig) -> AnalysisPipeline:
    """Build a pipeline with the GitHub gateway and the configured model backend.

    Args:
        config: GitArchitect configuration

    Returns:
        AnalysisPipeline

    Raises:
        UnconfiguredError: If the model backend is disabled
    """
    repository_gateway = GitHubGateway(
        api_base=config.github.api_base,
        raw_base=config.github.raw_base,
        token=config.github.token,
        timeout=config.github.timeout,
    )
    model_gateway = create_gateway(config.llm)
    return AnalysisPipeline(config, repository_gateway, model_gateway)
