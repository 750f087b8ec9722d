"""GitArchitect CLI interface.

Commands:
- plan: Build an implementation plan for a repository and a goal
- refine: Revise a saved plan with free-text feedback
- ask: Ask a follow-up question about one step of a saved plan
- export: Render a saved plan as a Markdown checklist
- search: Find repositories on GitHub
- check: Validate the model backend before running analysis
- init: Initialize GitArchitect configuration

Global options:
- --config: Path to configuration file
- --verbose: Enable verbose output with timestamps
- --quiet: Suppress info messages
- --ci: JSON log lines for CI/CD
- --version: Show version and exit

Plans are exchanged between commands as JSON files (see Plan.to_dict).
"""

import json
from pathlib import Path
from typing import Annotated

import typer

from gitarchitect import __version__
from gitarchitect.config import (
    ArchitectConfig,
    apply_llm_overrides,
    create_default_config,
    load_config,
)
from gitarchitect.errors import ArchitectError, MalformedResponseError
from gitarchitect.gateways.github import GitHubGateway
from gitarchitect.models.analysis import AnalysisRun
from gitarchitect.models.plan import ChatRole, ChatTurn, Plan
from gitarchitect.models.repository import parse_repo_id
from gitarchitect.pipeline import (
    AnalysisPipeline,
    PipelineOptions,
    RepoContext,
    create_pipeline,
)
from gitarchitect.templates import PlanRenderer
from gitarchitect.tree.serializer import filter_tree
from gitarchitect.utils.logging import configure_from_cli, get_logger
from gitarchitect.utils.preflight import PreflightChecker

app = typer.Typer(
    name="gitarchitect",
    help="Plan repository changes with a context-bounded, secret-redacting LLM pipeline",
    add_completion=False,
    no_args_is_help=True,
)

# Global state
_config: ArchitectConfig | None = None
_logger = get_logger()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"gitarchitect {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file",
            exists=True,
            dir_okay=False,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose output with timestamps"),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option("--quiet", "-q", help="Suppress info messages (warnings and errors only)"),
    ] = False,
    ci: Annotated[
        bool,
        typer.Option("--ci", help="Enable CI mode with JSON log lines"),
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = False,
) -> None:
    """GitArchitect - architecture plans grounded in a real repository.

    Selects the files that matter for a goal, redacts secrets from them, and
    asks a language model for a step-by-step implementation plan.
    """
    global _config

    configure_from_cli(verbose=verbose, quiet=quiet, ci=ci)

    try:
        _config = load_config(config_path=config)
        if _config.config_path:
            _logger.debug(f"Loaded config from: {_config.config_path}")
    except FileNotFoundError as e:
        _logger.error(str(e))
        raise typer.Exit(1)
    except ValueError as e:
        _logger.error(f"Failed to load config: {e}")
        raise typer.Exit(1)


def _get_config() -> ArchitectConfig:
    if _config is None:
        return load_config()
    return _config


def _build_pipeline(config: ArchitectConfig) -> AnalysisPipeline:
    try:
        return create_pipeline(config)
    except ValueError as e:
        _logger.error(f"Model backend not configured: {e}")
        raise typer.Exit(1)


def _fail(error: Exception) -> typer.Exit:
    """Log a fatal pipeline error and return the exit to raise."""
    _logger.error(str(error))
    if isinstance(error, MalformedResponseError) and error.raw_response:
        _logger.debug(f"Raw model response:\n{error.raw_response}")
    return typer.Exit(1)


def _load_plan(path: Path) -> Plan:
    try:
        return Plan.from_dict(json.loads(path.read_text(encoding="utf-8")))
    except OSError as e:
        _logger.error(f"Cannot read plan file {path}: {e}")
        raise typer.Exit(1)
    except ValueError as e:
        _logger.error(f"Invalid plan file {path}: {e}")
        raise typer.Exit(1)


def _save_plan(plan: Plan, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(plan.to_dict(), indent=2) + "\n", encoding="utf-8")
    _logger.info(f"Saved plan to: {path}")


def _repo_context(
    pipeline: AnalysisPipeline,
    config: ArchitectConfig,
    repo_id: str,
    branch: str | None,
) -> RepoContext:
    """Fetch the tree again so refinements see the same structure as synthesis."""
    gateway = pipeline.repository_gateway
    if branch is None:
        branch = gateway.get_repo_details(repo_id).default_branch or "main"
    entries = filter_tree(
        gateway.get_tree(repo_id, branch),
        max_file_size=config.analysis.max_file_size_bytes,
    )
    return RepoContext.from_entries(repo_id, entries, max_lines=config.analysis.max_tree_lines)


def _report_run(run: AnalysisRun) -> bool:
    """Log warnings and non-fatal errors. Returns True if there were any."""
    for warning in run.security_warnings:
        _logger.warning(f"Redacted: {warning}")
    for warning in run.reference_warnings:
        _logger.warning(warning)
    for error in run.errors:
        location = f" ({error.file_path})" if error.file_path else ""
        _logger.warning(f"[{error.component}] {error.message}{location}")

    return bool(run.security_warnings or run.reference_warnings or run.errors)


# =============================================================================
# check command
# =============================================================================


@app.command()
def check(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output results as JSON"),
    ] = False,
    no_ping: Annotated[
        bool,
        typer.Option("--no-ping", help="Do not contact the local model endpoint"),
    ] = False,
) -> None:
    """Validate the model backend and repository access.

    Exit codes:
        0: All required checks passed
        1: One or more required checks failed
        2: Only optional checks failed (warnings)
    """
    config = _get_config()
    result = PreflightChecker().check_all(config, ping_endpoint=not no_ping)

    if json_output:
        typer.echo(json.dumps(result.to_dict(), indent=2))
    else:
        typer.echo("\nPreflight Check Results\n")

        for check_result in result.checks:
            status = "OK  " if check_result.available else "FAIL"
            version_str = f" ({check_result.version})" if check_result.version else ""
            required_str = " [required]" if check_result.required else " [optional]"

            typer.echo(f"  {status} {check_result.name}{version_str}{required_str}")
            if check_result.message:
                typer.echo(f"       └─ {check_result.message}")

        typer.echo()

    if result.errors:
        if not json_output:
            typer.echo("Preflight check FAILED")
            for error in result.errors:
                typer.echo(f"   • {error}")
        raise typer.Exit(1)
    if result.warnings:
        if not json_output:
            typer.echo("Preflight check passed with WARNINGS")
            for warning in result.warnings:
                typer.echo(f"   • {warning}")
        raise typer.Exit(2)

    if not json_output:
        typer.echo("All preflight checks passed")
    raise typer.Exit(0)


# =============================================================================
# plan command
# =============================================================================


@app.command()
def plan(
    repo: Annotated[
        str,
        typer.Argument(help="Repository as owner/name or a GitHub URL"),
    ],
    goal: Annotated[
        str,
        typer.Option("--goal", "-g", help="What you want to achieve"),
    ],
    problems: Annotated[
        str,
        typer.Option("--problems", "-p", help="Current pain points"),
    ] = "",
    branch: Annotated[
        str | None,
        typer.Option("--branch", "-b", help="Branch to analyze (default branch if omitted)"),
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Write the plan as JSON to this file"),
    ] = None,
    markdown: Annotated[
        Path | None,
        typer.Option("--markdown", "-m", help="Write the plan as a Markdown checklist"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Print the full run report as JSON"),
    ] = False,
    provider: Annotated[
        str | None,
        typer.Option("--provider", help="Model provider override (local, gemini)"),
    ] = None,
    model: Annotated[
        str | None,
        typer.Option("--model", help="Model identifier override"),
    ] = None,
    max_files: Annotated[
        int | None,
        typer.Option("--max-files", min=1, max=10, help="Files to read in detail"),
    ] = None,
    no_research: Annotated[
        bool,
        typer.Option("--no-research", help="Skip web research before synthesis"),
    ] = False,
    no_readme: Annotated[
        bool,
        typer.Option("--no-readme", help="Leave the README out of the plan prompt"),
    ] = False,
    skip_preflight: Annotated[
        bool,
        typer.Option("--skip-preflight", help="Skip backend validation"),
    ] = False,
) -> None:
    """Build an implementation plan for a repository.

    Exit codes:
        0: Plan generated successfully
        1: Error during generation
        2: Plan generated with warnings (redactions, unverified paths, degraded stages)
    """
    try:
        repo_id = parse_repo_id(repo)
        config = apply_llm_overrides(_get_config(), provider=provider, model=model)
    except ValueError as e:
        _logger.error(str(e))
        raise typer.Exit(1)

    if not skip_preflight:
        _logger.info("Running preflight checks...")
        preflight = PreflightChecker().check_all(config)
        if not preflight.success:
            _logger.error("Preflight checks failed:")
            for error in preflight.errors:
                _logger.error(f"  {error}")
            raise typer.Exit(1)
        for warning in preflight.warnings:
            _logger.warning(f"  {warning}")

    pipeline = _build_pipeline(config)
    options = PipelineOptions(
        deep_research=False if no_research else None,
        include_readme=not no_readme,
        max_selected_files=max_files,
    )

    try:
        run = pipeline.run(repo_id, goal, problems, branch=branch, options=options)
    except (ArchitectError, ValueError) as e:
        raise _fail(e)
    finally:
        pipeline.repository_gateway.close()

    assert run.plan is not None
    has_warnings = _report_run(run)

    if output:
        _save_plan(run.plan, output)

    renderer = PlanRenderer()
    if markdown:
        renderer.render_to_file(run.plan, markdown, details=True)

    if json_output:
        typer.echo(json.dumps(run.to_dict(), indent=2))
    else:
        typer.echo(renderer.render(run.plan), nl=False)

    raise typer.Exit(2 if has_warnings else 0)


# =============================================================================
# refine command
# =============================================================================


@app.command()
def refine(
    plan_file: Annotated[
        Path,
        typer.Argument(help="Plan JSON file to revise", exists=True, dir_okay=False),
    ],
    feedback: Annotated[
        str,
        typer.Option("--feedback", "-f", help="What to change about the plan"),
    ],
    repo: Annotated[
        str,
        typer.Option("--repo", "-r", help="Repository the plan was built for"),
    ],
    branch: Annotated[
        str | None,
        typer.Option("--branch", "-b", help="Branch (default branch if omitted)"),
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Write the revised plan here instead of in place"),
    ] = None,
) -> None:
    """Revise a saved plan according to feedback.

    The revised plan replaces the old one; nothing is merged.
    """
    current = _load_plan(plan_file)
    config = _get_config()

    try:
        repo_id = parse_repo_id(repo)
    except ValueError as e:
        _logger.error(str(e))
        raise typer.Exit(1)

    pipeline = _build_pipeline(config)
    try:
        context = _repo_context(pipeline, config, repo_id, branch)
        revised = pipeline.refactor_plan(current, feedback, context)
    except (ArchitectError, ValueError) as e:
        raise _fail(e)
    finally:
        pipeline.repository_gateway.close()

    _save_plan(revised, output or plan_file)
    typer.echo(PlanRenderer().render(revised), nl=False)


# =============================================================================
# ask command
# =============================================================================


@app.command()
def ask(
    plan_file: Annotated[
        Path,
        typer.Argument(help="Plan JSON file", exists=True, dir_okay=False),
    ],
    step_id: Annotated[
        int,
        typer.Argument(help="Step to ask about"),
    ],
    question: Annotated[
        str,
        typer.Option("--question", "-q", help="Your question"),
    ],
    repo: Annotated[
        str,
        typer.Option("--repo", "-r", help="Repository the plan was built for"),
    ],
    history: Annotated[
        Path | None,
        typer.Option("--history", help="JSON transcript to continue and update"),
    ] = None,
) -> None:
    """Ask a follow-up question about one step of a plan."""
    current = _load_plan(plan_file)
    step = current.get_step(step_id)
    if step is None:
        _logger.error(f"Plan has no step {step_id}")
        raise typer.Exit(1)

    turns: list[ChatTurn] = []
    if history and history.exists():
        try:
            turns = [ChatTurn.from_dict(t) for t in json.loads(history.read_text(encoding="utf-8"))]
        except (ValueError, TypeError, AttributeError) as e:
            _logger.error(f"Invalid chat history {history}: {e}")
            raise typer.Exit(1)
    turns.append(ChatTurn(role=ChatRole.USER, content=question))

    try:
        repo_id = parse_repo_id(repo)
    except ValueError as e:
        _logger.error(str(e))
        raise typer.Exit(1)

    pipeline = _build_pipeline(_get_config())
    try:
        answer = pipeline.ask_step_question(step, turns, repo_id)
    except (ArchitectError, ValueError) as e:
        raise _fail(e)
    finally:
        pipeline.repository_gateway.close()

    turns.append(ChatTurn(role=ChatRole.MODEL, content=answer))
    if history:
        history.parent.mkdir(parents=True, exist_ok=True)
        history.write_text(
            json.dumps([t.to_dict() for t in turns], indent=2) + "\n", encoding="utf-8"
        )

    typer.echo(answer)


# =============================================================================
# export command
# =============================================================================


@app.command()
def export(
    plan_file: Annotated[
        Path,
        typer.Argument(help="Plan JSON file", exists=True, dir_okay=False),
    ],
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Markdown file to write (stdout if omitted)"),
    ] = None,
    details: Annotated[
        bool,
        typer.Option("--details", help="Include descriptions, complexity and safety checks"),
    ] = False,
) -> None:
    """Render a saved plan as a Markdown checklist."""
    current = _load_plan(plan_file)
    renderer = PlanRenderer()

    try:
        if output:
            written = renderer.render_to_file(current, output, details=details)
            typer.echo(f"Plan written to: {written}")
        else:
            typer.echo(renderer.render(current, details=details), nl=False)
    except ValueError as e:
        _logger.error(f"Rendering failed: {e}")
        raise typer.Exit(1)


# =============================================================================
# search command
# =============================================================================


@app.command()
def search(
    query: Annotated[str, typer.Argument(help="Search terms")],
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", min=1, max=100, help="Number of results"),
    ] = 5,
) -> None:
    """Find repositories on GitHub, most starred first."""
    github = _get_config().github
    with GitHubGateway(
        api_base=github.api_base,
        raw_base=github.raw_base,
        token=github.token,
        timeout=github.timeout,
    ) as gateway:
        try:
            results = gateway.search_repos(query, limit=limit)
        except ArchitectError as e:
            raise _fail(e)

    if not results:
        typer.echo("No repositories found")
        return

    for ref in results:
        language = f" [{ref.language}]" if ref.language else ""
        typer.echo(f"{ref.full_name} ({ref.stars} stars){language}")
        if ref.description:
            typer.echo(f"    {ref.description}")


# =============================================================================
# init command
# =============================================================================


@app.command()
def init(
    force: Annotated[
        bool,
        typer.Option("--force", help="Overwrite existing config"),
    ] = False,
) -> None:
    """Initialize GitArchitect configuration.

    Creates .gitarchitect/config.yaml with commented defaults.
    """
    config_dir = Path(".gitarchitect")
    config_file = config_dir / "config.yaml"

    if config_file.exists() and not force:
        _logger.error(f"Config already exists: {config_file}")
        _logger.info("Use --force to overwrite")
        raise typer.Exit(1)

    config_dir.mkdir(exist_ok=True)
    config_file.write_text(create_default_config(), encoding="utf-8")
    _logger.info(f"Created config: {config_file}")

    typer.echo("GitArchitect configuration initialized")
    typer.echo(f"   Config: {config_file}")
    typer.echo("   Local backend: make sure your model server is running (e.g. ollama serve)")


if __name__ == "__main__":
    app()
