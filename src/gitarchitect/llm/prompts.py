"""Prompt templates and response schemas for the analysis pipeline.

Every model call of the pipeline is built here: stage-1 file selection,
stage-2 plan synthesis, plan refinement, deep research and per-step
questions. Builders take plain values and return the user prompt; system
instructions are module constants.
"""

import json
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from gitarchitect.models.analysis import SanitizedFile
    from gitarchitect.models.plan import ChatTurn, Step


# =============================================================================
# Response Schemas
# =============================================================================

FILE_SELECTION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "files": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Repository paths, copied exactly from the file tree",
        },
    },
    "required": ["files"],
}

PLAN_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "title": {"type": "string", "description": "Title of the implementation plan"},
        "summary": {"type": "string", "description": "High level executive summary"},
        "steps": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "id": {"type": "integer"},
                    "title": {"type": "string"},
                    "description": {"type": "string"},
                    "rationale": {"type": "string"},
                    "technicalDetails": {"type": "string"},
                    "affectedFiles": {"type": "array", "items": {"type": "string"}},
                    "complexity": {"type": "string", "enum": ["Low", "Medium", "High"]},
                    "safetyChecks": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": (
                            "Specific checks that keep the application working "
                            "(e.g. backward compatibility, tests)"
                        ),
                    },
                },
                "required": [
                    "id",
                    "title",
                    "description",
                    "rationale",
                    "technicalDetails",
                    "affectedFiles",
                    "complexity",
                    "safetyChecks",
                ],
            },
        },
    },
    "required": ["title", "summary", "steps"],
}


# =============================================================================
# System Instructions
# =============================================================================

FILE_SELECTION_SYSTEM_PROMPT = (
    "You are a senior software engineer triaging an unfamiliar repository. "
    "You pick the few source files a planner must read. You only ever name paths "
    "that appear verbatim in the file tree you are given."
)

PLAN_SYSTEM_PROMPT = (
    "You are a cautious, expert Senior Software Architect. "
    "You prioritize system stability and safety above speed."
)

REFACTOR_SYSTEM_PROMPT = (
    "You are an intelligent code planner assistant. You modify existing architectural "
    "plans based on user feedback while maintaining strict JSON structure."
)

RESEARCH_SYSTEM_PROMPT = (
    "You are a research assistant for software engineers. Search the web for current, "
    "authoritative guidance and summarize it concisely."
)

STEP_QUESTION_SYSTEM_PROMPT_TEMPLATE = (
    "You are a helpful coding assistant for repo '{repo_name}'. "
    "Provide code snippets and safety warnings."
)

# Structural contract shared by synthesis and refinement
PLAN_CONTRACT = """
PLAN CONTRACT - EVERY PLAN MUST FOLLOW THESE RULES:
1. Steps are phased and imperative ("Add", "Extract", "Replace"), ordered so that each
   step leaves the application in a working state.
2. Every path in affectedFiles either appears in the file tree above or is explicitly
   phrased as a creation, e.g. "src/cache.ts (create)".
3. Do not invent libraries, modules, routes or APIs that the repository does not use.
   Introducing a new dependency is its own step with a rationale.
4. Every step lists explicit safetyChecks (tests to run, backward compatibility,
   rollback strategy where applicable).
5. complexity is exactly one of: Low, Medium, High.
6. Step ids are unique integers starting at 1.
"""

# =============================================================================
# Prompt Templates
# =============================================================================

FILE_SELECTION_PROMPT_TEMPLATE = """Repository: {repo_name}

USER GOAL: {goal}
PAIN POINTS: {problems}

=== FILE TREE ===
{tree_digest}
=== END FILE TREE ===

TASK:
Select at most {max_files} files from the tree above whose contents are most relevant
to the goal and pain points. Prefer entry points, the modules the goal touches, and the
manifest that declares dependencies.

Respond with JSON only, in this exact shape:
{{"files": ["path/from/tree.ext", "another/path.ext"]}}

RULES:
- Copy paths exactly as they appear in the tree, relative to the repository root
- Name files only, never directories
- Never name a path that is not in the tree"""

PLAN_PROMPT_TEMPLATE = """CONTEXT:
Repository: {repo_name}

=== FILE TREE ===
{tree_digest}
=== END FILE TREE ===
{readme_section}
=== SELECTED FILES (secrets redacted) ===
{files_section}
=== END SELECTED FILES ===

USER GOAL: {goal}
PAIN POINTS: {problems}

RESEARCH FINDINGS & SAFETY CONTEXT:
{research_notes}

TASK:
Create a detailed, step-by-step developer implementation plan.

CRITICAL SAFETY RULES:
1. Prioritize backward compatibility.
2. Suggest rollback strategies where applicable.
3. Ensure no step leaves the application in a broken state.
4. Explicitly list safety checks for every step.
{contract}
Return valid JSON only."""

REFACTOR_PROMPT_TEMPLATE = """CURRENT PLAN:
{plan_json}

CONTEXT:
Repo: {repo_name}
Structure:
{structure}

USER REQUEST FOR CHANGES:
"{feedback}"

TASK:
Return the complete, updated JSON plan that satisfies the user's request.
- If they ask to split a step, create multiple steps.
- If they ask for more safety, add detailed safetyChecks.
- Keep the JSON structure valid and return every step, not only the changed ones.
- Only change what is necessary.
{contract}"""

RESEARCH_PROMPT_TEMPLATE = """I am planning a modification to the GitHub repository: {repo_name}.

GOAL: {goal}
PROBLEMS: {problems}

Please research the following on the internet:
1. Best practices for this specific tech stack and goal.
2. Common pitfalls, breaking changes, or deprecations I should be aware of.
3. Safety considerations for this type of refactor/feature.

Provide a concise summary of your findings to guide a developer plan."""

STEP_QUESTION_PROMPT_TEMPLATE = """CURRENT STEP:
Step {step_id}: {title}
Description: {description}
Tech Details: {technical_details}
Affected Files: {affected_files}
Safety Checks: {safety_checks}

HISTORY:
{history}

QUESTION:
{question}"""


# =============================================================================
# Builders
# =============================================================================


def truncate_text(text: str, limit: int) -> str:
    """Cut text to a character budget, noting how much was dropped."""
    if len(text) <= limit:
        return text
    return text[:limit] + f"\n... [truncated, {len(text) - limit} chars omitted]"


def build_file_selection_prompt(
    repo_name: str,
    goal: str,
    problems: str,
    tree_digest: str,
    max_files: int = 10,
) -> str:
    """Build the stage-1 file selection prompt.

    Args:
        repo_name: Repository identifier
        goal: User goal
        problems: User pain points
        tree_digest: Bounded tree digest of the candidate files
        max_files: Maximum number of files to request

    Returns:
        Formatted prompt string
    """
    return FILE_SELECTION_PROMPT_TEMPLATE.format(
        repo_name=repo_name,
        goal=goal.strip() or "(not specified)",
        problems=problems.strip() or "(not specified)",
        tree_digest=tree_digest,
        max_files=max_files,
    )


def format_file_sections(files: Sequence["SanitizedFile"], max_file_chars: int) -> str:
    """Render sanitized files as delimited prompt sections."""
    if not files:
        return "(no files selected)"
    sections = []
    for sanitized in files:
        body = truncate_text(sanitized.content, max_file_chars)
        sections.append(f"--- FILE: {sanitized.path} ---\n{body}\n--- END FILE: {sanitized.path} ---")
    return "\n\n".join(sections)


def build_plan_prompt(
    repo_name: str,
    tree_digest: str,
    goal: str,
    problems: str,
    research_notes: str,
    files: Sequence["SanitizedFile"],
    readme: str | None = None,
    max_file_chars: int = 12_000,
    max_readme_chars: int = 20_000,
) -> str:
    """Build the stage-2 plan synthesis prompt.

    Each file is truncated individually so a few large files cannot crowd
    out the rest of the prompt.

    Args:
        repo_name: Repository identifier
        tree_digest: Bounded tree digest
        goal: User goal
        problems: User pain points
        research_notes: Research findings (or an explanatory note)
        files: Sanitized file contents
        readme: Optional README text
        max_file_chars: Character budget per file
        max_readme_chars: Character budget for the README

    Returns:
        Formatted prompt string
    """
    readme_section = ""
    if readme:
        readme_section = (
            "\n=== README ===\n"
            f"{truncate_text(readme, max_readme_chars)}\n"
            "=== END README ===\n"
        )

    return PLAN_PROMPT_TEMPLATE.format(
        repo_name=repo_name,
        tree_digest=tree_digest,
        readme_section=readme_section,
        files_section=format_file_sections(files, max_file_chars),
        goal=goal.strip() or "(not specified)",
        problems=problems.strip() or "(not specified)",
        research_notes=research_notes.strip() or "(none)",
        contract=PLAN_CONTRACT,
    )


def build_refactor_prompt(
    plan_data: dict[str, Any],
    feedback: str,
    repo_name: str,
    structure: str,
) -> str:
    """Build the plan refinement prompt.

    Args:
        plan_data: Current plan in its JSON form, sent verbatim
        feedback: Free-text change request
        repo_name: Repository identifier
        structure: Tree digest of the repository

    Returns:
        Formatted prompt string
    """
    return REFACTOR_PROMPT_TEMPLATE.format(
        plan_json=json.dumps(plan_data, indent=2),
        repo_name=repo_name,
        structure=structure,
        feedback=feedback.strip(),
        contract=PLAN_CONTRACT,
    )


def build_research_prompt(repo_name: str, goal: str, problems: str) -> str:
    """Build the deep research prompt."""
    return RESEARCH_PROMPT_TEMPLATE.format(
        repo_name=repo_name,
        goal=goal.strip() or "(not specified)",
        problems=problems.strip() or "(not specified)",
    )


def build_step_question_system_prompt(repo_name: str) -> str:
    """Build the system instruction for step follow-up questions.

    Args:
        repo_name: Repository identifier the step belongs to

    Returns:
        System instruction naming the repository
    """
    return STEP_QUESTION_SYSTEM_PROMPT_TEMPLATE.format(repo_name=repo_name)


def build_step_question_prompt(step: "Step", chat_history: Sequence["ChatTurn"]) -> str:
    """Build a per-step question prompt from the full transcript.

    The transcript is rendered in order, one "ROLE: content" line per turn;
    the last turn is repeated as the question.

    Args:
        step: Step the conversation is about
        chat_history: Ordered transcript, last turn being the question

    Returns:
        Formatted prompt string
    """
    history = "\n".join(f"{turn.role.value.upper()}: {turn.content}" for turn in chat_history)
    return STEP_QUESTION_PROMPT_TEMPLATE.format(
        step_id=step.id,
        title=step.title,
        description=step.description,
        technical_details=step.technical_details,
        affected_files=", ".join(step.affected_files) or "(none)",
        safety_checks=", ".join(step.safety_checks) or "(none)",
        history=history,
        question=chat_history[-1].content,
    )
