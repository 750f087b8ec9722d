"""Repository tree filtering and bounded digest rendering.

The digest is the only view of the whole repository a model ever receives,
so its size is capped: at most ``max_lines`` node lines plus a single
truncation line, whatever the repository size.
"""

import logging
import math
from collections import Counter
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from itertools import islice

from gitarchitect.models.repository import EntryKind, RepositoryEntry

logger = logging.getLogger(__name__)

MAX_TREE_LINES = 500
MAX_FILE_SIZE_BYTES = 100 * 1024
EMPTY_REPOSITORY = "Empty repository"
TRUNCATION_LINE = "[... truncated for token limit ...]"

# Directory names whose contents are generated, vendored or tooling state
IGNORED_DIRECTORIES = frozenset({
    ".git",
    ".hg",
    ".svn",
    ".idea",
    ".vscode",
    ".next",
    ".nuxt",
    ".cache",
    ".gradle",
    ".terraform",
    ".tox",
    ".venv",
    ".mypy_cache",
    ".pytest_cache",
    ".ruff_cache",
    "__pycache__",
    "node_modules",
    "bower_components",
    "vendor",
    "dist",
    "build",
    "out",
    "target",
    "coverage",
    "venv",
    "env",
    "site-packages",
})

# Extensions that carry no reviewable source text
BINARY_EXTENSIONS = frozenset({
    # images
    ".png", ".jpg", ".jpeg", ".gif", ".bmp", ".ico", ".icns", ".webp", ".tiff", ".psd",
    # fonts
    ".ttf", ".otf", ".woff", ".woff2", ".eot",
    # archives
    ".zip", ".tar", ".gz", ".tgz", ".bz2", ".xz", ".7z", ".rar", ".jar", ".war",
    # compiled objects
    ".exe", ".dll", ".so", ".dylib", ".a", ".o", ".obj", ".lib", ".class", ".pyc",
    ".pyo", ".wasm", ".bin",
    # media
    ".mp3", ".mp4", ".wav", ".ogg", ".flac", ".avi", ".mov", ".mkv", ".webm",
    # documents
    ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx",
    # data blobs
    ".db", ".sqlite", ".sqlite3", ".pkl", ".parquet", ".npy", ".h5",
    # minified bundles and source maps
    ".map", ".min.js", ".min.css",
})

# Suffixes of files worth a model's attention during file selection
IMPORTANT_SUFFIXES = (
    ".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs",
    ".py", ".java", ".kt", ".go", ".rs", ".rb", ".php", ".cs", ".swift",
    ".cpp", ".cc", ".c", ".h", ".hpp",
    ".vue", ".svelte",
    ".json", ".yml", ".yaml", ".toml", ".ini", ".cfg",
    ".md", ".txt", ".rst",
    "dockerfile", "makefile",
)
IMPORTANT_BASENAMES = frozenset({
    "package.json",
    "requirements.txt",
    "go.mod",
    "cargo.toml",
    "gemfile",
    "pom.xml",
    "build.gradle",
})


@dataclass
class TreeNode:
    """Node of the repository hierarchy.

    Attributes:
        name: Path component ("" for the root)
        kind: File or directory
        children: Child nodes keyed by name
    """

    name: str
    kind: EntryKind = EntryKind.DIRECTORY
    children: dict[str, "TreeNode"] = field(default_factory=dict)

    @property
    def is_directory(self) -> bool:
        """Return True for directory nodes."""
        return self.kind == EntryKind.DIRECTORY

    def sorted_children(self) -> list["TreeNode"]:
        """Children with directories first, then case-insensitive name order."""
        return sorted(
            self.children.values(),
            key=lambda node: (not node.is_directory, node.name.lower(), node.name),
        )


def normalize_path(path: str) -> str:
    """Normalize a repository path to slash-separated, root-relative form.

    Strips surrounding whitespace and quotes, leading "./" and "/" segments.
    """
    normalized = path.strip().strip("\"'`").replace("\\", "/")
    while normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized.lstrip("/")


def build_hierarchy(entries: Iterable[RepositoryEntry]) -> TreeNode:
    """Build a nested tree from a flat entry list.

    Intermediate directories are created implicitly. Duplicate paths merge,
    the last entry deciding the node kind; any node with children is a
    directory.

    Args:
        entries: Repository entries

    Returns:
        Root node (unnamed directory)
    """
    root = TreeNode(name="")

    for entry in entries:
        parts = [part for part in normalize_path(entry.path).split("/") if part]
        if not parts:
            continue

        node = root
        for part in parts[:-1]:
            child = node.children.get(part)
            if child is None:
                child = TreeNode(name=part)
                node.children[part] = child
            child.kind = EntryKind.DIRECTORY
            node = child

        leaf_name = parts[-1]
        leaf = node.children.get(leaf_name)
        if leaf is None:
            node.children[leaf_name] = TreeNode(name=leaf_name, kind=entry.kind)
        elif not leaf.children:
            leaf.kind = entry.kind

    return root


def _iter_lines(node: TreeNode, prefix: str = "") -> Iterator[str]:
    """Yield rendered lines for the children of a node, depth-first."""
    children = node.sorted_children()
    for index, child in enumerate(children):
        is_last = index == len(children) - 1
        connector = "└── " if is_last else "├── "
        suffix = "/" if child.is_directory else ""
        yield f"{prefix}{connector}{child.name}{suffix}"
        if child.children:
            yield from _iter_lines(child, prefix + ("    " if is_last else "│   "))


def render_digest(root: TreeNode, max_lines: int = MAX_TREE_LINES) -> str:
    """Render a tree as bounded text.

    Args:
        root: Root node from build_hierarchy
        max_lines: Maximum number of node lines (capped at MAX_TREE_LINES)

    Returns:
        Tree text with at most max_lines node lines plus one truncation line
    """
    if not root.children:
        return EMPTY_REPOSITORY

    max_lines = min(max_lines, MAX_TREE_LINES)
    lines_iter = _iter_lines(root)
    lines = list(islice(lines_iter, max_lines))
    if next(lines_iter, None) is not None:
        lines.append(TRUNCATION_LINE)
    return "\n".join(lines)


def generate_tree_digest(
    entries: Iterable[RepositoryEntry],
    max_lines: int = MAX_TREE_LINES,
) -> str:
    """Render an entry list as a bounded tree digest.

    Args:
        entries: Repository entries (typically already filtered)
        max_lines: Maximum number of node lines

    Returns:
        Tree digest, or EMPTY_REPOSITORY for empty input
    """
    entries = list(entries)
    if not entries:
        return EMPTY_REPOSITORY
    digest = render_digest(build_hierarchy(entries), max_lines=max_lines)
    logger.debug(
        "Rendered tree digest for %d entries (~%d tokens)",
        len(entries),
        estimate_tokens(digest),
    )
    return digest


def _is_ignored_path(path: str, is_file: bool) -> bool:
    """Return True if any directory segment of a path is ignored."""
    parts = path.split("/")
    if is_file:
        parts = parts[:-1]
    return any(part in IGNORED_DIRECTORIES for part in parts)


def _has_binary_extension(name: str) -> bool:
    """Return True if a basename ends with a binary or media extension."""
    lower_name = name.lower()
    return any(lower_name.endswith(ext) for ext in BINARY_EXTENSIONS)


def filter_tree(
    entries: Iterable[RepositoryEntry],
    max_file_size: int = MAX_FILE_SIZE_BYTES,
) -> list[RepositoryEntry]:
    """Remove build artifacts, binary files and oversized files.

    Files with unknown size are kept.

    Args:
        entries: Raw repository entries
        max_file_size: Size limit in bytes for file entries

    Returns:
        Filtered entries in input order
    """
    kept: list[RepositoryEntry] = []
    dropped = 0

    for entry in entries:
        path = normalize_path(entry.path)
        if not path or _is_ignored_path(path, entry.is_file):
            dropped += 1
            continue
        if entry.is_file:
            if _has_binary_extension(entry.name):
                dropped += 1
                continue
            if entry.size_bytes is not None and entry.size_bytes > max_file_size:
                dropped += 1
                continue
        kept.append(entry)

    logger.debug("Filtered tree: kept %d entries, dropped %d", len(kept), dropped)
    return kept


def is_important_file(path: str) -> bool:
    """Check whether a file path is source, configuration or documentation."""
    name = normalize_path(path).rsplit("/", 1)[-1].lower()
    if not name:
        return False
    return (
        name.endswith(IMPORTANT_SUFFIXES)
        or name in IMPORTANT_BASENAMES
        or "readme" in name
    )


def filter_important(entries: Iterable[RepositoryEntry]) -> list[RepositoryEntry]:
    """Keep only files likely to matter for planning; directories are dropped."""
    return [entry for entry in entries if entry.is_file and is_important_file(entry.path)]


def file_paths(entries: Iterable[RepositoryEntry]) -> set[str]:
    """Return the normalized paths of the file entries."""
    return {normalize_path(entry.path) for entry in entries if entry.is_file}


def generate_simplified_tree(entries: Iterable[RepositoryEntry], limit: int = 50) -> str:
    """Summarize a tree as per-directory file counts, most populated first.

    Args:
        entries: Repository entries
        limit: Maximum number of directories listed

    Returns:
        Summary text
    """
    files = [normalize_path(entry.path) for entry in entries if entry.is_file]
    counts = Counter(path.rsplit("/", 1)[0] if "/" in path else "/" for path in files)

    lines = [f"Repository Summary ({len(files)} files):", ""]
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    for directory, count in ranked[:limit]:
        lines.append(f"  {directory}: {count} file{'s' if count != 1 else ''}")

    if len(counts) > limit:
        lines.append(f"  ... and {len(counts) - limit} more directories")

    return "\n".join(lines)


def estimate_tokens(text: str) -> int:
    """Estimate the token count of text at roughly four characters per token."""
    return math.ceil(len(text) / 4)
