"""Unit tests for tree filtering and digest rendering."""

from gitarchitect.models.repository import RepositoryEntry
from gitarchitect.tree.serializer import (
    EMPTY_REPOSITORY,
    MAX_TREE_LINES,
    TRUNCATION_LINE,
    build_hierarchy,
    estimate_tokens,
    file_paths,
    filter_important,
    filter_tree,
    generate_simplified_tree,
    generate_tree_digest,
    is_important_file,
    normalize_path,
)
from tests.fixtures import dir_entry, file_entry, sample_entries


class TestNormalizePath:
    """Tests for path normalization."""

    def test_strips_prefixes_and_quotes(self) -> None:
        """Test leading ./ and / and surrounding quotes."""
        assert normalize_path("./src/app.py") == "src/app.py"
        assert normalize_path("/src/app.py") == "src/app.py"
        assert normalize_path(' "src/app.py" ') == "src/app.py"
        assert normalize_path("`src/app.py`") == "src/app.py"

    def test_backslashes(self) -> None:
        """Test Windows-style separators."""
        assert normalize_path("src\\app.py") == "src/app.py"


class TestFilterTree:
    """Tests for artifact, binary and size filtering."""

    def test_removes_vendored_and_binary(self) -> None:
        """Test the sample tree loses node_modules and the image."""
        kept = [entry.path for entry in filter_tree(sample_entries())]

        assert "node_modules" not in kept
        assert "node_modules/react/index.js" not in kept
        assert "logo.png" not in kept
        assert "src/App.jsx" in kept
        assert "package.json" in kept

    def test_removes_nested_ignored_directories(self) -> None:
        """Test that ignored names match at any depth."""
        entries = [
            file_entry("packages/web/dist/bundle.js"),
            file_entry("services/api/__pycache__/app.cpython-312.pyc"),
            file_entry("services/api/app.py"),
        ]

        kept = [entry.path for entry in filter_tree(entries)]

        assert kept == ["services/api/app.py"]

    def test_file_named_like_ignored_directory_kept(self) -> None:
        """Test that only directory segments are matched against ignored names."""
        kept = filter_tree([file_entry("scripts/build")])

        assert len(kept) == 1

    def test_large_files_removed_unknown_sizes_kept(self) -> None:
        """Test the size limit."""
        entries = [
            file_entry("big.json", size=200_000),
            file_entry("small.json", size=10),
            file_entry("unknown.json", size=None),
        ]

        kept = [entry.path for entry in filter_tree(entries, max_file_size=100_000)]

        assert kept == ["small.json", "unknown.json"]

    def test_minified_bundles_removed(self) -> None:
        """Test compound binary-like extensions."""
        kept = filter_tree([file_entry("static/app.min.js"), file_entry("static/app.js")])

        assert [entry.path for entry in kept] == ["static/app.js"]


class TestImportantFiles:
    """Tests for the selection candidate filter."""

    def test_is_important_file(self) -> None:
        """Test source, manifest and readme detection."""
        assert is_important_file("src/App.tsx")
        assert is_important_file("Dockerfile")
        assert is_important_file("go.mod")
        assert is_important_file("docs/README")
        assert not is_important_file("assets/font.ttf")
        assert not is_important_file("LICENSE")

    def test_filter_important_drops_directories(self) -> None:
        """Test that directories are never candidates."""
        important = filter_important([dir_entry("src"), file_entry("src/app.py")])

        assert [entry.path for entry in important] == ["src/app.py"]

    def test_file_paths(self) -> None:
        """Test that only files contribute paths."""
        assert file_paths([dir_entry("src"), file_entry("./src/app.py")]) == {"src/app.py"}


class TestTreeDigest:
    """Tests for bounded digest rendering."""

    def test_digest_layout(self) -> None:
        """Test connectors, directory suffixes and directories-first order."""
        entries = [
            file_entry("README.md"),
            file_entry("src/index.js"),
            file_entry("src/App.jsx"),
            file_entry("package.json"),
        ]

        digest = generate_tree_digest(entries)

        assert digest.split("\n") == [
            "├── src/",
            "│   ├── App.jsx",
            "│   └── index.js",
            "├── package.json",
            "└── README.md",
        ]

    def test_implicit_directories(self) -> None:
        """Test that parents missing from the listing are created."""
        root = build_hierarchy([file_entry("a/b/c.txt")])

        assert root.children["a"].is_directory
        assert root.children["a"].children["b"].children["c.txt"].is_directory is False

    def test_empty_repository(self) -> None:
        """Test the sentinel for an empty tree."""
        assert generate_tree_digest([]) == EMPTY_REPOSITORY

    def test_truncation_bound(self) -> None:
        """Test that a huge tree yields at most max_lines + 1 lines."""
        entries = [file_entry(f"pkg{i // 100}/module_{i}.py") for i in range(2000)]

        digest = generate_tree_digest(entries, max_lines=500)
        lines = digest.split("\n")

        assert len(lines) == 501
        assert lines[-1] == TRUNCATION_LINE

    def test_line_limit_capped(self) -> None:
        """Test that a limit above the ceiling still yields at most 500 node lines."""
        entries = [file_entry(f"pkg{i // 100}/module_{i}.py") for i in range(2000)]

        lines = generate_tree_digest(entries, max_lines=5000).split("\n")

        assert len(lines) == MAX_TREE_LINES + 1
        assert lines[-1] == TRUNCATION_LINE

    def test_exact_fit_not_truncated(self) -> None:
        """Test that a tree of exactly max_lines lines has no truncation line."""
        entries = [file_entry(f"f{i}.txt") for i in range(5)]

        digest = generate_tree_digest(entries, max_lines=5)

        assert TRUNCATION_LINE not in digest
        assert len(digest.split("\n")) == 5

    def test_deterministic(self) -> None:
        """Test that input order does not change the digest."""
        entries = sample_entries()

        assert generate_tree_digest(entries) == generate_tree_digest(list(reversed(entries)))

    def test_digest_of_filtered_sample(self) -> None:
        """Test the end-to-end sample: vendored code never reaches the digest."""
        digest = generate_tree_digest(filter_tree(sample_entries()))

        assert "node_modules" not in digest
        assert "logo.png" not in digest
        assert "App.jsx" in digest


class TestSummaries:
    """Tests for the coarse summaries."""

    def test_simplified_tree(self) -> None:
        """Test per-directory counts, most populated first."""
        entries = [
            file_entry("src/a.py"),
            file_entry("src/b.py"),
            file_entry("README.md"),
            dir_entry("src"),
        ]

        summary = generate_simplified_tree(entries)

        assert summary.split("\n") == [
            "Repository Summary (3 files):",
            "",
            "  src: 2 files",
            "  /: 1 file",
        ]

    def test_simplified_tree_limit(self) -> None:
        """Test that long listings are cut off with a count."""
        entries = [file_entry(f"d{i}/x.py") for i in range(5)]

        summary = generate_simplified_tree(entries, limit=2)

        assert summary.endswith("  ... and 3 more directories")

    def test_estimate_tokens(self) -> None:
        """Test the four-characters-per-token estimate."""
        assert estimate_tokens("") == 0
        assert estimate_tokens("abcde") == 2


def test_entry_from_github_skips_submodules() -> None:
    """Test that commit items in a tree listing are ignored."""
    assert RepositoryEntry.from_github({"path": "lib/sub", "type": "commit"}) is None
    entry = RepositoryEntry.from_github({"path": "a.py", "type": "blob", "size": 12})
    assert entry is not None
    assert entry.size_bytes == 12
