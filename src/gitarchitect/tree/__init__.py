"""Repository tree filtering and digest rendering."""

from gitarchitect.tree.serializer import (
    EMPTY_REPOSITORY,
    MAX_TREE_LINES,
    TRUNCATION_LINE,
    TreeNode,
    build_hierarchy,
    estimate_tokens,
    file_paths,
    filter_important,
    filter_tree,
    generate_simplified_tree,
    generate_tree_digest,
    normalize_path,
    render_digest,
)

__all__ = [
    "EMPTY_REPOSITORY",
    "MAX_TREE_LINES",
    "TRUNCATION_LINE",
    "TreeNode",
    "build_hierarchy",
    "estimate_tokens",
    "file_paths",
    "filter_important",
    "filter_tree",
    "generate_simplified_tree",
    "generate_tree_digest",
    "normalize_path",
    "render_digest",
]
