"""Repository entities for the hosted repository being planned against.

RepositoryEntry is one item of a repository tree listing; RepositoryRef holds
the repository metadata needed to address it (full name, default branch).
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

# owner/name as accepted by the hosting API
_REPO_ID_RE = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")
_REPO_URL_RE = re.compile(
    r"^(?:https?://)?(?:www\.)?github\.com/([A-Za-z0-9_.-]+)/([A-Za-z0-9_.-]+?)(?:\.git)?(?:[/?#].*)?$"
)


class EntryKind(Enum):
    """Kind of a repository tree entry."""

    FILE = "file"
    DIRECTORY = "directory"


@dataclass(frozen=True)
class RepositoryEntry:
    """Single entry of a repository tree listing.

    Attributes:
        path: Slash-separated path relative to the repository root
        kind: File or directory
        size_bytes: File size in bytes (None when unknown or a directory)
    """

    path: str
    kind: EntryKind = EntryKind.FILE
    size_bytes: int | None = None

    @property
    def is_file(self) -> bool:
        """Return True if this entry is a file."""
        return self.kind == EntryKind.FILE

    @property
    def name(self) -> str:
        """Return the last path component."""
        return self.path.rsplit("/", 1)[-1]

    @classmethod
    def from_github(cls, item: dict[str, Any]) -> "RepositoryEntry | None":
        """Create an entry from a GitHub git-trees API item.

        Args:
            item: Tree item with "path", "type" and optional "size"

        Returns:
            RepositoryEntry, or None for item types that are not files or
            directories (e.g. submodule commits)
        """
        item_type = item.get("type")
        if item_type == "blob":
            kind = EntryKind.FILE
        elif item_type == "tree":
            kind = EntryKind.DIRECTORY
        else:
            return None

        size = item.get("size")
        return cls(
            path=str(item.get("path", "")),
            kind=kind,
            size_bytes=int(size) if isinstance(size, int) else None,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "path": self.path,
            "kind": self.kind.value,
            "size_bytes": self.size_bytes,
        }


@dataclass
class RepositoryRef:
    """Hosted repository metadata.

    Attributes:
        full_name: Repository identifier in owner/name form
        default_branch: Default branch name (None until resolved)
        description: Repository description
        html_url: Browser URL
        language: Primary language reported by the host
        stars: Star count
    """

    full_name: str
    default_branch: str | None = None
    description: str = ""
    html_url: str = ""
    language: str | None = None
    stars: int = 0

    @classmethod
    def from_github(cls, data: dict[str, Any]) -> "RepositoryRef":
        """Create a RepositoryRef from a GitHub repository payload."""
        return cls(
            full_name=str(data.get("full_name", "")),
            default_branch=data.get("default_branch"),
            description=data.get("description") or "",
            html_url=data.get("html_url") or "",
            language=data.get("language"),
            stars=int(data.get("stargazers_count") or 0),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "full_name": self.full_name,
            "default_branch": self.default_branch,
            "description": self.description,
            "html_url": self.html_url,
            "language": self.language,
            "stars": self.stars,
        }


def parse_repo_id(text: str) -> str:
    """Normalize a repository reference to owner/name form.

    Accepts "owner/name" or a github.com URL (with optional .git suffix or
    trailing path).

    Args:
        text: Repository reference

    Returns:
        Repository identifier in owner/name form

    Raises:
        ValueError: If the reference cannot be parsed
    """
    candidate = text.strip().rstrip("/")

    url_match = _REPO_URL_RE.match(candidate)
    if url_match:
        return f"{url_match.group(1)}/{url_match.group(2)}"

    if _REPO_ID_RE.match(candidate):
        return candidate

    raise ValueError(f"Invalid repository reference: '{text}'. Expected owner/name or a GitHub URL")
