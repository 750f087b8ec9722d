"""Repository gateway interface.

The analysis pipeline depends on this capability only; concrete hosting
services (GitHub, or a fake in tests) are injected at construction time.
"""

from abc import ABC, abstractmethod

from gitarchitect.models.repository import RepositoryEntry, RepositoryRef

README_NOT_FOUND = "No README found."


class RepositoryGateway(ABC):
    """Read-only access to a hosted repository.

    Implementations raise NotFoundError, RateLimitedError and
    UnreachableError (or a generic GatewayError) from gitarchitect.errors so
    callers can tell the failure kinds apart.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the gateway name (e.g., "github")."""
        ...

    @abstractmethod
    def get_tree(self, repo_id: str, branch: str) -> list[RepositoryEntry]:
        """List every entry of a branch, recursively."""
        ...

    @abstractmethod
    def get_file_content(self, repo_id: str, path: str, branch: str) -> str:
        """Return the text content of one file."""
        ...

    @abstractmethod
    def get_readme(self, repo_id: str, branch: str) -> str:
        """Return README text, or README_NOT_FOUND when the repository has none."""
        ...

    @abstractmethod
    def get_repo_details(self, repo_id: str) -> RepositoryRef:
        """Return repository metadata, including the default branch."""
        ...

    def close(self) -> None:
        """Release any held resources."""
