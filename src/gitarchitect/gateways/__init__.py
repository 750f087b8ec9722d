"""Repository gateways."""

from gitarchitect.gateways.base import README_NOT_FOUND, RepositoryGateway
from gitarchitect.gateways.github import GitHubGateway

__all__ = ["README_NOT_FOUND", "GitHubGateway", "RepositoryGateway"]
