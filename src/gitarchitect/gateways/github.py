"""GitHub implementation of the repository gateway.

Uses the REST API for metadata, search and recursive tree listings, and the
raw content host for file and README text.
"""

import logging
from typing import Any
from urllib.parse import quote

import httpx

from gitarchitect import __version__
from gitarchitect.errors import GatewayError, NotFoundError, RateLimitedError, UnreachableError
from gitarchitect.gateways.base import README_NOT_FOUND, RepositoryGateway
from gitarchitect.models.repository import RepositoryEntry, RepositoryRef

logger = logging.getLogger(__name__)

GITHUB_API_BASE = "https://api.github.com"
GITHUB_RAW_BASE = "https://raw.githubusercontent.com"

README_CANDIDATES = ("README.md", "readme.md", "README.txt", "Readme.md")


class GitHubGateway(RepositoryGateway):
    """Repository gateway backed by github.com.

    Example:
        >>> with GitHubGateway(token=os.environ.get("GITHUB_TOKEN")) as gh:
        ...     entries = gh.get_tree("octocat/Hello-World", "master")
    """

    def __init__(
        self,
        api_base: str = GITHUB_API_BASE,
        raw_base: str = GITHUB_RAW_BASE,
        token: str | None = None,
        timeout: float = 30.0,
        client: httpx.Client | None = None,
    ) -> None:
        """Initialize the gateway.

        Args:
            api_base: REST API base URL
            raw_base: Raw content base URL
            token: Optional token, sent as a bearer credential
            timeout: Request timeout in seconds
            client: Preconfigured httpx client (tests inject a MockTransport)
        """
        self.api_base = api_base.rstrip("/")
        self.raw_base = raw_base.rstrip("/")

        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": f"gitarchitect/{__version__}",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout, follow_redirects=True)
        self._client.headers.update(headers)

    @property
    def name(self) -> str:
        """Return gateway name."""
        return "github"

    def __enter__(self) -> "GitHubGateway":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        """Close the underlying HTTP client if this gateway created it."""
        if self._owns_client:
            self._client.close()

    def get_repo_details(self, repo_id: str) -> RepositoryRef:
        """Fetch repository metadata.

        Raises:
            NotFoundError: If the repository does not exist
            RateLimitedError: If the API rate limit is exhausted
        """
        response = self._request("GET", f"{self.api_base}/repos/{repo_id}", what="Repository")
        return RepositoryRef.from_github(response.json())

    def search_repos(self, query: str, limit: int = 5) -> list[RepositoryRef]:
        """Search repositories by query, most starred first."""
        if not query.strip():
            return []
        response = self._request(
            "GET",
            f"{self.api_base}/search/repositories",
            params={"q": query, "per_page": limit, "sort": "stars"},
            what="Search",
        )
        items = response.json().get("items") or []
        return [RepositoryRef.from_github(item) for item in items[:limit]]

    def get_tree(self, repo_id: str, branch: str) -> list[RepositoryEntry]:
        """List every file and directory of a branch.

        Raises:
            NotFoundError: If the repository or branch does not exist
            RateLimitedError: If the API rate limit is exhausted
            UnreachableError: If the API cannot be reached
        """
        response = self._request(
            "GET",
            f"{self.api_base}/repos/{repo_id}/git/trees/{quote(branch, safe='')}",
            params={"recursive": "1"},
            what=f"Branch '{branch}' of {repo_id}",
        )
        payload = response.json()
        if payload.get("truncated"):
            logger.warning("GitHub truncated the tree listing for %s@%s", repo_id, branch)

        entries: list[RepositoryEntry] = []
        for item in payload.get("tree") or []:
            entry = RepositoryEntry.from_github(item)
            if entry is not None and entry.path:
                entries.append(entry)

        logger.debug("Fetched %d tree entries for %s@%s", len(entries), repo_id, branch)
        return entries

    def get_file_content(self, repo_id: str, path: str, branch: str) -> str:
        """Fetch the text of one file from the raw content host.

        Raises:
            NotFoundError: If the file does not exist
            RateLimitedError: If the host throttles the request
        """
        response = self._request("GET", self._raw_url(repo_id, branch, path), what=f"File '{path}'")
        return response.text

    def get_readme(self, repo_id: str, branch: str) -> str:
        """Fetch the first README candidate that exists.

        Returns:
            README text, or README_NOT_FOUND
        """
        for candidate in README_CANDIDATES:
            try:
                response = self._request(
                    "GET", self._raw_url(repo_id, branch, candidate), what=candidate
                )
            except NotFoundError:
                continue
            logger.debug("Found %s for %s", candidate, repo_id)
            return response.text
        return README_NOT_FOUND

    def _raw_url(self, repo_id: str, branch: str, path: str) -> str:
        return f"{self.raw_base}/{repo_id}/{quote(branch, safe='')}/{quote(path.lstrip('/'))}"

    def _request(
        self,
        method: str,
        url: str,
        what: str,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Issue one request and translate failures into gateway errors.

        Args:
            method: HTTP method
            url: Absolute URL
            what: Subject named in error messages
            params: Query parameters

        Returns:
            Successful response

        Raises:
            NotFoundError: On 404
            RateLimitedError: On 403 or 429
            UnreachableError: On transport failures
            GatewayError: On any other non-2xx status or HTTP protocol failure
        """
        try:
            response = self._client.request(method, url, params=params)
        except httpx.TransportError as e:
            endpoint = str(httpx.URL(url).copy_with(path="/", query=None))
            raise UnreachableError(endpoint, str(e) or type(e).__name__) from e
        except httpx.HTTPError as e:
            # Redirect loops and undecodable bodies
            raise GatewayError(f"GitHub request failed: {e}") from e

        status = response.status_code
        if status == 404:
            raise NotFoundError(f"{what} not found")
        if status in (403, 429):
            reset = response.headers.get("x-ratelimit-reset")
            hint = f" (resets at epoch {reset})" if reset else ""
            raise RateLimitedError(f"GitHub rate limit exceeded{hint}")
        if not response.is_success:
            raise GatewayError(f"GitHub request failed: {status} {response.reason_phrase}")

        return response
