"""Read-only GitHub REST API client."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

import httpx

from .errors import GitHubAPIError
from .settings import Settings

logger = logging.getLogger("aiworkflow.github")

GITHUB_API_URL = "https://api.github.com"
PER_PAGE = 100


class GitHubClient:
    def __init__(
        self,
        owner: str,
        repo: str,
        token: Optional[str] = None,
        base_url: str = GITHUB_API_URL,
        client: httpx.Client | None = None,
    ):
        self.owner = owner
        self.repo = repo
        self.base_url = base_url.rstrip("/")
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "ai-workflow-kit",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = client or httpx.Client(base_url=self.base_url, headers=headers, timeout=10.0)
        if client is not None:
            self._client.headers.update(headers)

    @classmethod
    def from_settings(cls, settings: Settings, client: httpx.Client | None = None) -> "GitHubClient":
        """Build a client from GITHUB_TOKEN and GITHUB_OWNER/GITHUB_REPO (or GITHUB_REPOSITORY)."""
        if not settings.github_token:
            raise GitHubAPIError("GITHUB_TOKEN is not set")
        slug = settings.repository_slug()
        if slug is None:
            raise GitHubAPIError("Set GITHUB_OWNER and GITHUB_REPO, or GITHUB_REPOSITORY=owner/repo")
        owner, repo = slug
        return cls(owner, repo, token=settings.github_token, client=client)

    @property
    def client(self) -> httpx.Client:
        return self._client

    @property
    def repo_path(self) -> str:
        return f"/repos/{self.owner}/{self.repo}"

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "GitHubClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        try:
            response = self.client.get(path, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise GitHubAPIError(f"GitHub API {path} returned {status}", status_code=status) from exc
        except httpx.HTTPError as exc:
            raise GitHubAPIError(f"GitHub API {path} request failed: {exc}") from exc
        return response.json()

    def paginate(self, path: str, params: Optional[Dict[str, Any]] = None, max_pages: Optional[int] = None) -> Iterator[Dict[str, Any]]:
        """Yield items page by page (100 per page) until a short page is returned."""
        page = 1
        while max_pages is None or page <= max_pages:
            items = self.get(path, {**(params or {}), "per_page": PER_PAGE, "page": page})
            if not isinstance(items, list):
                raise GitHubAPIError(f"GitHub API {path} did not return a list")
            logger.debug(f"GET {path} page {page}: {len(items)} items")
            yield from items
            if len(items) < PER_PAGE:
                return
            page += 1

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------

    def list_issues(
        self,
        state: str = "all",
        since: Optional[str] = None,
        labels: Optional[str] = None,
        include_pulls: bool = False,
        max_pages: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"state": state}
        if since:
            params["since"] = since
        if labels:
            params["labels"] = labels
        issues = self.paginate(f"{self.repo_path}/issues", params, max_pages)
        return [i for i in issues if include_pulls or "pull_request" not in i]

    def list_pulls(self, state: str = "all", max_pages: Optional[int] = None) -> List[Dict[str, Any]]:
        return list(self.paginate(
            f"{self.repo_path}/pulls",
            {"state": state, "sort": "updated", "direction": "desc"},
            max_pages,
        ))

    def get_pull(self, number: int) -> Dict[str, Any]:
        return self.get(f"{self.repo_path}/pulls/{number}")

    def list_reviews(self, number: int) -> List[Dict[str, Any]]:
        return list(self.paginate(f"{self.repo_path}/pulls/{number}/reviews"))

    def list_commits(
        self,
        since: Optional[str] = None,
        until: Optional[str] = None,
        max_pages: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        params = {k: v for k, v in {"since": since, "until": until}.items() if v}
        return list(self.paginate(f"{self.repo_path}/commits", params, max_pages))


def parse_github_time(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp as returned by the API (``2024-01-31T12:00:00Z``)."""
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def days_between(start: Optional[str], end: Optional[str]) -> float:
    started, ended = parse_github_time(start), parse_github_time(end)
    if started is None or ended is None:
        return 0.0
    return (ended - started).total_seconds() / 86400
