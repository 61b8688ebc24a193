"""GitHub REST API access for repository analysis."""

import base64
import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import httpx

from repomaint.models.schemas import CommitInfo, RepositoryInfo

logger = logging.getLogger(__name__)

API_VERSION = "2022-11-28"
PAGE_SIZE = 100
LOW_RATE_LIMIT = 10


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class GitHubFetcher:
    """Reads repository data from the GitHub REST API.

    Anonymous access works but is limited to 60 requests an hour. Pass a
    personal access token, or set GITHUB_TOKEN, for the authenticated limit.
    """

    BASE_URL = "https://api.github.com"

    def __init__(
        self,
        token: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the fetcher.

        Args:
            token: GitHub token; GITHUB_TOKEN is used when omitted.
            client: Shared httpx client. Without one, each call opens and
                closes its own.
        """
        self._token = token or os.environ.get("GITHUB_TOKEN")
        self._client = client

        # Updated from the X-RateLimit-* headers of every response
        self.rate_limit_remaining: int = 5000
        self.rate_limit_total: int = 5000
        self.rate_limit_reset: datetime | None = None

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": API_VERSION,
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[httpx.AsyncClient]:
        """Yield the shared client, or a temporary one closed on exit."""
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=30.0) as client:
            yield client

    def _track_rate_limit(self, response: httpx.Response) -> None:
        headers = response.headers
        if "X-RateLimit-Remaining" in headers:
            self.rate_limit_remaining = int(headers["X-RateLimit-Remaining"])
        if "X-RateLimit-Limit" in headers:
            self.rate_limit_total = int(headers["X-RateLimit-Limit"])
        if "X-RateLimit-Reset" in headers:
            self.rate_limit_reset = datetime.fromtimestamp(
                int(headers["X-RateLimit-Reset"]), tz=timezone.utc
            )
        if self.rate_limit_remaining < LOW_RATE_LIMIT:
            logger.warning(
                f"GitHub rate limit nearly exhausted: {self.rate_limit_remaining}/"
                f"{self.rate_limit_total} remaining"
            )

    async def _get(
        self, client: httpx.AsyncClient, path: str, params: dict | None = None
    ) -> httpx.Response | None:
        """GET a path; None on 404, httpx.HTTPStatusError on other failures."""
        response = await client.get(
            f"{self.BASE_URL}{path}", params=params, headers=self._headers()
        )
        self._track_rate_limit(response)
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response

    async def _fetch(self, path: str, params: dict | None = None) -> dict | list | None:
        async with self._session() as client:
            response = await self._get(client, path, params)
        return None if response is None else response.json()

    async def _fetch_pages(
        self,
        path: str,
        params: dict | None = None,
        max_pages: int = 10,
    ) -> list:
        """Collect list items page by page until a short or empty page."""
        query = {"per_page": PAGE_SIZE, **(params or {})}
        items: list = []
        async with self._session() as client:
            for page in range(1, max_pages + 1):
                response = await self._get(client, path, {**query, "page": page})
                batch = response.json() if response is not None else []
                items.extend(batch)
                if len(batch) < query["per_page"]:
                    break
        return items

    async def get_repository(self, owner: str, repo: str) -> RepositoryInfo | None:
        """Fetch repository metadata.

        Returns:
            RepositoryInfo, or None if the repository does not exist.
        """
        data = await self._fetch(f"/repos/{owner}/{repo}")
        if not isinstance(data, dict):
            return None

        return RepositoryInfo(
            owner=owner,
            name=data.get("name") or repo,
            full_name=data.get("full_name") or f"{owner}/{repo}",
            description=data.get("description"),
            stars=data.get("stargazers_count", 0),
            forks=data.get("forks_count", 0),
            open_issues=data.get("open_issues_count", 0),
            has_issues=data.get("has_issues", True),
            has_wiki=data.get("has_wiki", False),
            default_branch=data.get("default_branch") or "main",
            size=data.get("size", 0),
            updated_at=_parse_timestamp(data.get("updated_at")),
        )

    async def get_recent_commits(self, owner: str, repo: str, count: int = 30) -> list[CommitInfo]:
        """Fetch the newest commits on the default branch, newest first."""
        data = await self._fetch(
            f"/repos/{owner}/{repo}/commits",
            params={"per_page": min(count, PAGE_SIZE)},
        )
        if not isinstance(data, list):
            return []

        commits = []
        for item in data[:count]:
            commit = item.get("commit") or {}
            author = commit.get("author") or {}
            commits.append(
                CommitInfo(
                    sha=item.get("sha", ""),
                    message=commit.get("message", ""),
                    author=author.get("name", ""),
                    date=_parse_timestamp(author.get("date")),
                )
            )
        return commits

    async def has_file(self, owner: str, repo: str, path: str) -> bool:
        """Whether a file exists; lookup errors count as absent."""
        try:
            return await self._fetch(f"/repos/{owner}/{repo}/contents/{path}") is not None
        except httpx.HTTPError as e:
            logger.debug(f"Could not check {path} in {owner}/{repo}: {e}")
            return False

    async def _count_issues(self, owner: str, repo: str, state: str) -> int:
        issues = await self._fetch_pages(f"/repos/{owner}/{repo}/issues", {"state": state})
        # Pull requests are listed as issues too
        return sum(1 for issue in issues if "pull_request" not in issue)

    async def get_open_issues_count(self, owner: str, repo: str) -> int:
        return await self._count_issues(owner, repo, "open")

    async def get_closed_issues_count(self, owner: str, repo: str) -> int:
        return await self._count_issues(owner, repo, "closed")

    async def get_branch_count(self, owner: str, repo: str) -> int:
        return len(await self._fetch_pages(f"/repos/{owner}/{repo}/branches", max_pages=1))

    async def get_contributor_count(self, owner: str, repo: str) -> int:
        return len(await self._fetch_pages(f"/repos/{owner}/{repo}/contributors", max_pages=1))

    async def fetch_readme_content(self, owner: str, repo: str) -> str | None:
        """Fetch and decode the repository README, or None if there is none."""
        readme = await self._fetch(f"/repos/{owner}/{repo}/readme")
        if not isinstance(readme, dict) or not readme.get("content"):
            return None
        try:
            return base64.b64decode(readme["content"]).decode("utf-8")
        except (ValueError, UnicodeDecodeError):
            logger.warning(f"README for {owner}/{repo} is not valid UTF-8 text")
            return None
