"""
Tests for the GitHub data fetcher.
"""

import base64

import httpx
import pytest

from repomaint.analyzers.github import GitHubFetcher


def _fetcher(handler, token: str | None = "ghp_test") -> GitHubFetcher:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GitHubFetcher(token=token, client=http)


REPO_JSON = {
    "name": "widget",
    "full_name": "acme/widget",
    "description": "Widgets for everyone",
    "stargazers_count": 120,
    "forks_count": 14,
    "open_issues_count": 9,
    "has_issues": True,
    "has_wiki": True,
    "default_branch": "main",
    "size": 2048,
    "updated_at": "2024-05-01T12:00:00Z",
}


class TestGetRepository:
    """Test repository lookup."""

    @pytest.mark.asyncio
    async def test_repository_fields(self):
        """Test repository JSON maps onto RepositoryInfo."""

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/repos/acme/widget"
            assert request.headers["Authorization"] == "Bearer ghp_test"
            return httpx.Response(
                200,
                json=REPO_JSON,
                headers={"X-RateLimit-Remaining": "4999", "X-RateLimit-Limit": "5000"},
            )

        fetcher = _fetcher(handler)
        info = await fetcher.get_repository("acme", "widget")

        assert info.full_name == "acme/widget"
        assert info.stars == 120
        assert info.forks == 14
        assert info.open_issues == 9
        assert info.updated_at.year == 2024
        assert fetcher.rate_limit_remaining == 4999

    @pytest.mark.asyncio
    async def test_not_found(self):
        """Test a 404 yields None."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"message": "Not Found"})

        assert await _fetcher(handler).get_repository("acme", "missing") is None

    @pytest.mark.asyncio
    async def test_server_error_raises(self):
        """Test other error statuses propagate as httpx errors."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, json={"message": "boom"})

        with pytest.raises(httpx.HTTPStatusError):
            await _fetcher(handler).get_repository("acme", "widget")

    @pytest.mark.asyncio
    async def test_no_token_no_auth_header(self, monkeypatch):
        """Test requests are anonymous without a token."""
        monkeypatch.delenv("GITHUB_TOKEN", raising=False)

        def handler(request: httpx.Request) -> httpx.Response:
            assert "Authorization" not in request.headers
            return httpx.Response(200, json=REPO_JSON)

        assert await _fetcher(handler, token=None).get_repository("acme", "widget") is not None


class TestCollections:
    """Test list endpoints."""

    @pytest.mark.asyncio
    async def test_recent_commits(self):
        """Test commits are parsed newest first and limited to count."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json=[
                    {
                        "sha": f"sha{i}",
                        "commit": {
                            "message": f"feat: change {i}",
                            "author": {"name": "dev", "date": "2024-05-01T12:00:00Z"},
                        },
                    }
                    for i in range(5)
                ],
            )

        commits = await _fetcher(handler).get_recent_commits("acme", "widget", count=3)

        assert [c.sha for c in commits] == ["sha0", "sha1", "sha2"]
        assert commits[0].message == "feat: change 0"
        assert commits[0].date is not None

    @pytest.mark.asyncio
    async def test_issue_count_excludes_pull_requests(self):
        """Test pull requests returned by the issues endpoint are not counted."""

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["state"] == "closed"
            return httpx.Response(
                200,
                json=[{"number": 1}, {"number": 2, "pull_request": {}}, {"number": 3}],
            )

        assert await _fetcher(handler).get_closed_issues_count("acme", "widget") == 2

    @pytest.mark.asyncio
    async def test_pagination(self):
        """Test full pages are followed until a short page."""
        pages = {"1": [{"number": n} for n in range(100)], "2": [{"number": 100}]}

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=pages.get(request.url.params["page"], []))

        assert await _fetcher(handler).get_open_issues_count("acme", "widget") == 101

    @pytest.mark.asyncio
    async def test_branch_and_contributor_counts(self):
        """Test branch and contributor counts read a single page."""

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/branches"):
                return httpx.Response(200, json=[{"name": "main"}, {"name": "dev"}])
            return httpx.Response(200, json=[{"login": "a"}, {"login": "b"}, {"login": "c"}])

        fetcher = _fetcher(handler)
        assert await fetcher.get_branch_count("acme", "widget") == 2
        assert await fetcher.get_contributor_count("acme", "widget") == 3


class TestFiles:
    """Test file lookups."""

    @pytest.mark.asyncio
    async def test_has_file(self):
        """Test presence follows the contents endpoint status."""

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/LICENSE"):
                return httpx.Response(200, json={"name": "LICENSE"})
            return httpx.Response(404)

        fetcher = _fetcher(handler)
        assert await fetcher.has_file("acme", "widget", "LICENSE") is True
        assert await fetcher.has_file("acme", "widget", "CHANGELOG.md") is False

    @pytest.mark.asyncio
    async def test_has_file_error_is_false(self):
        """Test an error while checking a file counts as absent."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(403, json={"message": "rate limited"})

        assert await _fetcher(handler).has_file("acme", "widget", "LICENSE") is False

    @pytest.mark.asyncio
    async def test_readme_content_decoded(self):
        """Test README content is base64-decoded."""
        encoded = base64.b64encode("# Widget\n\nHello".encode()).decode()

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"content": encoded, "encoding": "base64"})

        assert await _fetcher(handler).fetch_readme_content("acme", "widget") == "# Widget\n\nHello"

    @pytest.mark.asyncio
    async def test_readme_missing(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404)

        assert await _fetcher(handler).fetch_readme_content("acme", "widget") is None
