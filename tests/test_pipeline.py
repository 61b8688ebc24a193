"""
Tests for the end-to-end analysis pipeline.
"""

import base64

import httpx
import pytest

from repomaint.analyzers.llm_cache import ResponseCache
from repomaint.analyzers.pipeline import AnalysisPipeline
from repomaint.models.schemas import AnalysisMode, Rating
from repomaint.monitoring.metrics import MetricsCollector

from tests.conftest import README_TEXT, FakeLLMClient

REPO_JSON = {
    "name": "widget",
    "full_name": "acme/widget",
    "description": "Widgets for everyone",
    "stargazers_count": 120,
    "forks_count": 14,
    "open_issues_count": 4,
    "has_issues": True,
    "default_branch": "main",
}

COMMITS_JSON = [
    {
        "sha": "a1",
        "commit": {
            "message": "feat: add widget renderer",
            "author": {"name": "dev", "date": "2099-01-01T00:00:00Z"},
        },
    },
    {
        "sha": "b2",
        "commit": {
            "message": "fix: handle empty input",
            "author": {"name": "dev", "date": "2098-12-30T00:00:00Z"},
        },
    },
]


class FakeGitHub:
    """Routes GitHub API paths to canned responses and records what was asked."""

    def __init__(self, repo_json=None, issues_status: int = 200) -> None:
        self.repo_json = repo_json if repo_json is not None else REPO_JSON
        self.issues_status = issues_status
        self.paths: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.paths.append(path)
        base = "/repos/acme/widget"

        if path == base:
            return httpx.Response(200, json=self.repo_json)
        if path == f"{base}/commits":
            return httpx.Response(200, json=COMMITS_JSON)
        if path == f"{base}/contributors":
            return httpx.Response(200, json=[{"login": "a"}, {"login": "b"}])
        if path == f"{base}/branches":
            return httpx.Response(200, json=[{"name": "main"}])
        if path == f"{base}/issues":
            if self.issues_status != 200:
                return httpx.Response(self.issues_status, json={"message": "too many"})
            return httpx.Response(200, json=[{"number": n} for n in range(16)])
        if path == f"{base}/readme":
            content = base64.b64encode(README_TEXT.encode()).decode()
            return httpx.Response(200, json={"content": content})
        if path in (f"{base}/contents/README.md", f"{base}/contents/LICENSE"):
            return httpx.Response(200, json={"type": "file"})
        return httpx.Response(404, json={"message": "Not Found"})


def _pipeline(github: FakeGitHub, **kwargs) -> AnalysisPipeline:
    http = httpx.AsyncClient(transport=httpx.MockTransport(github))
    return AnalysisPipeline(github_token="ghp_test", http_client=http, **kwargs)


class TestAnalysisPipeline:
    """Test AnalysisPipeline.analyze."""

    @pytest.mark.asyncio
    async def test_report_without_llm(self):
        """Test a report with all six metrics and no LLM section."""
        github = FakeGitHub()
        async with _pipeline(github) as pipeline:
            report = await pipeline.analyze("acme", "widget")

        assert report.repository == "acme/widget"
        assert set(report.metrics) == {
            "Documentation",
            "Commit Quality",
            "Activity",
            "Issue Management",
            "Community",
            "Branch Management",
        }
        assert report.metrics["Documentation"].score == 40
        assert report.metrics["Commit Quality"].score == 100
        assert report.metrics["Issue Management"].score == 100
        assert 0 <= report.overall_score <= 100
        assert isinstance(report.rating, Rating)
        assert report.llm_analysis is None

    @pytest.mark.asyncio
    async def test_missing_repository(self):
        """Test an unknown repository yields None."""
        github = FakeGitHub()
        async with _pipeline(github) as pipeline:
            assert await pipeline.analyze("acme", "nothing") is None

    @pytest.mark.asyncio
    async def test_report_with_llm(self, batch_reply_text):
        """Test the LLM stage contributes an analysis to the report."""
        client = FakeLLMClient({"batch": batch_reply_text})
        async with _pipeline(FakeGitHub(), llm_client=client) as pipeline:
            report = await pipeline.analyze("acme", "widget")

        assert report.llm_analysis is not None
        assert report.llm_analysis.mode is AnalysisMode.REAL
        assert client.calls == ["batch"]

    @pytest.mark.asyncio
    async def test_shared_cache_across_runs(self, batch_reply_text):
        """Test a second analysis of the same repository is served from cache."""
        client = FakeLLMClient({"batch": batch_reply_text})
        async with _pipeline(FakeGitHub(), llm_client=client) as pipeline:
            await pipeline.analyze("acme", "widget")
            report = await pipeline.analyze("acme", "widget")

        assert report.llm_analysis.from_cache is True
        assert client.calls == ["batch"]
        assert pipeline.cache.stats().hits == 1

    @pytest.mark.asyncio
    async def test_closed_issue_count_refused(self):
        """Test a 422 on the issue list falls back to an estimate."""
        async with _pipeline(FakeGitHub(issues_status=422)) as pipeline:
            snapshot = await pipeline.collect_snapshot("acme", "widget")

        assert snapshot.closed_issues is None

    @pytest.mark.asyncio
    async def test_issue_server_error_propagates(self):
        """Test other issue-list failures are not swallowed."""
        async with _pipeline(FakeGitHub(issues_status=500)) as pipeline:
            with pytest.raises(httpx.HTTPStatusError):
                await pipeline.collect_snapshot("acme", "widget")

    @pytest.mark.asyncio
    async def test_large_repository_skips_file_checks(self):
        """Test documentation files are not checked for very popular repositories."""
        github = FakeGitHub(repo_json=dict(REPO_JSON, stargazers_count=50_000))
        async with _pipeline(github) as pipeline:
            report = await pipeline.analyze("acme", "widget")

        assert not any("/contents/" in path for path in github.paths)
        assert report.metrics["Documentation"].score == 80

    @pytest.mark.asyncio
    async def test_stage_timings_recorded(self, batch_reply_text):
        """Test each pipeline stage is timed."""
        metrics = MetricsCollector()
        client = FakeLLMClient({"batch": batch_reply_text})
        async with _pipeline(FakeGitHub(), llm_client=client, metrics=metrics) as pipeline:
            await pipeline.analyze("acme", "widget")

        stages = metrics.get_metrics().stages
        assert {name: stats.count for name, stats in stages.items()} == {
            "github": 1,
            "metrics": 1,
            "llm": 1,
        }

    @pytest.mark.asyncio
    async def test_injected_empty_cache_is_used(self, batch_reply_text):
        """Test an empty cache passed in is kept rather than replaced."""
        cache = ResponseCache(max_entries_per_repository=5)
        client = FakeLLMClient({"batch": batch_reply_text})
        async with _pipeline(FakeGitHub(), llm_client=client, cache=cache) as pipeline:
            assert pipeline.cache is cache
            await pipeline.analyze("acme", "widget")

        assert len(cache) == 1
