"""End-to-end maintainability analysis for a GitHub repository."""

import asyncio
import logging

import httpx

from repomaint.analyzers.dispatcher import LLMDispatcher
from repomaint.analyzers.github import GitHubFetcher
from repomaint.analyzers.llm import LLMAnalyzer
from repomaint.analyzers.llm_cache import ResponseCache
from repomaint.analyzers.llm_client import LLMClient
from repomaint.analyzers.scorer import (
    COMMIT_QUALITY_COMMITS,
    DOCUMENTATION_FILES,
    Scorer,
    is_large_repository,
    rating_for,
)
from repomaint.models.schemas import MaintainabilityReport, RepositorySnapshot
from repomaint.monitoring.metrics import MetricsCollector

logger = logging.getLogger(__name__)


class AnalysisPipeline:
    """Orchestrates the full analysis of one repository.

    Pipeline stages:
    1. Fetch repository data from GitHub
    2. Calculate deterministic metrics
    3. Run LLM analysis (if an LLM client is configured)
    4. Assemble the report
    """

    def __init__(
        self,
        github_token: str | None = None,
        llm_client: LLMClient | None = None,
        cache: ResponseCache | None = None,
        metrics: MetricsCollector | None = None,
        llm_timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            github_token: GitHub personal access token.
            llm_client: LLM client; LLM analysis is skipped when None.
            cache: Shared LLM response cache.
            metrics: Collector for run counters and stage timings.
            llm_timeout: Seconds allowed for the batch LLM call before retrying.
            http_client: Optional shared httpx client for GitHub requests.
        """
        self._owns_http_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(timeout=60.0)
        self.github = GitHubFetcher(token=github_token, client=self._http_client)
        self.scorer = Scorer()
        self.metrics = metrics or MetricsCollector()
        self.cache = cache if cache is not None else ResponseCache.create_default()

        self.llm: LLMAnalyzer | None = None
        self._dispatcher: LLMDispatcher | None = None
        if llm_client is not None:
            self._dispatcher = LLMDispatcher(llm_client, timeout=llm_timeout)
            self.llm = LLMAnalyzer(
                llm_client,
                self.github,
                cache=self.cache,
                dispatcher=self._dispatcher,
                metrics=self.metrics,
            )

    async def __aenter__(self) -> "AnalysisPipeline":
        return self

    async def __aexit__(self, *args) -> None:
        """Stop outstanding LLM calls and close the HTTP client."""
        if self._dispatcher is not None:
            await self._dispatcher.shutdown()
        if self._owns_http_client:
            await self._http_client.aclose()

    async def collect_snapshot(self, owner: str, repo: str) -> RepositorySnapshot | None:
        """Fetch everything the metrics need.

        Returns:
            RepositorySnapshot, or None if the repository does not exist.
        """
        repository = await self.github.get_repository(owner, repo)
        if repository is None:
            return None

        commits, contributors, branches = await asyncio.gather(
            self.github.get_recent_commits(owner, repo, COMMIT_QUALITY_COMMITS),
            self.github.get_contributor_count(owner, repo),
            self.github.get_branch_count(owner, repo),
        )

        closed_issues = None
        if repository.has_issues:
            try:
                closed_issues = await self.github.get_closed_issues_count(owner, repo)
            except httpx.HTTPStatusError as e:
                # GitHub answers 422 when paging too deep into huge issue lists
                if e.response.status_code != 422:
                    raise
                logger.warning(f"Large dataset detected for {owner}/{repo}, estimating closed issues")

        documentation_files = None
        if not is_large_repository(repository.stars, repository.forks, repository.open_issues):
            present = await asyncio.gather(
                *(self.github.has_file(owner, repo, name) for name in DOCUMENTATION_FILES)
            )
            documentation_files = dict(zip(DOCUMENTATION_FILES, present))

        self.metrics.update_github_rate_limit(
            self.github.rate_limit_remaining, self.github.rate_limit_total
        )
        return RepositorySnapshot(
            repository=repository,
            recent_commits=commits,
            closed_issues=closed_issues,
            contributor_count=contributors,
            branch_count=branches,
            documentation_files=documentation_files,
        )

    async def analyze(self, owner: str, repo: str) -> MaintainabilityReport | None:
        """Run the full analysis.

        Args:
            owner: Repository owner.
            repo: Repository name.

        Returns:
            MaintainabilityReport, or None if the repository does not exist.
        """
        logger.info(f"Starting maintainability analysis for {owner}/{repo}")

        # Stage 1: Fetch GitHub data
        with self.metrics.time_stage("github"):
            snapshot = await self.collect_snapshot(owner, repo)
        if snapshot is None:
            logger.warning(f"Repository {owner}/{repo} not found")
            return None

        # Stage 2: Deterministic metrics
        with self.metrics.time_stage("metrics"):
            metrics = self.scorer.calculate_metrics(snapshot)
            overall = self.scorer.overall_score(metrics)

        # Stage 3: LLM analysis
        llm_analysis = None
        if self.llm is not None:
            with self.metrics.time_stage("llm"):
                llm_analysis = await self.llm.analyze(owner, repo)

        # Stage 4: Report
        report = MaintainabilityReport(
            repository=f"{owner}/{repo}",
            overall_score=round(overall, 2),
            rating=rating_for(overall),
            metrics=metrics,
            recommendation=self.scorer.recommendation(overall, metrics),
            llm_analysis=llm_analysis,
        )
        logger.info(f"Completed maintainability analysis for {owner}/{repo}: score={overall:.2f}")
        return report
