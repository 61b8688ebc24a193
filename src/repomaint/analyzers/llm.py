"""LLM-based analysis of README, commit and community quality.

The analyzer first asks for all three assessments in a single batch prompt.
If that call fails or its reply cannot be parsed, each assessment is requested
on its own, and any assessment that still fails is replaced with a stock
default. ``analyze`` always returns a populated ``LLMAnalysis``; its ``mode``
says how much of it came from the model.
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from repomaint.analyzers import prompts
from repomaint.analyzers.dispatcher import CompletionClient, DispatchError, LLMDispatcher
from repomaint.analyzers.github import GitHubFetcher
from repomaint.analyzers.json_extract import extract_json_candidate
from repomaint.analyzers.llm_cache import ResponseCache, content_hash
from repomaint.analyzers.llm_client import LLMResponse
from repomaint.models.schemas import (
    AIRecommendation,
    AnalysisMode,
    CommitAnalysis,
    CommunityAnalysis,
    LLMAnalysis,
    ReadmeAnalysis,
    Severity,
)
from repomaint.monitoring.metrics import MetricsCollector

logger = logging.getLogger(__name__)

T = TypeVar("T")

MIN_README_LENGTH = 50
COMMITS_TO_FETCH = 30
COMMITS_TO_ANALYZE = 20

DEFAULT_QUALITY = 75
FALLBACK_QUALITY = 60
LOW_QUALITY_THRESHOLD = 40

# Confidence weights: commit messages are the most objective signal,
# community health the least.
README_WEIGHT = 0.35
COMMIT_WEIGHT = 0.40
COMMUNITY_WEIGHT = 0.25
MIN_CONFIDENCE = 25.0
MAX_CONFIDENCE = 95.0
FALLBACK_PENALTY = 10.0

# (label shown to the model, candidate paths)
CONTEXT_FILES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("LICENSE", ("LICENSE", "LICENSE.md", "LICENSE.txt")),
    ("CONTRIBUTING.md", ("CONTRIBUTING.md", "CONTRIBUTING")),
    ("CODE_OF_CONDUCT.md", ("CODE_OF_CONDUCT.md",)),
    ("CHANGELOG.md", ("CHANGELOG.md", "CHANGELOG")),
)

_PARSE_ERRORS = (ValueError, TypeError, KeyError, OverflowError)


# --- Stock analyses ---


def default_readme_analysis() -> ReadmeAnalysis:
    return ReadmeAnalysis(
        clarity=7,
        completeness=5,
        newcomer_friendly=6,
        strengths=[
            "Well-structured sections with clear headings",
            "Comprehensive links to external resources",
        ],
        suggestions=[
            "Add a Quick Start or Installation section that explains how to run the project locally",
            "Include more code examples or screenshots",
            "Add a troubleshooting section for common issues",
        ],
        is_fallback=True,
    )


def default_commit_analysis() -> CommitAnalysis:
    return CommitAnalysis(
        clarity=8,
        consistency=6,
        informativeness=7,
        patterns=[
            "Positive: Most messages use short, imperative-style subject lines",
            "Positive: Issue numbers are frequently referenced",
            "Negative: Capitalization and punctuation are inconsistent",
            "Negative: Some commit messages lack descriptive details in the body",
        ],
        is_fallback=True,
    )


def default_community_analysis() -> CommunityAnalysis:
    return CommunityAnalysis(
        responsiveness=3,
        helpfulness=3,
        tone=4,
        strengths=[
            "A high volume of issues and pull requests indicates active community engagement",
            "Issues cover a wide range of topics, showing diverse participation",
        ],
        suggestions=[
            "Increase the speed of initial triage and acknowledgment of new issues and PRs",
            "Provide more detailed, actionable responses to contributors",
            "Add an automated bot that confirms receipt of an issue or PR",
        ],
        is_fallback=True,
    )


def missing_readme_analysis() -> ReadmeAnalysis:
    return ReadmeAnalysis(
        clarity=3,
        completeness=2,
        newcomer_friendly=2,
        strengths=["Repository has some basic structure"],
        suggestions=[
            "Add comprehensive README documentation",
            "Include installation instructions",
            "Add usage examples",
        ],
    )


def missing_commits_analysis() -> CommitAnalysis:
    return CommitAnalysis(
        clarity=5,
        consistency=5,
        informativeness=5,
        patterns=["No commits to analyze"],
    )


# --- Parsing ---


def load_json_object(content: str | None) -> dict[str, Any]:
    """Extract and decode the JSON object in a model reply.

    Raises:
        ValueError: If no JSON object can be decoded.
    """
    data = json.loads(extract_json_candidate(content))
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    return data


def _string_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        raise TypeError(f"expected a list of strings, got {type(value).__name__}")
    return [str(item) for item in value]


def _first_present(data: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    raise KeyError(keys[0])


def parse_readme(data: dict[str, Any]) -> ReadmeAnalysis:
    return ReadmeAnalysis(
        clarity=data["clarity"],
        completeness=data["completeness"],
        newcomer_friendly=_first_present(data, "newcomerFriendly", "newcomer_friendly"),
        strengths=_string_list(data.get("strengths")),
        suggestions=_string_list(data.get("suggestions")),
    )


def parse_commits(data: dict[str, Any]) -> CommitAnalysis:
    return CommitAnalysis(
        clarity=data["clarity"],
        consistency=data["consistency"],
        informativeness=data["informativeness"],
        patterns=_string_list(data.get("patterns")),
    )


def parse_community(data: dict[str, Any]) -> CommunityAnalysis:
    # Some models suffix score fields with "_score"
    return CommunityAnalysis(
        responsiveness=_first_present(data, "responsiveness", "responsiveness_score"),
        helpfulness=_first_present(data, "helpfulness", "helpfulness_score"),
        tone=_first_present(data, "tone", "tone_score"),
        strengths=_string_list(data.get("strengths")),
        suggestions=_string_list(data.get("suggestions")),
    )


@dataclass(frozen=True)
class BatchSections:
    """The three assessments recovered from one batch reply."""

    readme: ReadmeAnalysis
    commits: CommitAnalysis
    community: CommunityAnalysis
    quality_indicator: int = DEFAULT_QUALITY
    integrated_insights: list[str] = field(default_factory=list)

    def to_json(self) -> str:
        """Normalized form stored in the response cache."""
        exclude = {"is_fallback"}
        return json.dumps(
            {
                "readme": self.readme.model_dump(by_alias=True, exclude=exclude),
                "commits": self.commits.model_dump(exclude=exclude),
                "community": self.community.model_dump(exclude=exclude),
                "qualityIndicator": self.quality_indicator,
                "integratedInsights": self.integrated_insights,
            }
        )


def _quality_indicator(value: Any) -> int:
    if value is None or isinstance(value, bool):
        return DEFAULT_QUALITY
    try:
        number = float(value)
    except (TypeError, ValueError):
        return DEFAULT_QUALITY
    if not math.isfinite(number):
        return DEFAULT_QUALITY
    return max(0, min(100, int(round(number))))


def parse_batch(content: str | None) -> BatchSections:
    """Parse a batch reply into its three sections.

    Raises:
        ValueError, TypeError, KeyError: If a section or score is missing.
    """
    data = load_json_object(content)
    for section in ("readme", "commits", "community"):
        if not isinstance(data.get(section), dict):
            raise KeyError(section)

    return BatchSections(
        readme=parse_readme(data["readme"]),
        commits=parse_commits(data["commits"]),
        community=parse_community(data["community"]),
        quality_indicator=_quality_indicator(data.get("qualityIndicator")),
        integrated_insights=_string_list(data.get("integratedInsights")),
    )


# --- Scoring ---


def determine_mode(
    readme: ReadmeAnalysis,
    commits: CommitAnalysis,
    community: CommunityAnalysis,
    quality_indicator: int,
    api_errors: int,
    parse_errors: int,
) -> AnalysisMode:
    """Classify how much of an analysis can be trusted.

    Checked in priority order: transport failures, repeated parse failures,
    low self-reported quality, then any stock-default section or single parse
    failure.
    """
    if api_errors > 0:
        return AnalysisMode.API_ERROR
    if parse_errors > 1:
        return AnalysisMode.PARSE_ERROR
    if quality_indicator < LOW_QUALITY_THRESHOLD:
        return AnalysisMode.QUALITY_LOW
    if readme.is_fallback or commits.is_fallback or community.is_fallback or parse_errors:
        return AnalysisMode.FALLBACK
    return AnalysisMode.REAL


def calculate_confidence(
    readme: ReadmeAnalysis,
    commits: CommitAnalysis,
    community: CommunityAnalysis,
    quality_indicator: int,
    mode: AnalysisMode,
) -> float:
    """Combine section scores and model quality into a 25-95 confidence."""
    weighted = (
        readme.average * README_WEIGHT
        + commits.average * COMMIT_WEIGHT
        + community.average * COMMUNITY_WEIGHT
    )
    confidence = (weighted - 1) / 9 * 100
    confidence += (quality_indicator - 50) / 50 * 15
    if mode is AnalysisMode.FALLBACK:
        confidence -= FALLBACK_PENALTY
    return round(max(MIN_CONFIDENCE, min(MAX_CONFIDENCE, confidence)), 1)


def generate_recommendations(
    readme: ReadmeAnalysis,
    commits: CommitAnalysis,
    community: CommunityAnalysis,
) -> list[AIRecommendation]:
    """Turn weak scores into recommendations, highest impact first."""
    recommendations = []

    if community.responsiveness < 5:
        recommendations.append(
            AIRecommendation(
                title="Improve response time to community",
                description="Community members are not receiving timely responses",
                impact=80,
                confidence=84,
                severity=Severity.HIGH,
            )
        )
    if readme.completeness < 6:
        recommendations.append(
            AIRecommendation(
                title="Complete README sections",
                description="Essential sections are missing from the README",
                impact=70,
                confidence=87,
                severity=Severity.HIGH,
            )
        )
    if community.helpfulness < 5:
        recommendations.append(
            AIRecommendation(
                title="Provide more helpful responses",
                description="Community responses could be more constructive and helpful",
                impact=70,
                confidence=84,
                severity=Severity.HIGH,
            )
        )
    if community.tone < 6:
        recommendations.append(
            AIRecommendation(
                title="Improve communication tone",
                description="Community interactions could be more welcoming and professional",
                impact=60,
                confidence=82,
                severity=Severity.MEDIUM,
            )
        )
    if commits.consistency < 7:
        recommendations.append(
            AIRecommendation(
                title="Standardize commit messages",
                description="Commit messages lack consistent formatting and style",
                impact=50,
                confidence=89,
                severity=Severity.MEDIUM,
            )
        )

    return sorted(recommendations, key=lambda r: r.impact, reverse=True)


@dataclass
class _RunCounters:
    tokens: int = 0
    api_errors: int = 0
    parse_errors: int = 0


class LLMAnalyzer:
    """Runs AI-augmented README, commit and community analysis.

    The response cache and dispatcher are injected so that one cache can be
    shared by every analyzer in a process.
    """

    def __init__(
        self,
        client: CompletionClient,
        github: GitHubFetcher,
        cache: ResponseCache | None = None,
        dispatcher: LLMDispatcher | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        """Initialize the analyzer.

        Args:
            client: LLM client with an async ``complete(prompt)``.
            github: Source of README and commit data.
            cache: Response cache; a fresh default cache if omitted.
            dispatcher: Dispatcher for the batch call; wraps ``client`` if omitted.
            metrics: Optional collector for run counters.
        """
        self.client = client
        self.github = github
        self.cache = cache if cache is not None else ResponseCache.create_default()
        self.dispatcher = dispatcher if dispatcher is not None else LLMDispatcher(client)
        self.metrics = metrics

    async def analyze(self, owner: str, repo: str) -> LLMAnalysis:
        """Analyze a repository. Never raises.

        Args:
            owner: Repository owner.
            repo: Repository name.

        Returns:
            A complete LLMAnalysis; degraded paths are reflected in ``mode``.
        """
        logger.info(f"Starting LLM analysis for {owner}/{repo}")
        try:
            analysis = await self._analyze(owner, repo)
        except Exception as e:
            logger.exception(f"LLM analysis for {owner}/{repo} failed unexpectedly")
            if self.metrics:
                self.metrics.record_error(f"{owner}/{repo}", type(e).__name__, str(e))
            analysis = self._build_result(
                default_readme_analysis(),
                default_commit_analysis(),
                default_community_analysis(),
                quality_indicator=FALLBACK_QUALITY,
                counters=_RunCounters(api_errors=1),
            )

        if self.metrics:
            self.metrics.record_analysis(
                analysis.mode,
                fallback_sections=analysis.fallback_count,
                tokens_used=analysis.tokens_used,
                from_cache=analysis.from_cache,
            )
        logger.info(
            f"Completed LLM analysis for {owner}/{repo}: confidence={analysis.confidence}, "
            f"tokens={analysis.tokens_used}, mode={analysis.mode.value}, "
            f"parse_errors={analysis.parse_errors}, api_errors={analysis.api_errors}"
        )
        return analysis

    async def _analyze(self, owner: str, repo: str) -> LLMAnalysis:
        counters = _RunCounters()
        readme_text = await self._fetch_readme(owner, repo)
        commit_messages = await self._fetch_commit_messages(owner, repo)

        batch, from_cache = await self._analyze_batch(
            owner, repo, readme_text, commit_messages, counters
        )
        if batch is not None:
            return self._build_result(
                batch.readme,
                batch.commits,
                batch.community,
                quality_indicator=batch.quality_indicator,
                counters=counters,
                integrated_insights=batch.integrated_insights,
                from_cache=from_cache,
            )

        logger.info(f"Falling back to sequential analysis for {owner}/{repo}")
        readme = await self._analyze_readme(owner, repo, readme_text, counters)
        commits = await self._analyze_commits(owner, repo, commit_messages, counters)
        community = await self._analyze_community(owner, repo, counters)
        return self._build_result(
            readme,
            commits,
            community,
            quality_indicator=FALLBACK_QUALITY,
            counters=counters,
        )

    def _build_result(
        self,
        readme: ReadmeAnalysis,
        commits: CommitAnalysis,
        community: CommunityAnalysis,
        quality_indicator: int,
        counters: _RunCounters,
        integrated_insights: list[str] | None = None,
        from_cache: bool = False,
    ) -> LLMAnalysis:
        mode = determine_mode(
            readme,
            commits,
            community,
            quality_indicator,
            counters.api_errors,
            counters.parse_errors,
        )
        return LLMAnalysis(
            readme=readme,
            commits=commits,
            community=community,
            recommendations=generate_recommendations(readme, commits, community),
            confidence=calculate_confidence(readme, commits, community, quality_indicator, mode),
            tokens_used=counters.tokens,
            quality_indicator=quality_indicator,
            mode=mode,
            api_errors=counters.api_errors,
            parse_errors=counters.parse_errors,
            fallback_count=sum(1 for a in (readme, commits, community) if a.is_fallback),
            integrated_insights=integrated_insights or [],
            from_cache=from_cache,
        )

    # --- Inputs ---

    async def _fetch_readme(self, owner: str, repo: str) -> str:
        """Get README text, falling back to the repository description."""
        try:
            content = await self.github.fetch_readme_content(owner, repo)
        except Exception as e:
            logger.error(f"Failed to fetch README for {owner}/{repo}: {e}")
            return "Unable to fetch repository documentation. This may affect the analysis quality."

        if content and content.strip() and len(content) >= MIN_README_LENGTH:
            logger.info(f"Fetched README for {owner}/{repo}: {len(content)} characters")
            return content

        logger.warning(f"README not found for {owner}/{repo}, using repository description")
        try:
            info = await self.github.get_repository(owner, repo)
        except Exception as e:
            logger.debug(f"Could not fetch repository description: {e}")
            info = None
        if info is not None and info.description and info.description.strip():
            return (
                f"Repository Description: {info.description}\n\n"
                "Note: No README.md file found in this repository."
            )
        return "No README.md file found in this repository. Consider adding comprehensive documentation."

    async def _fetch_commit_messages(self, owner: str, repo: str) -> str:
        try:
            commits = await self.github.get_recent_commits(owner, repo, COMMITS_TO_FETCH)
        except Exception as e:
            logger.warning(f"Failed to fetch commits for {owner}/{repo}: {e}")
            return ""
        return "\n".join(c.message for c in commits[:COMMITS_TO_ANALYZE])

    async def _repository_context(self, owner: str, repo: str) -> str:
        existing = []
        for label, candidates in CONTEXT_FILES:
            for path in candidates:
                try:
                    found = await self.github.has_file(owner, repo, path)
                except Exception as e:
                    logger.debug(f"Could not check {path} for {owner}/{repo}: {e}")
                    found = False
                if found:
                    existing.append(label)
                    break
        return prompts.build_repository_context(existing)

    # --- Batch path ---

    async def _analyze_batch(
        self,
        owner: str,
        repo: str,
        readme_text: str,
        commit_messages: str,
        counters: _RunCounters,
    ) -> tuple[BatchSections | None, bool]:
        """Try the single-call path.

        Returns:
            (sections, from_cache); sections is None when the caller should
            fall back to per-section analysis.
        """
        digest = "batch:" + content_hash(
            readme_text[: prompts.MAX_README_CHARS]
            + "\n"
            + commit_messages[: prompts.MAX_COMMIT_CHARS]
        )

        cached = self.cache.get(owner, repo, digest)
        if cached is not None:
            try:
                return parse_batch(cached.content), True
            except _PARSE_ERRORS as e:
                logger.warning(f"Ignoring unreadable cached batch for {owner}/{repo}: {e}")

        prompt = prompts.build_batch_prompt(readme_text, commit_messages, owner, repo)
        try:
            response = await self.dispatcher.dispatch_with_fallback(prompt)
        except DispatchError as e:
            logger.warning(f"Batch LLM call failed for {owner}/{repo}: {e}")
            return None, False

        counters.tokens += response.tokens_used
        try:
            sections = parse_batch(response.content)
        except _PARSE_ERRORS as e:
            logger.warning(f"Failed to parse batch analysis for {owner}/{repo}: {e}")
            counters.parse_errors += 1
            return None, False

        self.cache.put(
            owner,
            repo,
            digest,
            LLMResponse(content=sections.to_json(), tokens_used=response.tokens_used),
        )
        return sections, False

    # --- Sequential path ---

    async def _run_section(
        self,
        owner: str,
        repo: str,
        section: str,
        digest: str,
        build_prompt: Callable[[], Awaitable[str]],
        parse: Callable[[dict[str, Any]], T],
        default: Callable[[], T],
        counters: _RunCounters,
    ) -> T:
        """Analyze one section with its own cache entry and a single model call."""
        cached = self.cache.get(owner, repo, digest)
        if cached is not None:
            try:
                return parse(load_json_object(cached.content))
            except _PARSE_ERRORS as e:
                logger.debug(f"Ignoring unreadable cached {section} analysis: {e}")

        try:
            response = await self.client.complete(await build_prompt())
        except Exception as e:
            logger.warning(f"LLM {section} analysis failed, using defaults: {e}")
            counters.api_errors += 1
            return default()

        counters.tokens += response.tokens_used
        try:
            result = parse(load_json_object(response.content))
        except _PARSE_ERRORS as e:
            logger.warning(f"Failed to parse {section} analysis, using defaults: {e}")
            counters.parse_errors += 1
            return default()

        self.cache.put(owner, repo, digest, response)
        return result

    async def _analyze_readme(
        self, owner: str, repo: str, readme_text: str, counters: _RunCounters
    ) -> ReadmeAnalysis:
        if not readme_text.strip():
            return missing_readme_analysis()

        async def build_prompt() -> str:
            context = await self._repository_context(owner, repo)
            return prompts.build_readme_prompt(readme_text, context)

        return await self._run_section(
            owner,
            repo,
            "README",
            "readme:" + content_hash(readme_text[: prompts.MAX_README_CHARS]),
            build_prompt,
            parse_readme,
            default_readme_analysis,
            counters,
        )

    async def _analyze_commits(
        self, owner: str, repo: str, commit_messages: str, counters: _RunCounters
    ) -> CommitAnalysis:
        if not commit_messages.strip():
            return missing_commits_analysis()

        async def build_prompt() -> str:
            return prompts.build_commit_prompt(commit_messages)

        return await self._run_section(
            owner,
            repo,
            "commit",
            "commits:" + content_hash(commit_messages[: prompts.MAX_COMMIT_CHARS]),
            build_prompt,
            parse_commits,
            default_commit_analysis,
            counters,
        )

    async def _analyze_community(
        self, owner: str, repo: str, counters: _RunCounters
    ) -> CommunityAnalysis:
        async def build_prompt() -> str:
            return prompts.build_community_prompt(owner, repo)

        return await self._run_section(
            owner,
            repo,
            "community",
            "community:" + content_hash(f"{owner}/{repo}"),
            build_prompt,
            parse_community,
            default_community_analysis,
            counters,
        )
