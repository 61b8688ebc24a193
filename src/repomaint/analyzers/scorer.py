"""Score calculator for repository maintainability metrics."""

import logging
import re
from datetime import datetime, timezone

from repomaint.models.schemas import MetricResult, Rating, RepositorySnapshot

logger = logging.getLogger(__name__)

DOCUMENTATION_FILES = (
    "README.md",
    "CONTRIBUTING.md",
    "LICENSE",
    "CODE_OF_CONDUCT.md",
    "CHANGELOG.md",
)

# Repositories this popular almost always document themselves; checking each
# file would cost several API calls.
LARGE_REPO_STARS = 10_000
LARGE_REPO_FORKS = 5_000
LARGE_REPO_OPEN_ISSUES = 1_000
ASSUMED_DOCUMENTATION_SCORE = 80.0

ACTIVITY_COMMITS = 10
COMMIT_QUALITY_COMMITS = 50

CONVENTIONAL_COMMIT_RE = re.compile(
    r"^(feat|fix|docs|style|refactor|test|chore|perf|ci|build)(\(.+\))?:.+",
    re.IGNORECASE,
)


def is_large_repository(stars: int, forks: int, open_issues: int) -> bool:
    return (
        stars >= LARGE_REPO_STARS
        or forks >= LARGE_REPO_FORKS
        or open_issues >= LARGE_REPO_OPEN_ISSUES
    )


def is_good_commit_message(message: str) -> bool:
    """Judge a commit subject line.

    Conventional-commit subjects pass. Otherwise the subject must be at least
    20 characters, capitalized, and not a merge, "update" or WIP commit.
    """
    if not message or not message.strip() or len(message) < 10:
        return False
    if CONVENTIONAL_COMMIT_RE.match(message):
        return True

    lower = message.lower()
    return (
        len(message) >= 20
        and message[0].isupper()
        and not lower.startswith("merge")
        and not lower.startswith("update")
        and "wip" not in lower
    )


def rating_for(score: float) -> Rating:
    if score >= 90:
        return Rating.EXCELLENT
    if score >= 75:
        return Rating.GOOD
    if score >= 60:
        return Rating.FAIR
    if score >= 40:
        return Rating.POOR
    return Rating.CRITICAL


class Scorer:
    """Calculates maintainability metrics from collected repository data.

    Scoring weights (total 100%):
    - Documentation: 20%
    - Issue Management: 20%
    - Commit Quality: 15%
    - Activity: 15%
    - Community: 15%
    - Branch Management: 15%
    """

    WEIGHTS = {
        "Documentation": 0.20,
        "Commit Quality": 0.15,
        "Activity": 0.15,
        "Issue Management": 0.20,
        "Community": 0.15,
        "Branch Management": 0.15,
    }

    def calculate_metrics(
        self,
        snapshot: RepositorySnapshot,
        now: datetime | None = None,
    ) -> dict[str, MetricResult]:
        """Calculate every metric, keyed by metric name."""
        results = [
            self._calculate_documentation(snapshot),
            self._calculate_commit_quality(snapshot),
            self._calculate_activity(snapshot, now),
            self._calculate_issue_management(snapshot),
            self._calculate_community(snapshot),
            self._calculate_branch_management(snapshot),
        ]
        for result in results:
            logger.debug(f"{result.name} score for {snapshot.repository.full_name}: {result.score}")
        return {result.name: result for result in results}

    def overall_score(self, metrics: dict[str, MetricResult]) -> float:
        """Weighted average of metric scores."""
        total_weight = sum(m.weight for m in metrics.values())
        if total_weight <= 0:
            return 0.0
        return sum(m.weighted_score for m in metrics.values()) / total_weight

    def recommendation(self, overall: float, metrics: dict[str, MetricResult]) -> str:
        """One-paragraph verdict naming the metrics that need work."""
        if overall >= 90:
            text = "Excellent repository maintainability! "
        elif overall >= 75:
            text = "Good repository maintainability. "
        elif overall >= 60:
            text = "Fair repository maintainability. "
        else:
            text = "Repository maintainability needs improvement. "

        weak = [m.name for m in metrics.values() if m.score < 60]
        if weak:
            return text + f"Focus on improving: {', '.join(weak)}."
        return text + "Keep up the good work!"

    def _metric(self, name: str, score: float, description: str, details: str) -> MetricResult:
        return MetricResult(
            name=name,
            score=max(0.0, min(100.0, score)),
            weight=self.WEIGHTS[name],
            description=description,
            details=details,
        )

    def _calculate_documentation(self, snapshot: RepositorySnapshot) -> MetricResult:
        description = "Evaluates the presence of essential documentation files"
        repo = snapshot.repository
        if snapshot.documentation_files is None or is_large_repository(
            repo.stars, repo.forks, repo.open_issues
        ):
            return self._metric(
                "Documentation",
                ASSUMED_DOCUMENTATION_SCORE,
                description,
                "Assumed present for large repository",
            )

        found = [f for f in DOCUMENTATION_FILES if snapshot.documentation_files.get(f)]
        missing = [f for f in DOCUMENTATION_FILES if f not in found]
        score = len(found) * 100.0 / len(DOCUMENTATION_FILES)
        details = (
            f"Found: {', '.join(found) or 'none'}. Missing: {', '.join(missing) or 'none'}"
        )
        return self._metric("Documentation", score, description, details)

    def _calculate_commit_quality(self, snapshot: RepositorySnapshot) -> MetricResult:
        description = "Evaluates commit message quality and conventions"
        commits = snapshot.recent_commits[:COMMIT_QUALITY_COMMITS]
        if not commits:
            return self._metric("Commit Quality", 0.0, description, "No commits found")

        good = sum(1 for c in commits if is_good_commit_message(c.message.split("\n")[0]))
        score = good * 100.0 / len(commits)
        details = f"Analyzed {len(commits)} commits: {good} ({score:.1f}%) follow conventions"
        return self._metric("Commit Quality", score, description, details)

    def _calculate_activity(
        self, snapshot: RepositorySnapshot, now: datetime | None = None
    ) -> MetricResult:
        description = "Evaluates repository activity and freshness"
        commits = snapshot.recent_commits[:ACTIVITY_COMMITS]
        if not commits or commits[0].date is None:
            return self._metric("Activity", 0.0, description, "No commits found")

        now = now or datetime.now(timezone.utc)
        last = commits[0].date
        if last.tzinfo is None:
            last = last.replace(tzinfo=timezone.utc)
        days = max(0, (now - last).days)

        if days <= 7:
            score = 100.0
        elif days <= 30:
            score = 90.0
        elif days <= 90:
            score = 70.0
        elif days <= 180:
            score = 50.0
        elif days <= 365:
            score = 30.0
        else:
            score = 10.0

        details = f"Last commit was {days} days ago. Recent activity: {len(commits)} commits"
        return self._metric("Activity", score, description, details)

    def _calculate_issue_management(self, snapshot: RepositorySnapshot) -> MetricResult:
        description = "Evaluates issue tracking and management"
        repo = snapshot.repository
        if not repo.has_issues:
            return self._metric(
                "Issue Management", 50.0, description, "Issues are disabled for this repository"
            )

        open_issues = repo.open_issues
        closed = snapshot.closed_issues
        if closed is None:
            # Assume a typical 70% closure rate when GitHub won't count them
            closed = max(0, int(open_issues / 0.3 * 0.7))

        total = open_issues + closed
        if total == 0:
            return self._metric(
                "Issue Management",
                80.0,
                description,
                "No issues found (may indicate new project or unused issue tracking)",
            )

        closure_rate = closed * 100.0 / total
        if closure_rate >= 80:
            score = 100.0
        elif closure_rate >= 60:
            score = 85.0
        elif closure_rate >= 40:
            score = 70.0
        elif closure_rate >= 20:
            score = 50.0
        else:
            score = 30.0

        # Large backlogs are harder to manage regardless of closure rate
        if open_issues > 100:
            score *= 0.8
        elif open_issues > 50:
            score *= 0.9

        details = f"Open: {open_issues}, Closed: {closed} ({closure_rate:.1f}% closure rate)"
        return self._metric("Issue Management", score, description, details)

    def _calculate_community(self, snapshot: RepositorySnapshot) -> MetricResult:
        repo = snapshot.repository
        contributors = snapshot.contributor_count
        star_score = min(100.0, repo.stars / 10.0)
        fork_score = min(100.0, repo.forks / 5.0)
        contributor_score = min(100.0, contributors * 10.0)
        score = star_score * 0.4 + fork_score * 0.3 + contributor_score * 0.3

        details = f"Stars: {repo.stars}, Forks: {repo.forks}, Contributors: {contributors}"
        return self._metric(
            "Community", score, "Evaluates community engagement and popularity", details
        )

    def _calculate_branch_management(self, snapshot: RepositorySnapshot) -> MetricResult:
        count = snapshot.branch_count
        if count <= 3:
            score = 100.0
        elif count <= 5:
            score = 95.0
        elif count <= 10:
            score = 85.0
        elif count <= 20:
            score = 70.0
        elif count <= 50:
            score = 50.0
        else:
            score = 30.0

        return self._metric(
            "Branch Management",
            score,
            "Evaluates branch management and cleanup practices",
            f"Total branches: {count}",
        )
