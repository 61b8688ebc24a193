"""Pydantic models for repository maintainability data."""

import math
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Rating(str, Enum):
    """Overall maintainability rating."""

    EXCELLENT = "EXCELLENT"
    GOOD = "GOOD"
    FAIR = "FAIR"
    POOR = "POOR"
    CRITICAL = "CRITICAL"


class AnalysisMode(str, Enum):
    """How trustworthy an LLM analysis is."""

    REAL = "REAL"  # Model output parsed cleanly
    FALLBACK = "FALLBACK"  # Some or all sections are stock defaults
    API_ERROR = "API_ERROR"  # At least one model call failed in transport
    PARSE_ERROR = "PARSE_ERROR"  # More than one response could not be parsed
    QUALITY_LOW = "QUALITY_LOW"  # Model reported low confidence in itself


class Severity(str, Enum):
    """Recommendation severity."""

    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


# --- GitHub Data Models ---


class RepositoryInfo(BaseModel):
    """Basic GitHub repository data."""

    owner: str
    name: str
    full_name: str = ""
    description: str | None = None
    stars: int = 0
    forks: int = 0
    open_issues: int = 0
    has_issues: bool = True
    has_wiki: bool = False
    default_branch: str = "main"
    size: int = 0
    updated_at: datetime | None = None


class CommitInfo(BaseModel):
    """A single commit."""

    sha: str
    message: str = ""
    author: str = ""
    date: datetime | None = None


class RepositorySnapshot(BaseModel):
    """Everything the deterministic metrics need about one repository."""

    repository: RepositoryInfo
    recent_commits: list[CommitInfo] = Field(default_factory=list)  # Newest first
    closed_issues: int | None = None  # None when GitHub refused to count them
    contributor_count: int = 0
    branch_count: int = 0
    # File name -> present; None when the check was skipped for a large repository
    documentation_files: dict[str, bool] | None = None


# --- Metric Models ---


class MetricResult(BaseModel):
    """Score produced by one deterministic metric."""

    name: str
    score: float = Field(ge=0, le=100)
    weight: float = Field(ge=0, le=1)
    description: str = ""
    details: str = ""

    @property
    def weighted_score(self) -> float:
        return self.score * self.weight


# --- LLM Analysis Models ---


def _clamp_score(value: object) -> int:
    """Coerce a model-supplied score onto the 1-10 scale."""
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise ValueError(f"score must be numeric, got {value!r}") from None
    if not math.isfinite(number):
        raise ValueError(f"score must be finite, got {value!r}")
    return max(1, min(10, int(round(number))))


class ReadmeAnalysis(BaseModel):
    """LLM assessment of README quality."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    clarity: int
    completeness: int
    newcomer_friendly: int = Field(alias="newcomerFriendly")
    strengths: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    is_fallback: bool = False

    @field_validator("clarity", "completeness", "newcomer_friendly", mode="before")
    @classmethod
    def clamp_score(cls, value: object) -> int:
        return _clamp_score(value)

    @property
    def average(self) -> float:
        return (self.clarity + self.completeness + self.newcomer_friendly) / 3


class CommitAnalysis(BaseModel):
    """LLM assessment of commit message quality."""

    model_config = ConfigDict(frozen=True)

    clarity: int
    consistency: int
    informativeness: int
    patterns: list[str] = Field(default_factory=list)
    is_fallback: bool = False

    @field_validator("clarity", "consistency", "informativeness", mode="before")
    @classmethod
    def clamp_score(cls, value: object) -> int:
        return _clamp_score(value)

    @property
    def average(self) -> float:
        return (self.clarity + self.consistency + self.informativeness) / 3


class CommunityAnalysis(BaseModel):
    """LLM assessment of community health."""

    model_config = ConfigDict(frozen=True)

    responsiveness: int
    helpfulness: int
    tone: int
    strengths: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    is_fallback: bool = False

    @field_validator("responsiveness", "helpfulness", "tone", mode="before")
    @classmethod
    def clamp_score(cls, value: object) -> int:
        return _clamp_score(value)

    @property
    def average(self) -> float:
        return (self.responsiveness + self.helpfulness + self.tone) / 3


class AIRecommendation(BaseModel):
    """A prioritized improvement suggestion."""

    model_config = ConfigDict(frozen=True)

    title: str
    description: str
    impact: int = Field(ge=0, le=100)
    confidence: int = Field(ge=0, le=100)
    severity: Severity


class LLMAnalysis(BaseModel):
    """Complete result of one AI-augmented analysis."""

    model_config = ConfigDict(frozen=True)

    readme: ReadmeAnalysis
    commits: CommitAnalysis
    community: CommunityAnalysis
    recommendations: list[AIRecommendation] = Field(default_factory=list)
    confidence: float = Field(ge=25, le=95)
    tokens_used: int = 0
    quality_indicator: int = Field(ge=0, le=100, default=75)
    mode: AnalysisMode = AnalysisMode.REAL
    api_errors: int = 0
    parse_errors: int = 0
    fallback_count: int = 0  # Sub-analyses that needed stock defaults
    integrated_insights: list[str] = Field(default_factory=list)
    from_cache: bool = False


# --- Final Report ---


class MaintainabilityReport(BaseModel):
    """Complete maintainability analysis of a repository."""

    repository: str  # owner/repo
    overall_score: float = Field(ge=0, le=100)
    rating: Rating
    metrics: dict[str, MetricResult] = Field(default_factory=dict)
    recommendation: str = ""
    llm_analysis: LLMAnalysis | None = None
    analyzed_at: datetime = Field(default_factory=datetime.now)
