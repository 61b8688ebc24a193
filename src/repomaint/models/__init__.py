"""Data models and schemas."""

from repomaint.models.schemas import (
    AnalysisMode,
    CommitInfo,
    LLMAnalysis,
    MaintainabilityReport,
    MetricResult,
    Rating,
    RepositoryInfo,
    RepositorySnapshot,
)

__all__ = [
    "AnalysisMode",
    "CommitInfo",
    "LLMAnalysis",
    "MaintainabilityReport",
    "MetricResult",
    "Rating",
    "RepositoryInfo",
    "RepositorySnapshot",
]
