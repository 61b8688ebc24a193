"""In-memory run counters shared by every analysis in a process."""

from __future__ import annotations

import copy
import threading
import time
from collections import deque
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from repomaint.models.schemas import AnalysisMode

MAX_RECENT_ERRORS = 10


@dataclass(frozen=True)
class ErrorEntry:
    """An exception absorbed while analyzing a repository."""

    timestamp: datetime
    repository: str
    error_type: str
    message: str


@dataclass
class StageStats:
    """Wall-clock totals for one pipeline stage."""

    count: int = 0
    total_seconds: float = 0.0
    max_seconds: float = 0.0

    @property
    def average_seconds(self) -> float:
        return self.total_seconds / self.count if self.count else 0.0


@dataclass
class AnalysisMetrics:
    """Counters for the LLM analyses and pipeline runs of this process."""

    analyses_total: int = 0
    mode_counts: dict[str, int] = field(
        default_factory=lambda: dict.fromkeys((mode.value for mode in AnalysisMode), 0)
    )
    # README, commit or community sections that fell back to stock defaults
    fallback_sections: int = 0
    tokens_used: int = 0
    cache_hits: int = 0

    stages: dict[str, StageStats] = field(default_factory=dict)
    recent_errors: deque[ErrorEntry] = field(
        default_factory=lambda: deque(maxlen=MAX_RECENT_ERRORS)
    )

    github_rate_limit_remaining: int = 5000
    github_rate_limit_total: int = 5000

    last_updated: datetime | None = None

    @property
    def degraded_count(self) -> int:
        """Analyses whose mode was anything other than REAL."""
        return self.analyses_total - self.mode_counts.get(AnalysisMode.REAL.value, 0)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["recent_errors"] = [
            dict(asdict(error), timestamp=error.timestamp.isoformat())
            for error in self.recent_errors
        ]
        for name, stats in self.stages.items():
            data["stages"][name]["average_seconds"] = stats.average_seconds
        data["degraded_count"] = self.degraded_count
        data["last_updated"] = self.last_updated.isoformat() if self.last_updated else None
        return data


class MetricsCollector:
    """Lock-guarded owner of an AnalysisMetrics.

    Safe to share between threads and event loops. Nothing is persisted.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._metrics = AnalysisMetrics()

    def _touch(self) -> None:
        self._metrics.last_updated = datetime.now()

    def record_analysis(
        self,
        mode: AnalysisMode,
        fallback_sections: int = 0,
        tokens_used: int = 0,
        from_cache: bool = False,
    ) -> None:
        """Count one finished LLM analysis."""
        with self._lock:
            m = self._metrics
            m.analyses_total += 1
            m.mode_counts[mode.value] = m.mode_counts.get(mode.value, 0) + 1
            m.fallback_sections += fallback_sections
            m.tokens_used += tokens_used
            m.cache_hits += int(from_cache)
            self._touch()

    def record_error(self, repository: str, error_type: str, message: str) -> None:
        with self._lock:
            self._metrics.recent_errors.append(
                ErrorEntry(datetime.now(), repository, error_type, message)
            )
            self._touch()

    def record_stage_timing(self, stage: str, seconds: float) -> None:
        with self._lock:
            stats = self._metrics.stages.setdefault(stage, StageStats())
            stats.count += 1
            stats.total_seconds += seconds
            stats.max_seconds = max(stats.max_seconds, seconds)

    @contextmanager
    def time_stage(self, stage: str) -> Iterator[None]:
        """Time the enclosed block, recording it even if it raises."""
        started = time.perf_counter()
        try:
            yield
        finally:
            self.record_stage_timing(stage, time.perf_counter() - started)

    def update_github_rate_limit(self, remaining: int, total: int) -> None:
        with self._lock:
            self._metrics.github_rate_limit_remaining = remaining
            self._metrics.github_rate_limit_total = total
            self._touch()

    def get_metrics(self) -> AnalysisMetrics:
        """Return a snapshot that later updates do not affect."""
        with self._lock:
            return copy.deepcopy(self._metrics)
