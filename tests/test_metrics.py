"""
Tests for run metrics collection.
"""

import threading

import pytest

from repomaint.models.schemas import AnalysisMode
from repomaint.monitoring.metrics import MAX_RECENT_ERRORS, MetricsCollector


class TestMetricsCollector:
    """Test MetricsCollector."""

    def test_record_analysis(self):
        """Test analyses are counted by mode."""
        collector = MetricsCollector()
        collector.record_analysis(AnalysisMode.REAL, tokens_used=120)
        collector.record_analysis(AnalysisMode.FALLBACK, fallback_sections=2, tokens_used=80)
        collector.record_analysis(AnalysisMode.REAL, from_cache=True)

        metrics = collector.get_metrics()
        assert metrics.analyses_total == 3
        assert metrics.mode_counts["REAL"] == 2
        assert metrics.mode_counts["FALLBACK"] == 1
        assert metrics.mode_counts["API_ERROR"] == 0
        assert metrics.fallback_sections == 2
        assert metrics.tokens_used == 200
        assert metrics.cache_hits == 1
        assert metrics.degraded_count == 1
        assert metrics.last_updated is not None

    def test_recent_errors_ring_buffer(self):
        """Test only the most recent errors are kept."""
        collector = MetricsCollector()
        for i in range(15):
            collector.record_error("acme/widget", "LLMError", f"failure {i}")

        errors = collector.get_metrics().recent_errors
        assert len(errors) == MAX_RECENT_ERRORS
        assert errors[0].message == "failure 5"
        assert errors[-1].message == "failure 14"

    def test_stage_timing(self):
        collector = MetricsCollector()
        collector.record_stage_timing("github", 1.0)
        collector.record_stage_timing("github", 3.0)

        stats = collector.get_metrics().stages["github"]
        assert stats.count == 2
        assert stats.average_seconds == 2.0
        assert stats.max_seconds == 3.0

    def test_rate_limit(self):
        collector = MetricsCollector()
        collector.update_github_rate_limit(42, 60)

        metrics = collector.get_metrics()
        assert metrics.github_rate_limit_remaining == 42
        assert metrics.github_rate_limit_total == 60

    def test_get_metrics_returns_copy(self):
        """Test callers cannot mutate collector state through a snapshot."""
        collector = MetricsCollector()
        snapshot = collector.get_metrics()
        snapshot.mode_counts["REAL"] = 99

        assert collector.get_metrics().mode_counts["REAL"] == 0

    def test_to_dict(self):
        collector = MetricsCollector()
        collector.record_analysis(AnalysisMode.API_ERROR)
        collector.record_error("acme/widget", "LLMError", "down")
        collector.record_stage_timing("llm", 0.5)

        data = collector.get_metrics().to_dict()
        assert data["analyses_total"] == 1
        assert data["degraded_count"] == 1
        assert data["mode_counts"]["API_ERROR"] == 1
        assert data["recent_errors"][0]["error_type"] == "LLMError"
        assert isinstance(data["recent_errors"][0]["timestamp"], str)
        assert data["stages"]["llm"]["average_seconds"] == 0.5
        assert isinstance(data["last_updated"], str)

    def test_concurrent_updates(self):
        """Test counts are not lost when several threads record at once."""
        collector = MetricsCollector()

        def worker():
            for _ in range(500):
                collector.record_analysis(AnalysisMode.REAL, tokens_used=1)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        metrics = collector.get_metrics()
        assert metrics.analyses_total == 2000
        assert metrics.tokens_used == 2000


class TestTimeStage:
    """Test MetricsCollector.time_stage."""

    def test_records_duration(self):
        collector = MetricsCollector()
        with collector.time_stage("metrics"):
            pass

        stats = collector.get_metrics().stages["metrics"]
        assert stats.count == 1
        assert stats.total_seconds >= 0

    def test_records_on_error(self):
        """Test a stage that raises is still timed and the error propagates."""
        collector = MetricsCollector()
        with pytest.raises(RuntimeError):
            with collector.time_stage("llm"):
                raise RuntimeError("boom")

        assert collector.get_metrics().stages["llm"].count == 1
