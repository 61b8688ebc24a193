"""Analysis monitoring and metrics collection."""

from .metrics import AnalysisMetrics, ErrorEntry, MetricsCollector, StageStats

__all__ = ["MetricsCollector", "AnalysisMetrics", "ErrorEntry", "StageStats"]
