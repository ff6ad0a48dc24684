"""
Evaluation module for tracking node metrics.

Provides:
- NodeMetrics: Dataclass for individual node execution metrics
- track_metrics: Decorator for automatic metrics capture
- Session functions: get_session_metrics, clear_session_metrics, summarize_metrics, log_metrics_summary
"""
from evaluation.metrics import (
    NodeMetrics,
    track_metrics,
    get_session_metrics,
    clear_session_metrics,
    add_metrics,
    summarize_metrics,
    log_metrics_summary,
)

__all__ = [
    "NodeMetrics",
    "track_metrics",
    "get_session_metrics",
    "clear_session_metrics",
    "add_metrics",
    "summarize_metrics",
    "log_metrics_summary",
]
