# evaluation/metrics.py
"""
Metrics collection for workflow evaluation.

Tracks token usage, latency, and success/failure for each node execution.
"""
from __future__ import annotations

import time
import functools
from typing import List, Dict, Any, Optional, Callable
from dataclasses import dataclass, field
from datetime import datetime

from infrastructure.logging import graph_log


@dataclass
class NodeMetrics:
    """Metrics for a single node execution."""
    node_name: str
    input_tokens: int = 0
    output_tokens: int = 0
    latency_ms: float = 0.0
    success: bool = True
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


# Session-level metrics storage
_session_metrics: List[NodeMetrics] = []


def get_session_metrics() -> List[NodeMetrics]:
    """Get all metrics collected in this session."""
    return _session_metrics.copy()


def clear_session_metrics() -> None:
    """Clear session metrics."""
    global _session_metrics
    _session_metrics = []


def add_metrics(metrics: NodeMetrics) -> None:
    """Add metrics to the session."""
    _session_metrics.append(metrics)


def _token_usage(result: Any) -> tuple:
    """Sum usage_metadata of any model messages in a node update."""
    if not isinstance(result, dict):
        return 0, 0
    input_tokens = output_tokens = 0
    for message in result.get("messages", []) or []:
        usage = getattr(message, "usage_metadata", None) or {}
        input_tokens += usage.get("input_tokens", 0)
        output_tokens += usage.get("output_tokens", 0)
    return input_tokens, output_tokens


def track_metrics(node_name: str):
    """
    Decorator to track metrics for a graph node function.

    Usage:
        @track_metrics("Bull_Researcher")
        def bull_node(state):
            ...
    """
    def decorator(func: Callable):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            start_time = time.perf_counter()
            error = None
            success = True
            result = None

            try:
                result = func(*args, **kwargs)
            except Exception as e:
                error = str(e)
                success = False
                raise
            finally:
                latency_ms = (time.perf_counter() - start_time) * 1000
                input_tokens, output_tokens = _token_usage(result)
                add_metrics(NodeMetrics(
                    node_name=node_name,
                    input_tokens=input_tokens,
                    output_tokens=output_tokens,
                    latency_ms=latency_ms,
                    success=success,
                    error=error
                ))

            return result
        return wrapper
    return decorator


def summarize_metrics() -> Dict[str, Any]:
    """Aggregate session metrics per node."""
    metrics = get_session_metrics()
    per_node: Dict[str, Dict[str, Any]] = {}
    for m in metrics:
        entry = per_node.setdefault(m.node_name, {"calls": 0, "failures": 0, "latency_ms": 0.0, "tokens": 0})
        entry["calls"] += 1
        entry["failures"] += 0 if m.success else 1
        entry["latency_ms"] += m.latency_ms
        entry["tokens"] += m.total_tokens

    return {
        "calls": len(metrics),
        "successful": sum(1 for m in metrics if m.success),
        "total_tokens": sum(m.total_tokens for m in metrics),
        "total_latency_ms": sum(m.latency_ms for m in metrics),
        "per_node": per_node,
    }


def log_metrics_summary() -> None:
    """Log a summary of session metrics."""
    summary = summarize_metrics()

    if not summary["calls"]:
        graph_log.info("No metrics collected")
        return

    graph_log.info(
        f"Metrics: {summary['calls']} node runs ({summary['successful']} successful), "
        f"{summary['total_tokens']:,} tokens, {summary['total_latency_ms']:.0f}ms"
    )
    for node_name, entry in summary["per_node"].items():
        graph_log.debug(
            f"  {node_name}: {entry['calls']} calls, {entry['failures']} failed, "
            f"{entry['latency_ms']:.0f}ms, {entry['tokens']} tokens"
        )
