"""
Metrics
~~~~~~~

Running execution counters for the orchestrator.
"""

from __future__ import annotations

import threading

from aegis_guard.core.models import ExecutorMetrics

__all__ = ["MetricsCollector"]


class MetricsCollector:
    """
    Collects Prometheus-style counters for every pipeline outcome.

    ``record_execution`` feeds the totals that success rate and average
    latency are derived from; the remaining counters track the preview
    and rollback workflow.
    """

    _COUNTERS = (
        "previews_created",
        "previews_auto_approved",
        "pending_approvals",
        "rollbacks_recorded",
        "rollbacks_executed",
        "timeouts",
    )

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._counters: dict[str, int] = {}
        self.reset()

    def record_execution(self, success: bool, duration_ms: float) -> None:
        """Count one finished execution."""
        with self._lock:
            self._counters["total_executions"] += 1
            self._counters["success_count" if success else "error_count"] += 1
            self._duration_sum += duration_ms

    def increment(self, name: str, amount: int = 1) -> None:
        """Increment a workflow counter. Unknown names are ignored."""
        with self._lock:
            if name in self._counters:
                self._counters[name] += amount

    def snapshot(self) -> ExecutorMetrics:
        """Export as an ExecutorMetrics dataclass."""
        with self._lock:
            return ExecutorMetrics(
                total_execution_time_ms=self._duration_sum,
                **self._counters,
            )

    def reset(self) -> None:
        """Reset all metrics."""
        with self._lock:
            self._counters = {
                "total_executions": 0,
                "success_count": 0,
                "error_count": 0,
                **{name: 0 for name in self._COUNTERS},
            }
            self._duration_sum = 0.0
