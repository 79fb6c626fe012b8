"""Per-operation latency tracking for backend calls.

:class:`PerformanceTracker` aggregates wall-clock durations by operation
label (``"generation"``, ``"bid:builder"``...).  It is shared by every
service an :class:`~agent_choreography.orchestrator.Orchestrator` wires,
so it is safe to record from concurrent requests.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_SLOW_THRESHOLD = 1.0


@dataclass(frozen=True)
class OperationMetric:
    """Aggregate timings for one operation label."""

    operation: str
    call_count: int
    total_seconds: float
    min_seconds: float
    max_seconds: float

    @property
    def avg_seconds(self) -> float:
        return self.total_seconds / self.call_count if self.call_count else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation,
            "call_count": self.call_count,
            "total_seconds": self.total_seconds,
            "avg_seconds": self.avg_seconds,
            "min_seconds": self.min_seconds,
            "max_seconds": self.max_seconds,
        }


class PerformanceTracker:
    """Thread-safe latency aggregator.

    Parameters
    ----------
    slow_threshold:
        Calls longer than this many seconds are logged at WARNING.
        ``None`` disables the warning.
    """

    def __init__(self, slow_threshold: float | None = DEFAULT_SLOW_THRESHOLD) -> None:
        self.slow_threshold = slow_threshold
        self._samples: dict[str, list[float]] = {}
        self._lock = threading.Lock()

    def record(self, operation: str, seconds: float) -> None:
        with self._lock:
            self._samples.setdefault(operation, []).append(seconds)
        if self.slow_threshold is not None and seconds > self.slow_threshold:
            logger.warning("Slow operation: %s took %.2fs", operation, seconds)

    @contextmanager
    def track(self, operation: str) -> Iterator[None]:
        """Time the enclosed block, recording it even when it raises."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.record(operation, time.perf_counter() - start)

    def get_metrics(self, prefix: str | None = None) -> list[OperationMetric]:
        """Metrics for every operation (optionally under *prefix*), slowest total first."""
        with self._lock:
            snapshot = {op: list(samples) for op, samples in self._samples.items()}
        metrics = [
            OperationMetric(
                operation=op,
                call_count=len(samples),
                total_seconds=sum(samples),
                min_seconds=min(samples),
                max_seconds=max(samples),
            )
            for op, samples in snapshot.items()
            if samples and (prefix is None or op.startswith(prefix))
        ]
        metrics.sort(key=lambda m: m.total_seconds, reverse=True)
        return metrics

    def get_metric(self, operation: str) -> OperationMetric | None:
        for metric in self.get_metrics(operation):
            if metric.operation == operation:
                return metric
        return None

    def summary(self) -> dict[str, Any]:
        metrics = self.get_metrics()
        slowest = max(metrics, key=lambda m: m.avg_seconds, default=None)
        return {
            "total_calls": sum(m.call_count for m in metrics),
            "total_seconds": sum(m.total_seconds for m in metrics),
            "slowest_operation": slowest.operation if slowest else None,
            "operation_count": len(metrics),
        }

    def clear(self) -> None:
        with self._lock:
            self._samples.clear()
