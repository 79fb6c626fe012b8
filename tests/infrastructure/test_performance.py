"""Tests for PerformanceTracker."""

from __future__ import annotations

import logging
import threading

import pytest

from agent_choreography.infrastructure.performance import PerformanceTracker


class TestRecording:

    def test_aggregates(self) -> None:
        tracker = PerformanceTracker()
        for seconds in (0.2, 0.4, 0.6):
            tracker.record("evaluation", seconds)
        metric = tracker.get_metric("evaluation")
        assert metric is not None
        assert metric.call_count == 3
        assert metric.total_seconds == pytest.approx(1.2)
        assert metric.avg_seconds == pytest.approx(0.4)
        assert metric.min_seconds == pytest.approx(0.2)
        assert metric.max_seconds == pytest.approx(0.6)

    def test_sorted_by_total(self) -> None:
        tracker = PerformanceTracker()
        tracker.record("bid:builder", 0.1)
        tracker.record("generation", 0.9)
        tracker.record("bid:researcher", 0.3)
        assert [m.operation for m in tracker.get_metrics()] == [
            "generation", "bid:researcher", "bid:builder",
        ]
        assert [m.operation for m in tracker.get_metrics("bid:")] == [
            "bid:researcher", "bid:builder",
        ]

    def test_unknown_operation(self) -> None:
        assert PerformanceTracker().get_metric("nope") is None

    def test_track_records_on_error(self) -> None:
        tracker = PerformanceTracker()
        with pytest.raises(RuntimeError):
            with tracker.track("root_cause"):
                raise RuntimeError("down")
        metric = tracker.get_metric("root_cause")
        assert metric is not None
        assert metric.call_count == 1

    def test_summary_and_clear(self) -> None:
        tracker = PerformanceTracker()
        tracker.record("generation", 2.0)
        tracker.record("evaluation", 0.5)
        tracker.record("evaluation", 0.5)
        assert tracker.summary() == {
            "total_calls": 3,
            "total_seconds": pytest.approx(3.0),
            "slowest_operation": "generation",
            "operation_count": 2,
        }
        tracker.clear()
        assert tracker.get_metrics() == []
        assert tracker.summary()["slowest_operation"] is None


class TestSlowWarning:

    def test_slow_call_is_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        tracker = PerformanceTracker(slow_threshold=1.0)
        logger_name = "agent_choreography.infrastructure.performance"
        with caplog.at_level(logging.WARNING, logger=logger_name):
            tracker.record("generation", 1.5)
            tracker.record("evaluation", 0.2)
        assert [r.getMessage() for r in caplog.records] == [
            "Slow operation: generation took 1.50s"
        ]

    def test_disabled(self, caplog: pytest.LogCaptureFixture) -> None:
        tracker = PerformanceTracker(slow_threshold=None)
        with caplog.at_level(logging.WARNING):
            tracker.record("generation", 99.0)
        assert caplog.records == []


class TestConcurrency:

    def test_concurrent_records(self) -> None:
        tracker = PerformanceTracker()

        def worker() -> None:
            for _ in range(200):
                tracker.record("bid:builder", 0.001)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        metric = tracker.get_metric("bid:builder")
        assert metric is not None
        assert metric.call_count == 800
