"""
Performance monitor for rule evaluations
"""
import logging
import math
import threading
import time
import uuid
from collections import deque
from typing import Any, Dict, List, Optional

from ..config import settings
from ..models.performance import (
    PerformanceMetric,
    PerformanceStats,
    PerformanceWarning,
    RulePerformanceProfile
)

logger = logging.getLogger(__name__)


def calculate_stats(metrics: List[PerformanceMetric]) -> PerformanceStats:
    """
    Calculate aggregate statistics for a list of metrics

    Args:
        metrics: Recorded metrics, oldest first

    Returns:
        PerformanceStats (all zeros for an empty list)
    """
    if not metrics:
        return PerformanceStats()

    times = sorted(m.execution_time for m in metrics)
    count = len(times)
    average = sum(times) / count
    p95 = times[min(int(count * 0.95), count - 1)]
    p99 = times[min(int(count * 0.99), count - 1)]
    std_dev = math.sqrt(sum((t - average) ** 2 for t in times) / count)

    # Throughput over the most recent window
    recent = metrics[-100:]
    span_seconds = (recent[-1].timestamp - recent[0].timestamp) / 1000 if len(recent) > 1 else 1.0
    per_second = len(recent) / span_seconds if span_seconds > 0 else float(len(recent))

    return PerformanceStats(
        total_evaluations=count,
        average_time=average,
        median_time=times[count // 2],
        min_time=times[0],
        max_time=times[-1],
        p95_time=p95,
        p99_time=p99,
        std_deviation=std_dev,
        evaluations_per_second=per_second
    )


class PerformanceMonitor:
    """Records evaluation timings and flags slow rules"""

    def __init__(self, max_metrics: Optional[int] = None, slow_threshold_ms: Optional[float] = None):
        self.max_metrics = max_metrics or settings.max_metrics
        self.slow_threshold_ms = slow_threshold_ms if slow_threshold_ms is not None else settings.slow_evaluation_ms
        self.enabled = True
        self._metrics = deque(maxlen=self.max_metrics)
        self._lock = threading.Lock()

    def record(
        self,
        execution_time: float,
        rule_id: Optional[str] = None,
        success: bool = True,
        depth: Optional[int] = None
    ) -> Optional[PerformanceMetric]:
        """
        Record one evaluation

        Args:
            execution_time: Duration in milliseconds
            rule_id: Rule evaluated, if known
            success: Whether the evaluation succeeded
            depth: Expression tree depth, if known

        Returns:
            The stored metric, or None when monitoring is disabled
        """
        if not self.enabled:
            return None

        metric = PerformanceMetric(
            id=uuid.uuid4().hex,
            rule_id=rule_id,
            execution_time=max(execution_time, 0.0),
            timestamp=time.time() * 1000,
            success=success,
            depth=depth
        )
        with self._lock:
            self._metrics.append(metric)

        if execution_time > self.slow_threshold_ms:
            logger.warning(f"Slow evaluation of rule {rule_id}: {execution_time:.2f}ms")
        return metric

    def get_all(self) -> List[PerformanceMetric]:
        with self._lock:
            return list(self._metrics)

    def get_for_rule(self, rule_id: str) -> List[PerformanceMetric]:
        return [m for m in self.get_all() if m.rule_id == rule_id]

    def get_recent(self, count: int = 100) -> List[PerformanceMetric]:
        return self.get_all()[-count:]

    def clear(self):
        with self._lock:
            self._metrics.clear()

    def enable(self):
        self.enabled = True

    def disable(self):
        self.enabled = False

    def set_max_metrics(self, max_metrics: int):
        """Resize the buffer, keeping the newest metrics"""
        with self._lock:
            self.max_metrics = max_metrics
            self._metrics = deque(self._metrics, maxlen=max_metrics)

    def _group_by_rule(self, metrics: List[PerformanceMetric]) -> Dict[str, List[PerformanceMetric]]:
        by_rule: Dict[str, List[PerformanceMetric]] = {}
        for metric in metrics:
            if metric.rule_id:
                by_rule.setdefault(metric.rule_id, []).append(metric)
        return by_rule

    def get_rule_profile(self, rule_id: str) -> RulePerformanceProfile:
        """
        Get the performance profile of a rule

        The trend compares the last 50 evaluations against the 50 before them
        and needs more than 10 of each.
        """
        metrics = self.get_for_rule(rule_id)
        ordered = sorted(metrics, key=lambda m: m.execution_time, reverse=True)

        recent = metrics[-50:]
        older = metrics[-100:-50]
        trend = "stable"
        if len(recent) > 10 and len(older) > 10:
            recent_avg = sum(m.execution_time for m in recent) / len(recent)
            older_avg = sum(m.execution_time for m in older) / len(older)
            if older_avg > 0:
                change = (recent_avg - older_avg) / older_avg * 100
                if change < -10:
                    trend = "improving"
                elif change > 10:
                    trend = "degrading"

        return RulePerformanceProfile(
            rule_id=rule_id,
            evaluation_count=len(metrics),
            stats=calculate_stats(metrics),
            slowest_evaluations=ordered[:10],
            fastest_evaluations=list(reversed(ordered[-10:])),
            trend=trend
        )

    def get_slow_rules(self, threshold_ms: Optional[float] = None) -> List[str]:
        """Rule ids whose average execution time exceeds the threshold"""
        threshold = self.slow_threshold_ms if threshold_ms is None else threshold_ms
        return [
            rule_id
            for rule_id, metrics in self._group_by_rule(self.get_all()).items()
            if calculate_stats(metrics).average_time > threshold
        ]

    def get_warnings(self, threshold_ms: Optional[float] = None) -> List[PerformanceWarning]:
        """
        Get performance warnings

        Args:
            threshold_ms: Slow evaluation threshold (defaults to settings)

        Returns:
            One warning for the count of slow evaluations, plus one per rule
            with a slow average
        """
        threshold = self.slow_threshold_ms if threshold_ms is None else threshold_ms
        all_metrics = self.get_all()
        warnings = []

        slow = [m for m in all_metrics if m.execution_time > threshold]
        if slow:
            warnings.append(PerformanceWarning(
                message=f"{len(slow)} evaluations exceeded {threshold}ms",
                metric="executionTime",
                value=len(slow),
                threshold=threshold
            ))

        for rule_id, metrics in self._group_by_rule(all_metrics).items():
            stats = calculate_stats(metrics)
            if stats.average_time > threshold:
                warnings.append(PerformanceWarning(
                    message=f"Rule {rule_id} has slow average execution time",
                    rule_id=rule_id,
                    metric="averageTime",
                    value=stats.average_time,
                    threshold=threshold
                ))

        return warnings

    def generate_report(self) -> str:
        """Plain-text performance report"""
        all_metrics = self.get_all()
        if not all_metrics:
            return "No performance data collected yet."

        stats = calculate_stats(all_metrics)
        lines = [
            "=== Performance Report ===",
            "",
            f"Total Evaluations: {stats.total_evaluations}",
            f"Average Time: {stats.average_time:.2f}ms",
            f"Median Time: {stats.median_time:.2f}ms",
            f"Min Time: {stats.min_time:.2f}ms",
            f"Max Time: {stats.max_time:.2f}ms",
            f"P95 Time: {stats.p95_time:.2f}ms",
            f"P99 Time: {stats.p99_time:.2f}ms",
            f"Std Deviation: {stats.std_deviation:.2f}ms",
            f"Throughput: {stats.evaluations_per_second:.2f} eval/sec",
        ]

        warnings = self.get_warnings()
        if warnings:
            lines.extend(["", "=== Warnings ==="])
            for warning in warnings:
                lines.append(f"[{warning.severity.upper()}] {warning.message}")

        by_rule = self._group_by_rule(all_metrics)
        if by_rule:
            lines.extend(["", "=== By Rule ==="])
            for rule_id, metrics in by_rule.items():
                rule_stats = calculate_stats(metrics)
                lines.append(f"{rule_id}:")
                lines.append(f"  Evaluations: {len(metrics)}")
                lines.append(f"  Avg Time: {rule_stats.average_time:.2f}ms")
                lines.append(f"  P95 Time: {rule_stats.p95_time:.2f}ms")

        return "\n".join(lines)

    def export_data(self) -> Dict[str, Any]:
        """All metrics with stats and warnings, for offline analysis"""
        metrics = self.get_all()
        return {
            "metrics": [m.to_json_dict() for m in metrics],
            "stats": calculate_stats(metrics).to_json_dict(),
            "warnings": [w.to_json_dict() for w in self.get_warnings()],
            "exportedAt": time.time() * 1000
        }


# Global performance monitor instance
performance_monitor = PerformanceMonitor()
