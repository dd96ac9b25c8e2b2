"""
Tests for the evaluation performance monitor
"""
import pytest

from benefits_engine.services.performance_monitor import PerformanceMonitor, calculate_stats


@pytest.fixture
def filled_monitor():
    monitor = PerformanceMonitor(slow_threshold_ms=50)
    for ms in (1, 2, 3, 4, 100):
        monitor.record(ms, rule_id="snap-federal-gross-income")
    for ms in (80, 90):
        monitor.record(ms, rule_id="wic-federal-age")
    return monitor


class TestCalculateStats:

    def test_empty(self):
        stats = calculate_stats([])
        assert stats.total_evaluations == 0
        assert stats.average_time == 0

    def test_values(self, filled_monitor):
        stats = calculate_stats(filled_monitor.get_for_rule("snap-federal-gross-income"))
        assert stats.total_evaluations == 5
        assert stats.average_time == 22
        assert stats.median_time == 3
        assert stats.min_time == 1
        assert stats.max_time == 100
        assert stats.p95_time == 100


class TestPerformanceMonitor:

    def test_buffer_is_bounded(self):
        monitor = PerformanceMonitor(max_metrics=3)
        for ms in range(5):
            monitor.record(ms, rule_id="r")
        assert [m.execution_time for m in monitor.get_all()] == [2, 3, 4]

    def test_resize_keeps_newest(self, filled_monitor):
        filled_monitor.set_max_metrics(2)
        assert [m.execution_time for m in filled_monitor.get_all()] == [80, 90]

    def test_disabled_records_nothing(self):
        monitor = PerformanceMonitor()
        monitor.disable()
        assert monitor.record(5) is None
        assert monitor.get_all() == []
        monitor.enable()
        assert monitor.record(5) is not None

    def test_negative_time_clamped(self):
        assert PerformanceMonitor().record(-1).execution_time == 0

    def test_rule_profile(self, filled_monitor):
        profile = filled_monitor.get_rule_profile("snap-federal-gross-income")
        assert profile.evaluation_count == 5
        assert profile.slowest_evaluations[0].execution_time == 100
        assert profile.fastest_evaluations[0].execution_time == 1
        assert profile.trend == "stable"

    def test_degrading_trend(self):
        monitor = PerformanceMonitor(slow_threshold_ms=1000)
        for _ in range(50):
            monitor.record(1, rule_id="r")
        for _ in range(50):
            monitor.record(5, rule_id="r")
        assert monitor.get_rule_profile("r").trend == "degrading"

    def test_slow_rules(self, filled_monitor):
        assert sorted(filled_monitor.get_slow_rules()) == ["wic-federal-age"]
        assert sorted(filled_monitor.get_slow_rules(threshold_ms=10)) == ["snap-federal-gross-income", "wic-federal-age"]

    def test_warnings(self, filled_monitor):
        warnings = filled_monitor.get_warnings()
        assert warnings[0].message == "3 evaluations exceeded 50ms"
        assert warnings[0].value == 3
        assert [w.rule_id for w in warnings[1:]] == ["wic-federal-age"]

    def test_report(self, filled_monitor):
        report = filled_monitor.generate_report()
        assert report.startswith("=== Performance Report ===")
        assert "Total Evaluations: 7" in report
        assert "=== Warnings ===" in report
        assert "wic-federal-age:" in report

    def test_report_without_data(self):
        assert PerformanceMonitor().generate_report() == "No performance data collected yet."

    def test_export_data(self, filled_monitor):
        data = filled_monitor.export_data()
        assert len(data["metrics"]) == 7
        assert data["metrics"][0]["ruleId"] == "snap-federal-gross-income"
        assert data["stats"]["totalEvaluations"] == 7

    def test_clear(self, filled_monitor):
        filled_monitor.clear()
        assert filled_monitor.get_all() == []
