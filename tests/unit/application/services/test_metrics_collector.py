# tests/unit/application/services/test_metrics_collector.py
import pytest
from datetime import datetime, timedelta, timezone

from application.services.metrics_collector import (
    HealthStatus,
    MetricsCollector,
    percentile,
    worst_status
)
from domain.models.agent_result import AgentMetrics

class DateClock:
    def __init__(self):
        self.now = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)

@pytest.fixture
def clock():
    return DateClock()

@pytest.fixture
def collector(clock):
    return MetricsCollector("market-research", max_entries=100, clock=clock)

def metrics(execution_time=1000, tokens_used=500, quality_score=85.0, cache_hits=0, cache_misses=1):
    return AgentMetrics(
        execution_time=execution_time,
        tokens_used=tokens_used,
        api_calls=1,
        cache_hits=cache_hits,
        cache_misses=cache_misses,
        quality_score=quality_score,
    )

class TestPercentile:

    def test_nearest_rank(self):
        values = [10, 20, 30, 40, 50]

        assert percentile(values, 50) == 30
        assert percentile(values, 95) == 50
        assert percentile(values, 99) == 50

    def test_empty(self):
        assert percentile([], 50) == 0.0

    def test_single_value(self):
        assert percentile([7], 1) == 7

class TestAggregation:

    def test_empty_window(self, collector):
        stats = collector.aggregate()

        assert stats["totalExecutions"] == 0
        assert stats["successRate"] == 0.0
        assert stats["cacheHitRate"] == 0.0

    def test_counts_and_averages(self, collector):
        collector.record_execution(metrics(execution_time=1000, tokens_used=400, quality_score=80))
        collector.record_execution(metrics(execution_time=3000, tokens_used=600, quality_score=90,
                                           cache_hits=1, cache_misses=0))
        collector.record_error("TIMEOUT", "deadline exceeded")

        stats = collector.aggregate()

        assert stats["totalExecutions"] == 3
        assert stats["totalErrors"] == 1
        assert stats["successRate"] == pytest.approx(200 / 3)
        assert stats["averageExecutionTime"] == 2000
        assert stats["averageTokensUsed"] == 500
        assert stats["averageQualityScore"] == 85
        assert stats["cacheHitRate"] == 50.0

    def test_window_excludes_old_events(self, collector, clock):
        collector.record_execution(metrics())
        clock.advance(hours=2)
        collector.record_execution(metrics())

        assert collector.aggregate(hours=1)["totalExecutions"] == 1
        assert collector.aggregate(hours=24)["totalExecutions"] == 2

    def test_percentiles(self, collector):
        for execution_time in (10, 20, 30, 40, 50):
            collector.record_execution(metrics(execution_time=execution_time))

        result = collector.percentiles()

        assert result["executionTime"] == {"p50": 30, "p95": 50, "p99": 50}
        assert set(result) == {"executionTime", "tokensUsed", "qualityScore"}

    def test_error_distribution(self, collector):
        collector.record_error("TIMEOUT", "a")
        collector.record_error("TIMEOUT", "b")
        collector.record_error("VALIDATION_FAILED", "c")

        assert collector.error_distribution() == {"TIMEOUT": 2, "VALIDATION_FAILED": 1}

class TestRingBuffer:

    def test_oldest_entries_evicted(self, clock):
        collector = MetricsCollector("founder-fit", max_entries=3, clock=clock)

        for execution_time in range(5):
            collector.record_execution(metrics(execution_time=execution_time))

        recent = collector.recent_executions(10)
        assert [e.execution_time for e in recent] == [2, 3, 4]

    def test_errors_bounded_separately(self, clock):
        collector = MetricsCollector("founder-fit", max_entries=2, clock=clock)

        for i in range(4):
            collector.record_error("PROVIDER_ERROR", f"failure {i}")
        collector.record_execution(metrics())

        assert [e.error_message for e in collector.recent_errors()] == ["failure 2", "failure 3"]
        assert len(collector.recent_executions()) == 1

    def test_clear(self, collector):
        collector.record_execution(metrics())
        collector.record_error("TIMEOUT", "x")

        collector.clear()

        assert collector.aggregate()["totalExecutions"] == 0

class TestHealth:

    def test_no_traffic_is_healthy(self, collector):
        health = collector.health_check()

        assert health["status"] == HealthStatus.HEALTHY.value
        assert health["issues"] == []

    def test_healthy_traffic(self, collector):
        for _ in range(10):
            collector.record_execution(metrics())

        assert collector.health_check()["status"] == "healthy"

    def test_elevated_error_rate_warns(self, collector):
        for _ in range(9):
            collector.record_execution(metrics())
        collector.record_error("TIMEOUT", "x")

        health = collector.health_check()

        assert health["status"] == "warning"
        assert health["metrics"]["errorRate"] == pytest.approx(10.0)

    def test_high_error_rate_is_critical(self, collector):
        collector.record_execution(metrics())
        collector.record_error("TIMEOUT", "x")

        assert collector.health_check()["status"] == "critical"

    def test_only_errors_is_critical(self, collector):
        collector.record_error("TIMEOUT", "x")

        health = collector.health_check()

        assert health["status"] == "critical"
        assert len(health["issues"]) == 1

    def test_slow_responses(self, collector):
        collector.record_execution(metrics(execution_time=15000))
        assert collector.health_check()["status"] == "warning"

        collector.clear()
        collector.record_execution(metrics(execution_time=45000))
        assert collector.health_check()["status"] == "critical"

    def test_low_quality(self, collector):
        collector.record_execution(metrics(quality_score=60))
        assert collector.health_check()["status"] == "warning"

        collector.clear()
        collector.record_execution(metrics(quality_score=40))
        assert collector.health_check()["status"] == "critical"

    def test_health_never_improves_as_errors_grow(self, collector):
        """Adding failures to a fixed set of successes cannot improve the status"""
        severity = {"healthy": 0, "warning": 1, "critical": 2}
        for _ in range(20):
            collector.record_execution(metrics())

        previous = severity[collector.health_check()["status"]]
        for _ in range(10):
            collector.record_error("PROVIDER_ERROR", "x")
            current = severity[collector.health_check()["status"]]
            assert current >= previous
            previous = current

    def test_only_last_hour_counts(self, collector, clock):
        collector.record_error("TIMEOUT", "x")
        clock.advance(hours=2)
        collector.record_execution(metrics())

        assert collector.health_check()["status"] == "healthy"

class TestWorstStatus:

    def test_picks_most_severe(self):
        assert worst_status(HealthStatus.HEALTHY, HealthStatus.CRITICAL, HealthStatus.WARNING) == HealthStatus.CRITICAL

    def test_empty_is_healthy(self):
        assert worst_status() == HealthStatus.HEALTHY

class TestExport:

    def test_export_is_serializable(self, collector):
        collector.record_execution(metrics(), request_id="req_1")
        collector.record_error("TIMEOUT", "x", request_id="req_2", execution_time=60000)

        exported = collector.export()

        assert exported["taskId"] == "market-research"
        assert exported["executions"][0]["request_id"] == "req_1"
        assert isinstance(exported["errors"][0]["timestamp"], str)
        assert exported["aggregated"]["totalExecutions"] == 2
