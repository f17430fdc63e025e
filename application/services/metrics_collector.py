# application/services/metrics_collector.py
import math
import threading
from collections import Counter, deque
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional

from domain.models.agent_result import AgentMetrics
from shared.logging import logger

class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"

_SEVERITY = {HealthStatus.HEALTHY: 0, HealthStatus.WARNING: 1, HealthStatus.CRITICAL: 2}

def worst_status(*statuses: HealthStatus) -> HealthStatus:
    return max(statuses, key=_SEVERITY.__getitem__, default=HealthStatus.HEALTHY)

# Health thresholds: (warning, critical)
ERROR_RATE_THRESHOLDS = (5.0, 20.0)  # percent
LATENCY_THRESHOLDS_MS = (10_000, 30_000)
QUALITY_THRESHOLDS = (70.0, 50.0)  # lower is worse

@dataclass(frozen=True)
class ExecutionEvent:
    timestamp: datetime
    request_id: Optional[str]
    execution_time: int
    tokens_used: int
    api_calls: int
    cache_hits: int
    cache_misses: int
    error_count: int
    quality_score: float

@dataclass(frozen=True)
class ErrorEvent:
    timestamp: datetime
    task_id: str
    error_type: str
    error_message: str
    request_id: Optional[str] = None
    execution_time: Optional[int] = None

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)

def percentile(sorted_values: List[float], p: float) -> float:
    """Nearest-rank percentile of an ascending list"""
    if not sorted_values:
        return 0.0
    index = math.ceil(p / 100 * len(sorted_values)) - 1
    index = min(max(index, 0), len(sorted_values) - 1)
    return sorted_values[index]

class MetricsCollector:
    """Bounded in-memory record of executions and errors for one task type"""

    def __init__(self, task_id: str, max_entries: int = 1000,
                 clock: Callable[[], datetime] = _utcnow):
        self.task_id = task_id
        self.max_entries = max_entries
        self._clock = clock
        self._executions: Deque[ExecutionEvent] = deque(maxlen=max_entries)
        self._errors: Deque[ErrorEvent] = deque(maxlen=max_entries)
        self._lock = threading.Lock()

    def record_execution(self, metrics: AgentMetrics, request_id: Optional[str] = None) -> None:
        event = ExecutionEvent(
            timestamp=self._clock(),
            request_id=request_id,
            execution_time=metrics.execution_time,
            tokens_used=metrics.tokens_used,
            api_calls=metrics.api_calls,
            cache_hits=metrics.cache_hits,
            cache_misses=metrics.cache_misses,
            error_count=metrics.error_count,
            quality_score=metrics.quality_score,
        )
        with self._lock:
            self._executions.append(event)

    def record_error(self, error_type: str, error_message: str,
                     request_id: Optional[str] = None,
                     execution_time: Optional[int] = None) -> None:
        event = ErrorEvent(
            timestamp=self._clock(),
            task_id=self.task_id,
            error_type=error_type,
            error_message=error_message,
            request_id=request_id,
            execution_time=execution_time,
        )
        with self._lock:
            self._errors.append(event)

    def _window(self, hours: float):
        cutoff = self._clock() - timedelta(hours=hours)
        with self._lock:
            executions = [e for e in self._executions if e.timestamp >= cutoff]
            errors = [e for e in self._errors if e.timestamp >= cutoff]
        return cutoff, executions, errors

    def aggregate(self, hours: float = 24) -> Dict[str, Any]:
        cutoff, executions, errors = self._window(hours)

        successes = len(executions)
        total = successes + len(errors)

        def _mean(values):
            return sum(values) / len(values) if values else 0.0

        cache_requests = sum(e.cache_hits + e.cache_misses for e in executions)
        cache_hits = sum(e.cache_hits for e in executions)

        return {
            "totalExecutions": total,
            "totalErrors": len(errors),
            "successRate": successes / total * 100 if total else 0.0,
            "averageExecutionTime": _mean([e.execution_time for e in executions]),
            "averageTokensUsed": _mean([e.tokens_used for e in executions]),
            "averageQualityScore": _mean([e.quality_score for e in executions]),
            "cacheHitRate": cache_hits / cache_requests * 100 if cache_requests else 0.0,
            "timeRange": {
                "start": cutoff.isoformat(),
                "end": self._clock().isoformat(),
            },
        }

    def percentiles(self, hours: float = 24) -> Dict[str, Dict[str, float]]:
        _, executions, _ = self._window(hours)
        result = {}
        for name, attr in (("executionTime", "execution_time"),
                           ("tokensUsed", "tokens_used"),
                           ("qualityScore", "quality_score")):
            values = sorted(getattr(e, attr) for e in executions)
            result[name] = {
                "p50": percentile(values, 50),
                "p95": percentile(values, 95),
                "p99": percentile(values, 99),
            }
        return result

    def error_distribution(self, hours: float = 24) -> Dict[str, int]:
        _, _, errors = self._window(hours)
        return dict(Counter(e.error_type for e in errors))

    def recent_executions(self, count: int = 10) -> List[ExecutionEvent]:
        with self._lock:
            return list(self._executions)[-count:] if count > 0 else []

    def recent_errors(self, count: int = 10) -> List[ErrorEvent]:
        with self._lock:
            return list(self._errors)[-count:] if count > 0 else []

    def health_check(self) -> Dict[str, Any]:
        """Worst of error rate, latency and quality over the last hour"""
        stats = self.aggregate(hours=1)
        issues: List[str] = []
        checks: List[HealthStatus] = []

        if stats["totalExecutions"] == 0:
            return {
                "status": HealthStatus.HEALTHY.value,
                "issues": [],
                "metrics": {"errorRate": 0.0, "avgResponseTime": 0.0,
                            "cacheHitRate": 0.0, "qualityScore": 0.0},
            }

        error_rate = 100.0 - stats["successRate"]
        if error_rate > ERROR_RATE_THRESHOLDS[1]:
            checks.append(HealthStatus.CRITICAL)
            issues.append(f"High error rate: {error_rate:.1f}%")
        elif error_rate > ERROR_RATE_THRESHOLDS[0]:
            checks.append(HealthStatus.WARNING)
            issues.append(f"Elevated error rate: {error_rate:.1f}%")

        # Latency and quality only describe successful executions
        if stats["totalExecutions"] > stats["totalErrors"]:
            latency = stats["averageExecutionTime"]
            if latency > LATENCY_THRESHOLDS_MS[1]:
                checks.append(HealthStatus.CRITICAL)
                issues.append(f"Slow response time: {latency / 1000:.1f}s")
            elif latency > LATENCY_THRESHOLDS_MS[0]:
                checks.append(HealthStatus.WARNING)
                issues.append(f"Elevated response time: {latency / 1000:.1f}s")

            quality = stats["averageQualityScore"]
            if quality < QUALITY_THRESHOLDS[1]:
                checks.append(HealthStatus.CRITICAL)
                issues.append(f"Low quality score: {quality:.1f}")
            elif quality < QUALITY_THRESHOLDS[0]:
                checks.append(HealthStatus.WARNING)
                issues.append(f"Below target quality score: {quality:.1f}")

        status = worst_status(*checks)
        if status != HealthStatus.HEALTHY:
            logger.warning("Task health degraded", task_id=self.task_id,
                           status=status.value, issues=issues)

        return {
            "status": status.value,
            "issues": issues,
            "metrics": {
                "errorRate": error_rate,
                "avgResponseTime": stats["averageExecutionTime"],
                "cacheHitRate": stats["cacheHitRate"],
                "qualityScore": stats["averageQualityScore"],
            },
        }

    def export(self) -> Dict[str, Any]:
        with self._lock:
            executions = [asdict(e) for e in self._executions]
            errors = [asdict(e) for e in self._errors]
        for event in executions + errors:
            event["timestamp"] = event["timestamp"].isoformat()
        return {
            "taskId": self.task_id,
            "executions": executions,
            "errors": errors,
            "aggregated": self.aggregate(),
            "percentiles": self.percentiles(),
            "exportedAt": self._clock().isoformat(),
        }

    def clear(self) -> None:
        with self._lock:
            self._executions.clear()
            self._errors.clear()
