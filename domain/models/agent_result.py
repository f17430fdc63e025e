# domain/models/agent_result.py
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Pydantic base for plain-data payloads serialized with camelCase keys"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class FrozenCamelModel(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


@dataclass(frozen=True)
class ValidationIssue:
    field: str
    message: str
    severity: str = "error"  # error | warning | info

@dataclass(frozen=True)
class ValidationResult:
    """Shared shape for input validation, output validation and quality assurance"""
    is_valid: bool
    errors: List[ValidationIssue] = field(default_factory=list)
    confidence: float = 100.0
    suggestions: List[str] = field(default_factory=list)

    @classmethod
    def ok(cls, confidence: float = 100.0) -> "ValidationResult":
        return cls(is_valid=True, confidence=confidence)

    def error_messages(self) -> List[str]:
        return [f"{e.field}: {e.message}" for e in self.errors if e.severity == "error"]

@dataclass(frozen=True)
class QualityThresholds:
    minimum_confidence: float = 70.0
    data_completeness_threshold: float = 85.0
    consistency_threshold: float = 90.0
    actionability_threshold: float = 75.0


@dataclass
class MetricsAccumulator:
    """Mutable counters for a single execution; frozen into AgentMetrics at the end"""
    tokens_used: int = 0
    api_calls: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    error_count: int = 0

    def freeze(self, execution_time_ms: int, quality_score: float) -> "AgentMetrics":
        return AgentMetrics(
            execution_time=max(0, execution_time_ms),
            tokens_used=self.tokens_used,
            api_calls=self.api_calls,
            cache_hits=self.cache_hits,
            cache_misses=self.cache_misses,
            error_count=self.error_count,
            quality_score=quality_score,
        )


class AgentMetrics(FrozenCamelModel):
    execution_time: int = Field(..., ge=0, description="Milliseconds")
    tokens_used: int = 0
    api_calls: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    error_count: int = 0
    quality_score: float = Field(default=0.0, ge=0.0, le=100.0)


class ErrorInfo(FrozenCamelModel):
    code: str
    message: str
    details: Optional[Any] = None


class ResultMetadata(FrozenCamelModel):
    task_id: str
    version: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    metrics: AgentMetrics
    confidence: float = Field(..., ge=0.0, le=100.0)


class AgentResult(FrozenCamelModel):
    """Outcome of one execute() call"""
    success: bool
    data: Optional[Any] = None
    error: Optional[ErrorInfo] = None
    metadata: ResultMetadata

    @classmethod
    def failure(cls, task_id: str, version: str, code: str, message: str,
                metrics: AgentMetrics, details: Optional[Any] = None) -> "AgentResult":
        return cls(
            success=False,
            error=ErrorInfo(code=code, message=message, details=details),
            metadata=ResultMetadata(
                task_id=task_id,
                version=version,
                metrics=metrics,
                confidence=0.0,
            ),
        )
