# infrastructure/agents/base_agent.py
"""
Task executor shared by every analysis agent.

execute() runs the fixed pipeline: validate input, look up the cache, process,
validate output, apply the quality gate, write the cache and build the result.
Task errors never escape execute(); they come back as a failed AgentResult.
Only asyncio.CancelledError propagates.
"""

import asyncio
import hashlib
import json
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Type, TypeVar

from pydantic import ValidationError as SchemaValidationError

from application.services.metrics_collector import MetricsCollector
from domain.models.agent_context import AgentDependency, AnalysisDepth, ExecutionContext, TaskConfig
from domain.models.agent_result import (
    AgentResult, CamelModel, MetricsAccumulator, QualityThresholds,
    ResultMetadata, ValidationIssue, ValidationResult,
)
from domain.models.agent_status import AgentStatus, StatusListener, StatusTracker
from domain.models.errors import (
    AgentError, CircuitOpenError, ProviderError, ProviderTimeoutError,
    QualityGateWarning, TaskTimeoutError, ValidationError,
)
from infrastructure.providers.data_sources import DataSourceResponse, ExternalDataSource
from infrastructure.providers.text_generation import GenerationResult, TextGenerator
from infrastructure.resilience.circuit_breaker import CircuitBreakerRegistry
from infrastructure.storage.cache_store import CacheStore, NullCacheStore
from shared.data_paths import path_present
from shared.logging import log_agent_execution, log_cache_event, log_provider_retry, log_quality_gate, logger

T = TypeVar("T")

OUTPUT_VALIDATION_FAILED = "OUTPUT_VALIDATION_FAILED"

_JSON_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")

DEPTH_GUIDANCE = {
    AnalysisDepth.BASIC: "Keep the analysis brief: one or two items per list.",
    AnalysisDepth.STANDARD: "Provide a balanced analysis with two to four items per list.",
    AnalysisDepth.COMPREHENSIVE: "Be exhaustive: cover every relevant item and quantify wherever possible.",
}


@dataclass(frozen=True)
class WeightedSection:
    """A scored part of a task output, addressed by camelCase dotted path"""
    path: str
    weight: float
    min_items: int = 1

    def present_in(self, data: Dict[str, Any]) -> bool:
        return path_present(data, self.path, self.min_items)


@dataclass
class ExecutionScope:
    """State owned by a single execute() call"""
    context: ExecutionContext
    tracker: StatusTracker
    metrics: MetricsAccumulator = field(default_factory=MetricsAccumulator)

    @property
    def request_id(self) -> str:
        return self.context.request_id


def _schema_issues(error: SchemaValidationError):
    return [
        ValidationIssue(field=".".join(str(part) for part in e["loc"]) or "<root>", message=e["msg"])
        for e in error.errors()
    ]


class BaseAgent(ABC):
    """Executor for one analysis task type.

    Subclasses declare their schemas and scoring sections, and implement
    process_request() and assess_quality().
    """

    TASK_KEY: str = ""
    INPUT_SCHEMA: Type[CamelModel]
    OUTPUT_SCHEMA: Type[CamelModel]
    DEPENDENCIES: Tuple[AgentDependency, ...] = ()

    # Completeness: base weight for a successful result plus the weight of each
    # expected section present in the output
    COMPLETENESS_BASE_WEIGHT: float = 15.0
    COMPLETENESS_SECTIONS: Tuple[WeightedSection, ...] = ()
    # Actionability: quantified, decision-relevant fields
    ACTIONABILITY_FIELDS: Tuple[WeightedSection, ...] = ()

    def __init__(
        self,
        config: TaskConfig,
        text_generator: TextGenerator,
        cache: Optional[CacheStore] = None,
        data_sources: Optional[Dict[str, ExternalDataSource]] = None,
        metrics: Optional[MetricsCollector] = None,
        circuit_breakers: Optional[CircuitBreakerRegistry] = None,
        quality_thresholds: Optional[QualityThresholds] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self.config = config
        self.text_generator = text_generator
        self.cache = cache or NullCacheStore()
        self.data_sources = data_sources or {}
        self.metrics = metrics or MetricsCollector(config.task_id)
        self.circuit_breakers = circuit_breakers
        self.quality_thresholds = quality_thresholds or QualityThresholds()
        self._sleep = sleep
        self._clock = clock

    @property
    def task_id(self) -> str:
        return self.config.task_id

    # Task hooks

    @abstractmethod
    async def process_request(self, payload: CamelModel, scope: ExecutionScope) -> Any:
        """Produce the task output (a dict or an OUTPUT_SCHEMA instance)"""

    @abstractmethod
    async def assess_quality(self, output: CamelModel, context: ExecutionContext) -> ValidationResult:
        """Return a ValidationResult whose confidence lies in [0, 100]"""

    def check_output(self, output: CamelModel) -> ValidationResult:
        """Semantic checks beyond the schema; override per task"""
        return ValidationResult.ok()

    # Pipeline

    async def execute(self, input_data: Any, context: ExecutionContext,
                      status_listener: Optional[StatusListener] = None) -> AgentResult:
        scope = ExecutionScope(context=context, tracker=StatusTracker(status_listener))
        start = self._clock()
        scope.tracker.transition(AgentStatus.INITIALIZING)

        try:
            payload = self.validate_input(input_data)
            cache_key = self.generate_cache_key(payload, context)

            cached = await self._read_cache(cache_key, context)
            if cached is not None:
                scope.metrics.cache_hits += 1
                scope.tracker.transition(AgentStatus.COMPLETED)
                return self._complete(cached, scope, start, confidence=100.0, cache_hit=True)

            scope.metrics.cache_misses += 1
            scope.tracker.transition(AgentStatus.PROCESSING)
            raw_output = await self.process_request(payload, scope)

            scope.tracker.transition(AgentStatus.VALIDATING)
            output = self.validate_output(raw_output)

            quality = await self.assess_quality(output, context)
            confidence = min(max(quality.confidence, 0.0), 100.0)
            if confidence < self.quality_thresholds.minimum_confidence:
                log_quality_gate(
                    self.task_id,
                    context.request_id,
                    confidence,
                    self.quality_thresholds.minimum_confidence,
                    quality.error_messages() + quality.suggestions,
                    warning=QualityGateWarning(f"{self.task_id} confidence {confidence:.1f} below minimum"),
                )

            data = output.to_dict()
            await self._write_cache(cache_key, data, context)

            scope.tracker.transition(AgentStatus.COMPLETED)
            return self._complete(data, scope, start, confidence=confidence)

        except asyncio.CancelledError:
            raise
        except Exception as e:
            return self._fail(e, scope, start)

    def validate_input(self, input_data: Any) -> CamelModel:
        if isinstance(input_data, self.INPUT_SCHEMA):
            return input_data
        try:
            return self.INPUT_SCHEMA.model_validate(input_data)
        except SchemaValidationError as e:
            issues = _schema_issues(e)
            raise ValidationError(
                f"Invalid {self.task_id} input: " + "; ".join(f"{i.field}: {i.message}" for i in issues),
                errors=[{"field": i.field, "message": i.message, "severity": i.severity} for i in issues],
            ) from e

    def validate_output(self, raw_output: Any) -> CamelModel:
        try:
            output = (raw_output if isinstance(raw_output, self.OUTPUT_SCHEMA)
                      else self.OUTPUT_SCHEMA.model_validate(raw_output))
        except SchemaValidationError as e:
            issues = _schema_issues(e)
            raise ValidationError(
                f"Invalid {self.task_id} output: " + "; ".join(f"{i.field}: {i.message}" for i in issues),
                errors=[{"field": i.field, "message": i.message, "severity": i.severity} for i in issues],
                code=OUTPUT_VALIDATION_FAILED,
            ) from e

        checks = self.check_output(output)
        if not checks.is_valid:
            raise ValidationError(
                f"Invalid {self.task_id} output: " + "; ".join(checks.error_messages()),
                errors=[{"field": i.field, "message": i.message, "severity": i.severity} for i in checks.errors],
                code=OUTPUT_VALIDATION_FAILED,
            )
        return output

    def generate_cache_key(self, payload: CamelModel, context: ExecutionContext) -> str:
        material = {
            "taskId": self.task_id,
            "version": self.config.version,
            "input": payload.model_dump(by_alias=True, mode="json"),
            "analysisDepth": context.analysis_depth.value,
            "userProfile": context.user_profile.to_dict() if context.user_profile else None,
        }
        canonical = json.dumps(material, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    async def _read_cache(self, key: str, context: ExecutionContext) -> Optional[Dict[str, Any]]:
        if context.data_freshness and context.data_freshness.force_refresh:
            return None
        try:
            raw = await asyncio.wait_for(self.cache.get(key), timeout=self.config.timeout)
        except asyncio.TimeoutError:
            log_cache_event(self.cache.backend, "get", key, "deadline exceeded")
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            log_cache_event(self.cache.backend, "decode", key, str(e))
            return None

    async def _write_cache(self, key: str, data: Dict[str, Any], context: ExecutionContext) -> None:
        ttl = context.data_freshness.max_age if context.data_freshness else self.config.cache_ttl
        try:
            await asyncio.wait_for(
                self.cache.set(key, json.dumps(data, separators=(",", ":")), ttl=ttl),
                timeout=self.config.timeout,
            )
        except asyncio.TimeoutError:
            log_cache_event(self.cache.backend, "set", key, "deadline exceeded")

    def _elapsed_ms(self, start: float) -> int:
        return max(0, int((self._clock() - start) * 1000))

    def _complete(self, data: Dict[str, Any], scope: ExecutionScope, start: float,
                  confidence: float, cache_hit: bool = False) -> AgentResult:
        metrics = scope.metrics.freeze(self._elapsed_ms(start), quality_score=confidence)
        result = AgentResult(
            success=True,
            data=data,
            metadata=ResultMetadata(
                task_id=self.task_id,
                version=self.config.version,
                metrics=metrics,
                confidence=confidence,
            ),
        )
        self.metrics.record_execution(metrics, request_id=scope.request_id)
        log_agent_execution(
            task_id=self.task_id,
            request_id=scope.request_id,
            execution_time_ms=metrics.execution_time,
            tokens_used=metrics.tokens_used,
            success=True,
            cache_hit=cache_hit,
            confidence_score=confidence,
        )
        return result

    def _fail(self, error: Exception, scope: ExecutionScope, start: float) -> AgentResult:
        timed_out = isinstance(error, TaskTimeoutError)
        if not scope.tracker.is_terminal:
            scope.tracker.transition(AgentStatus.TIMEOUT if timed_out else AgentStatus.FAILED)

        scope.metrics.error_count += 1
        if isinstance(error, AgentError):
            code, message, details = error.code, error.message, error.details
        else:
            code, message, details = AgentError.code, str(error) or type(error).__name__, None
            logger.error("Unexpected task error", task_id=self.task_id,
                         request_id=scope.request_id, exc_info=True)

        metrics = scope.metrics.freeze(self._elapsed_ms(start), quality_score=0.0)
        self.metrics.record_error(code, message, request_id=scope.request_id,
                                  execution_time=metrics.execution_time)
        log_agent_execution(
            task_id=self.task_id,
            request_id=scope.request_id,
            execution_time_ms=metrics.execution_time,
            tokens_used=metrics.tokens_used,
            success=False,
            error_code=code,
            error_message=message,
        )
        return AgentResult.failure(self.task_id, self.config.version, code, message, metrics, details)

    # Provider access

    async def _call_with_retry(self, scope: ExecutionScope, provider_name: str,
                               operation: Callable[[], Awaitable[T]]) -> T:
        """Run operation under the per-call deadline, retrying with exponential backoff"""
        retry = self.config.retry_config
        breaker = self.circuit_breakers.get_breaker(provider_name) if self.circuit_breakers else None

        async def attempt_once():
            return await asyncio.wait_for(operation(), timeout=self.config.timeout)

        attempt = 0
        while True:
            scope.metrics.api_calls += 1
            try:
                if breaker is not None:
                    return await breaker.call(attempt_once)
                return await attempt_once()
            except (ValidationError, CircuitOpenError):
                raise
            except (ProviderError, asyncio.TimeoutError) as e:
                deadline = isinstance(e, (asyncio.TimeoutError, ProviderTimeoutError))
                if not deadline and not e.retryable:
                    raise
                if attempt >= retry.max_retries:
                    if deadline:
                        raise TaskTimeoutError(
                            f"{provider_name} call exceeded {self.config.timeout}s "
                            f"after {attempt + 1} attempt(s)",
                            details={"provider": provider_name, "attempts": attempt + 1},
                        ) from e
                    raise
                delay = retry.delay_for(attempt)
                log_provider_retry(self.task_id, provider_name, attempt + 1, delay,
                                   str(e) or type(e).__name__)
                await self._sleep(delay)
                attempt += 1

    async def call_text_generator(self, scope: ExecutionScope, prompt: str,
                                  temperature: Optional[float] = None,
                                  max_tokens: Optional[int] = None,
                                  format: str = "text") -> str:
        generator = self.text_generator

        async def _generate() -> GenerationResult:
            return await generator.generate(
                prompt,
                temperature=self.config.temperature if temperature is None else temperature,
                max_tokens=max_tokens or self.config.max_tokens,
                format=format,
            )

        result = await self._call_with_retry(scope, generator.provider_name, _generate)
        scope.metrics.tokens_used += result.tokens_used
        return result.text

    def has_data_source(self, name: str) -> bool:
        return name in self.data_sources

    async def fetch_external_data(self, scope: ExecutionScope, source_name: str,
                                  query: Dict[str, Any]) -> DataSourceResponse:
        source = self.data_sources.get(source_name)
        if source is None:
            raise AgentError(f"Data source {source_name} is not configured for {self.task_id}")
        return await self._call_with_retry(scope, source_name, lambda: source.fetch_data(query))

    # Parsing

    def parse_json(self, text: str) -> Dict[str, Any]:
        """Parse model output, tolerating a surrounding markdown code fence"""
        try:
            parsed = json.loads(_JSON_FENCE.sub("", text.strip()))
        except ValueError as e:
            raise ValidationError(
                f"{self.task_id} response is not valid JSON: {e}",
                code=OUTPUT_VALIDATION_FAILED,
            ) from e
        if not isinstance(parsed, dict):
            raise ValidationError(
                f"{self.task_id} response must be a JSON object",
                code=OUTPUT_VALIDATION_FAILED,
            )
        return parsed

    # Coordinator scoring

    @classmethod
    def completeness_score(cls, data: Dict[str, Any]) -> float:
        return cls.COMPLETENESS_BASE_WEIGHT + sum(
            section.weight for section in cls.COMPLETENESS_SECTIONS if section.present_in(data)
        )

    @classmethod
    def actionability_score(cls, data: Dict[str, Any]) -> float:
        return sum(
            section.weight for section in cls.ACTIONABILITY_FIELDS if section.present_in(data)
        )

    @staticmethod
    def depth_guidance(context: ExecutionContext) -> str:
        return DEPTH_GUIDANCE[context.analysis_depth]
