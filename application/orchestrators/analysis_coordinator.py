# application/orchestrators/analysis_coordinator.py
from typing import Dict, Any, Optional, List, Iterable, Tuple
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from functools import partial
import asyncio
import time
import uuid

from pydantic import ValidationError as SchemaValidationError

from application.services.metrics_collector import HealthStatus, MetricsCollector, worst_status
from domain.models.agent_context import (
    DataFreshness, ExecutionContext, LLMProviderKind, TaskConfig, UserProfile,
)
from domain.models.agent_result import AgentMetrics, AgentResult, ErrorInfo, QualityThresholds
from domain.models.agent_status import AgentStatus
from domain.models.analysis import (
    CompositeAnalysisInput, CompositeAnalysisOutput, DataFreshnessInfo,
    OrchestrationMetadata, QualityMetrics, TaskFailure,
)
from domain.models.errors import OrchestrationError
from infrastructure.agents.base_agent import BaseAgent
from infrastructure.agents.financial_modeling_agent import FinancialModelingAgent
from infrastructure.agents.founder_fit_agent import FounderFitAgent
from infrastructure.agents.market_research_agent import MARKET_DATA_SOURCE, MarketResearchAgent
from infrastructure.agents.risk_assessment_agent import RiskAssessmentAgent
from infrastructure.providers.data_sources import ExternalDataSource, create_data_source
from infrastructure.providers.text_generation import MockTextGenerator, TextGenerator, create_text_generator
from infrastructure.resilience.circuit_breaker import CircuitBreakerRegistry
from infrastructure.storage.cache_store import CacheStore, MemoryCacheStore, create_cache_store
from shared.config import Settings
from shared.data_paths import get_path, set_path
from shared.logging import logger, log_orchestration

class OrchestrationPhase(Enum):
    RECEIVED = "received"
    VALIDATING_INPUT = "validating-input"
    RUNNING_TASKS = "running-tasks"
    AGGREGATING = "aggregating"
    DONE = "done"

@dataclass(frozen=True)
class TaskSpec:
    field: str      # attribute on EnabledTasks and CompositeAnalysisOutput
    task_id: str

# Explicit task map; market research is the primary task
TASK_SPECS: Tuple[TaskSpec, ...] = (
    TaskSpec("market_research", "market-research"),
    TaskSpec("financial_modeling", "financial-modeling"),
    TaskSpec("founder_fit", "founder-fit"),
    TaskSpec("risk_assessment", "risk-assessment"),
)
PRIMARY_TASK = "market_research"

# Active executions above these counts degrade health
ACTIVE_LOAD_THRESHOLDS = (10, 50)

CONSISTENCY_PLACEHOLDER = 80.0

CANCELLED = "CANCELLED"
DEPENDENCY_FAILED = "DEPENDENCY_FAILED"
INVALID_REQUEST = "INVALID_REQUEST"

def _failure_code(task_id: str) -> str:
    return f"{task_id.upper().replace('-', '_')}_FAILED"

class AnalysisCoordinator:
    """Runs the enabled analysis tasks for one request and aggregates their results"""

    def __init__(self,
                 agents: Iterable[BaseAgent],
                 metrics: Optional[MetricsCollector] = None,
                 quality_thresholds: Optional[QualityThresholds] = None,
                 circuit_breakers: Optional[CircuitBreakerRegistry] = None,
                 cache: Optional[CacheStore] = None,
                 resources: Iterable[Any] = ()):
        self.agents: Dict[str, BaseAgent] = {agent.task_id: agent for agent in agents}
        self.metrics = metrics or MetricsCollector("orchestrator")
        self.quality_thresholds = quality_thresholds or QualityThresholds()
        self.circuit_breakers = circuit_breakers
        self.cache = cache
        # Objects with an async close(): generators, data sources, cache
        self._resources = list(resources)

        self._active: Dict[str, Dict[str, Any]] = {}
        self._task_handles: Dict[str, Dict[str, asyncio.Task]] = {}

    @property
    def data_source_names(self) -> List[str]:
        names = set()
        for agent in self.agents.values():
            names.update(agent.data_sources.keys())
        return sorted(names)

    async def analyze(self, request: Any) -> CompositeAnalysisOutput:
        """Run every enabled task for the request; never raises on task failure"""
        request_id = f"req_{uuid.uuid4().hex}"
        start = time.perf_counter()
        self._active[request_id] = {
            "startTime": datetime.now(timezone.utc).isoformat(),
            "phase": OrchestrationPhase.RECEIVED.value,
            "tasks": {},
        }
        log_orchestration(request_id, OrchestrationPhase.RECEIVED.value)

        try:
            self._set_phase(request_id, OrchestrationPhase.VALIDATING_INPUT)
            try:
                analysis_input = (request if isinstance(request, CompositeAnalysisInput)
                                  else CompositeAnalysisInput.model_validate(request))
            except SchemaValidationError as e:
                return self._invalid_request(request_id, e, start)

            context = self._build_context(request_id, analysis_input)

            self._set_phase(request_id, OrchestrationPhase.RUNNING_TASKS)
            results = await self._run_tasks(analysis_input, context)

            self._set_phase(request_id, OrchestrationPhase.AGGREGATING)
            output = self._aggregate(request_id, results, start)

            self._set_phase(request_id, OrchestrationPhase.DONE,
                            success=output.success,
                            agents_executed=output.metadata.agents_executed,
                            agents_failed=output.metadata.agents_failed)
            self._record_composite(request_id, output, results)
            return output

        except asyncio.CancelledError:
            logger.warning("Analysis cancelled", request_id=request_id)
            raise
        except Exception as e:
            logger.error("Analysis aggregation failed", request_id=request_id, error=str(e), exc_info=True)
            elapsed = self._elapsed_ms(start)
            self.metrics.record_error(OrchestrationError.code, str(e), request_id=request_id,
                                      execution_time=elapsed)
            return CompositeAnalysisOutput(
                success=False,
                request_id=request_id,
                metadata=OrchestrationMetadata(total_execution_time=elapsed),
                error=ErrorInfo(code=OrchestrationError.code, message=str(e)),
            )
        finally:
            self._active.pop(request_id, None)
            self._task_handles.pop(request_id, None)

    # Request handling

    def _invalid_request(self, request_id: str, error: SchemaValidationError,
                         start: float) -> CompositeAnalysisOutput:
        issues = [
            {"field": ".".join(str(part) for part in e["loc"]), "message": e["msg"]}
            for e in error.errors()
        ]
        message = "; ".join(f"{i['field']}: {i['message']}" for i in issues)
        logger.warning("Invalid analysis request", request_id=request_id, issues=issues)
        self.metrics.record_error(INVALID_REQUEST, message, request_id=request_id,
                                  execution_time=self._elapsed_ms(start))
        return CompositeAnalysisOutput(
            success=False,
            request_id=request_id,
            metadata=OrchestrationMetadata(),
            quality_metrics=QualityMetrics(),
            error=ErrorInfo(code=INVALID_REQUEST, message=f"Invalid request: {message}", details=issues),
        )

    def _build_context(self, request_id: str, analysis_input: CompositeAnalysisInput) -> ExecutionContext:
        user = analysis_input.user_context
        profile = None
        if user is not None:
            profile = UserProfile(
                skills=tuple(user.skills),
                experience=tuple(user.experience),
                interests=tuple(user.interests),
                budget=user.budget,
                timeframe=user.timeframe,
            )
        freshness = None
        if analysis_input.data_freshness is not None:
            freshness = DataFreshness(
                max_age=analysis_input.data_freshness.max_age,
                force_refresh=analysis_input.data_freshness.force_refresh,
            )
        return ExecutionContext(
            request_id=request_id,
            user_id=analysis_input.user_id,
            analysis_depth=analysis_input.analysis_depth,
            user_profile=profile,
            data_freshness=freshness,
        )

    def task_input(self, spec: TaskSpec, analysis_input: CompositeAnalysisInput) -> Dict[str, Any]:
        """Task-specific view of the composite request, as camelCase data"""
        idea = analysis_input.idea
        if spec.field == "market_research":
            return {
                "title": idea.title,
                "description": idea.description,
                "category": idea.category,
                "tier": idea.tier,
            }

        view: Dict[str, Any] = {
            "ideaText": idea.description,
            "title": idea.title,
            "category": idea.category,
            "userContext": self._founder_context(analysis_input),
        }
        user = analysis_input.user_context
        if spec.field == "founder_fit" and user is not None:
            profile: Dict[str, Any] = {"expertise": list(user.skills)}
            if user.experience:
                profile["previousExperience"] = "; ".join(user.experience)
                profile["background"] = user.experience[0]
            if user.interests:
                profile["motivation"] = ", ".join(user.interests)
            view["founderProfile"] = profile
        if spec.field == "risk_assessment" and user is not None and user.experience:
            view["teamProfile"] = {"founderExperience": "; ".join(user.experience)}
        return view

    @staticmethod
    def _founder_context(analysis_input: CompositeAnalysisInput) -> Dict[str, Any]:
        user = analysis_input.user_context
        if user is None:
            return {}
        context = {}
        if user.budget is not None:
            context["budget"] = f"{user.budget:g}"
        if user.timeframe:
            context["timeline"] = user.timeframe
        if user.experience:
            context["experience"] = "; ".join(user.experience)
        return context

    # Task execution

    async def _run_tasks(self, analysis_input: CompositeAnalysisInput,
                         context: ExecutionContext) -> Dict[str, AgentResult]:
        request_id = context.request_id
        enabled = [spec for spec in TASK_SPECS if getattr(analysis_input.enabled_tasks, spec.field)]
        if not enabled:
            return {}

        handles: Dict[str, asyncio.Task] = {}
        self._task_handles[request_id] = handles
        registry_tasks = self._active[request_id]["tasks"]
        for spec in enabled:
            registry_tasks[spec.task_id] = AgentStatus.IDLE.value
        # Every handle exists before any task starts, so dependents can find upstreams
        for spec in enabled:
            handles[spec.task_id] = asyncio.create_task(
                self._run_task(spec, analysis_input, context, handles),
                name=f"{request_id}:{spec.task_id}",
            )

        outcomes = await asyncio.gather(*handles.values(), return_exceptions=True)

        results: Dict[str, AgentResult] = {}
        for spec, outcome in zip(enabled, outcomes):
            if isinstance(outcome, AgentResult):
                results[spec.field] = outcome
            elif isinstance(outcome, asyncio.CancelledError):
                registry_tasks[spec.task_id] = "cancelled"
                results[spec.field] = self._synthetic_failure(spec, CANCELLED, "Task was cancelled")
            else:
                results[spec.field] = self._synthetic_failure(spec, _failure_code(spec.task_id), str(outcome))
        return results

    async def _run_task(self, spec: TaskSpec, analysis_input: CompositeAnalysisInput,
                        context: ExecutionContext, handles: Dict[str, asyncio.Task]) -> AgentResult:
        agent = self.agents.get(spec.task_id)
        try:
            if agent is None:
                raise OrchestrationError(f"No agent configured for {spec.task_id}")

            payload = self.task_input(spec, analysis_input)
            for dependency in agent.DEPENDENCIES:
                upstream = handles.get(dependency.task_id)
                if upstream is None:
                    if dependency.required:
                        return self._synthetic_failure(
                            spec, DEPENDENCY_FAILED, f"Required task {dependency.task_id} is not enabled")
                    continue

                # wait() rather than await: a cancelled upstream must not cancel this task
                await asyncio.wait([upstream])
                upstream_result = None if upstream.cancelled() else upstream.result()
                if upstream_result is None or not upstream_result.success:
                    if dependency.required:
                        return self._synthetic_failure(
                            spec, DEPENDENCY_FAILED, f"Required task {dependency.task_id} failed")
                    logger.info("Optional upstream unavailable, continuing without it",
                                request_id=context.request_id, task_id=spec.task_id,
                                upstream=dependency.task_id)
                    continue

                for source_path, target_path in dependency.data_mapping.items():
                    value = get_path(upstream_result.data, source_path)
                    if value is not None:
                        set_path(payload, target_path, value)

            return await agent.execute(
                payload,
                context,
                status_listener=partial(self._record_task_status, context.request_id, spec.task_id),
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Task failed outside the executor", request_id=context.request_id,
                         task_id=spec.task_id, error=str(e), exc_info=True)
            return self._synthetic_failure(spec, _failure_code(spec.task_id), str(e) or type(e).__name__)

    def _synthetic_failure(self, spec: TaskSpec, code: str, message: str) -> AgentResult:
        agent = self.agents.get(spec.task_id)
        version = agent.config.version if agent else "unknown"
        return AgentResult.failure(
            spec.task_id,
            version,
            code,
            message,
            AgentMetrics(execution_time=0, error_count=1),
        )

    def _record_task_status(self, request_id: str, task_id: str, status: AgentStatus) -> None:
        entry = self._active.get(request_id)
        if entry is not None:
            entry["tasks"][task_id] = status.value

    def _set_phase(self, request_id: str, phase: OrchestrationPhase, **context: Any) -> None:
        entry = self._active.get(request_id)
        if entry is not None:
            entry["phase"] = phase.value
        log_orchestration(request_id, phase.value, **context)

    # Aggregation

    def _aggregate(self, request_id: str, results: Dict[str, AgentResult],
                   start: float) -> CompositeAnalysisOutput:
        executed = [r.metadata.task_id for r in results.values() if r.success]
        failed = [r.metadata.task_id for r in results.values() if not r.success]
        failures = [
            TaskFailure(task_id=r.metadata.task_id, code=r.error.code, message=r.error.message)
            for r in results.values() if not r.success and r.error is not None
        ]
        successful = [r for r in results.values() if r.success]
        overall_confidence = (
            sum(r.metadata.confidence for r in successful) / len(successful) if successful else 0.0
        )

        return CompositeAnalysisOutput(
            success=not failed,
            request_id=request_id,
            metadata=OrchestrationMetadata(
                total_execution_time=self._elapsed_ms(start),
                agents_executed=executed,
                agents_failed=failed,
                failures=failures,
                overall_confidence=overall_confidence,
                data_freshness=DataFreshnessInfo(sources=self.data_source_names),
            ),
            quality_metrics=self.quality_metrics(results),
            **results,
        )

    def quality_metrics(self, results: Dict[str, AgentResult]) -> QualityMetrics:
        completeness = 0.0
        actionability = 0.0
        for spec in TASK_SPECS:
            result = results.get(spec.field)
            agent = self.agents.get(spec.task_id)
            if result is None or not result.success or agent is None:
                continue
            completeness += agent.completeness_score(result.data)
            actionability += agent.actionability_score(result.data)

        primary = results.get(PRIMARY_TASK)
        reliability = primary.metadata.confidence if primary is not None and primary.success else 0.0

        return QualityMetrics(
            completeness=min(100.0, completeness),
            consistency=self.assess_consistency(results),
            actionability=min(100.0, actionability),
            reliability=reliability,
        )

    def assess_consistency(self, results: Dict[str, AgentResult]) -> float:
        """Cross-task agreement score; a fixed value until cross-task checks exist"""
        return CONSISTENCY_PLACEHOLDER if any(r.success for r in results.values()) else 0.0

    def _record_composite(self, request_id: str, output: CompositeAnalysisOutput,
                          results: Dict[str, AgentResult]) -> None:
        task_metrics = [r.metadata.metrics for r in results.values()]
        metrics = AgentMetrics(
            execution_time=output.metadata.total_execution_time,
            tokens_used=sum(m.tokens_used for m in task_metrics),
            api_calls=sum(m.api_calls for m in task_metrics),
            cache_hits=sum(m.cache_hits for m in task_metrics),
            cache_misses=sum(m.cache_misses for m in task_metrics),
            error_count=len(output.metadata.agents_failed),
            quality_score=output.metadata.overall_confidence,
        )
        if output.success:
            self.metrics.record_execution(metrics, request_id=request_id)
        else:
            self.metrics.record_error(
                "PARTIAL_FAILURE",
                f"Failed tasks: {', '.join(output.metadata.agents_failed)}",
                request_id=request_id,
                execution_time=metrics.execution_time,
            )

    @staticmethod
    def _elapsed_ms(start: float) -> int:
        return max(0, int((time.perf_counter() - start) * 1000))

    # Observability and control

    def list_active_executions(self) -> List[Dict[str, Any]]:
        return [
            {"requestId": request_id, "startTime": entry["startTime"],
             "phase": entry["phase"], "tasks": dict(entry["tasks"])}
            for request_id, entry in self._active.items()
        ]

    def cancel_request(self, request_id: str) -> bool:
        """Cancel the in-flight tasks of a request; False if it is not running"""
        handles = self._task_handles.get(request_id)
        if not handles:
            return False
        cancelled = [task_id for task_id, task in handles.items() if task.cancel()]
        logger.info("Request cancellation requested", request_id=request_id, tasks=cancelled)
        return True

    def get_task_metrics(self, task_id: str, hours: float = 24) -> Optional[Dict[str, Any]]:
        collector = self.metrics if task_id == self.metrics.task_id else None
        if collector is None and task_id in self.agents:
            collector = self.agents[task_id].metrics
        if collector is None:
            return None
        return {
            "taskId": task_id,
            "aggregated": collector.aggregate(hours),
            "percentiles": collector.percentiles(hours),
            "errorDistribution": collector.error_distribution(hours),
            "health": collector.health_check(),
        }

    def get_health_status(self) -> Dict[str, Any]:
        task_health = {task_id: agent.metrics.health_check() for task_id, agent in self.agents.items()}

        active = len(self._active)
        if active > ACTIVE_LOAD_THRESHOLDS[1]:
            load_status = HealthStatus.CRITICAL
        elif active > ACTIVE_LOAD_THRESHOLDS[0]:
            load_status = HealthStatus.WARNING
        else:
            load_status = HealthStatus.HEALTHY

        status = worst_status(load_status, *(HealthStatus(h["status"]) for h in task_health.values()))
        return {
            "status": status.value,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "activeExecutions": active,
            "tasks": task_health,
            "orchestrator": self.metrics.health_check(),
            "circuitBreakers": self.circuit_breakers.get_all_status() if self.circuit_breakers else {},
        }

    async def close(self) -> None:
        for resource in self._resources:
            try:
                await resource.close()
            except Exception as e:
                logger.warning("Failed to close resource", resource=type(resource).__name__, error=str(e))

# Factories

TASK_AGENTS = (
    (MarketResearchAgent, "market-research", "Market Research", 0.3),
    (FinancialModelingAgent, "financial-modeling", "Financial Modeling", 0.2),
    (FounderFitAgent, "founder-fit", "Founder Fit", 0.4),
    (RiskAssessmentAgent, "risk-assessment", "Risk Assessment", 0.3),
)

def build_agents(text_generator: TextGenerator,
                 cache: CacheStore,
                 market_data: Optional[ExternalDataSource] = None,
                 provider: LLMProviderKind = LLMProviderKind.MOCK,
                 timeout: float = 60.0,
                 max_metric_entries: int = 1000,
                 circuit_breakers: Optional[CircuitBreakerRegistry] = None,
                 quality_thresholds: Optional[QualityThresholds] = None,
                 **agent_options: Any) -> List[BaseAgent]:
    agents = []
    for agent_cls, task_id, name, temperature in TASK_AGENTS:
        data_sources = {}
        if agent_cls is MarketResearchAgent and market_data is not None:
            data_sources[MARKET_DATA_SOURCE] = market_data
        agents.append(agent_cls(
            TaskConfig(task_id=task_id, name=name, llm_provider=provider,
                       temperature=temperature, timeout=timeout),
            text_generator,
            cache=cache,
            data_sources=data_sources,
            metrics=MetricsCollector(task_id, max_entries=max_metric_entries),
            circuit_breakers=circuit_breakers,
            quality_thresholds=quality_thresholds,
            **agent_options,
        ))
    return agents

def create_coordinator(settings: Optional[Settings] = None) -> AnalysisCoordinator:
    """Coordinator wired from configuration"""
    settings = settings or Settings.from_env()

    cache_options: Dict[str, Any] = {}
    if settings.cache_backend == "redis":
        cache_options = {"url": settings.redis_url, "key_prefix": settings.cache_key_prefix}
    elif settings.cache_backend == "postgres":
        cache_options = {"database_url": settings.database_url}
    cache = create_cache_store(settings.cache_backend, **cache_options)

    text_generator = create_text_generator(settings.llm_provider, settings.llm_api_key)

    source_options: Dict[str, Any] = {}
    if settings.market_data_source == "http":
        source_options = {"base_url": settings.market_data_url, "api_key": settings.market_data_api_key}
    market_data = create_data_source(settings.market_data_source, MARKET_DATA_SOURCE, **source_options)

    circuit_breakers = CircuitBreakerRegistry()
    thresholds = QualityThresholds()
    agents = build_agents(
        text_generator,
        cache,
        market_data=market_data,
        provider=LLMProviderKind(settings.llm_provider),
        timeout=settings.task_timeout_seconds,
        max_metric_entries=settings.metrics_max_entries,
        circuit_breakers=circuit_breakers,
        quality_thresholds=thresholds,
    )

    logger.info("Coordinator created",
                llm_provider=settings.llm_provider,
                cache_backend=settings.cache_backend,
                market_data_source=settings.market_data_source)

    return AnalysisCoordinator(
        agents,
        metrics=MetricsCollector("orchestrator", max_entries=settings.metrics_max_entries),
        quality_thresholds=thresholds,
        circuit_breakers=circuit_breakers,
        cache=cache,
        resources=[r for r in (text_generator, market_data, cache) if r is not None],
    )

def create_development_coordinator(text_generator: Optional[TextGenerator] = None,
                                   cache: Optional[CacheStore] = None,
                                   market_data: Optional[ExternalDataSource] = None) -> AnalysisCoordinator:
    """Mock generator and in-memory cache; no external data unless given"""
    text_generator = text_generator or MockTextGenerator()
    cache = cache or MemoryCacheStore()
    circuit_breakers = CircuitBreakerRegistry()
    thresholds = QualityThresholds()
    agents = build_agents(
        text_generator,
        cache,
        market_data=market_data,
        circuit_breakers=circuit_breakers,
        quality_thresholds=thresholds,
    )
    return AnalysisCoordinator(
        agents,
        quality_thresholds=thresholds,
        circuit_breakers=circuit_breakers,
        cache=cache,
        resources=[r for r in (text_generator, market_data, cache) if r is not None],
    )
