# tests/unit/infrastructure/agents/test_base_agent.py
import pytest
import asyncio
import json
from dataclasses import replace
from unittest.mock import AsyncMock, MagicMock

from pydantic import Field
from redis.exceptions import ConnectionError as RedisConnectionError

from application.services.metrics_collector import MetricsCollector
from domain.models.agent_context import (
    AnalysisDepth, DataFreshness, RetryConfig, TaskConfig, UserProfile
)
from domain.models.agent_result import CamelModel, ValidationResult
from domain.models.agent_status import AgentStatus
from domain.models.errors import AgentError, ProviderError, ProviderTimeoutError, ValidationError
from infrastructure.agents import base_agent as base_agent_module
from infrastructure.agents.base_agent import BaseAgent, WeightedSection
from infrastructure.providers.text_generation import GenerationResult, TextGenerator
from infrastructure.resilience.circuit_breaker import CircuitBreakerRegistry
from infrastructure.storage.cache_store import MemoryCacheStore, RedisCacheStore

class EchoInput(CamelModel):
    topic: str = Field(..., min_length=1)

class EchoOutput(CamelModel):
    summary_text: str
    score: float = Field(..., ge=0, le=100)
    next_steps: list = Field(default_factory=list)

class EchoAgent(BaseAgent):
    """Minimal task: asks the generator for JSON and scores it by its own score field"""

    INPUT_SCHEMA = EchoInput
    OUTPUT_SCHEMA = EchoOutput
    COMPLETENESS_SECTIONS = (WeightedSection("summaryText", 10),)
    ACTIONABILITY_FIELDS = (WeightedSection("nextSteps", 20, min_items=2),)

    async def process_request(self, payload, scope):
        text = await self.call_text_generator(scope, f"Task: echo\n\nTopic: {payload.topic}", format="json")
        return self.parse_json(text)

    async def assess_quality(self, output, context):
        return ValidationResult(is_valid=True, confidence=output.score)

class ScriptedGenerator(TextGenerator):
    """Plays back a script of texts, exceptions or awaitable factories"""

    provider_name = "scripted"

    def __init__(self, *script):
        self.script = list(script)
        self.calls = 0

    async def generate(self, prompt, temperature=0.3, max_tokens=4000, format="text"):
        step = self.script[min(self.calls, len(self.script) - 1)]
        self.calls += 1
        if isinstance(step, BaseException):
            raise step
        if callable(step):
            step = await step()
        return GenerationResult(text=step, tokens_used=100, model="scripted")

GOOD_OUTPUT = json.dumps({"summaryText": "fine", "score": 88, "nextSteps": ["a", "b"]})

def make_agent(generator, cache=None, timeout=5.0, max_retries=3, cache_ttl=3600, **kwargs):
    config = TaskConfig(
        task_id="echo",
        name="Echo",
        timeout=timeout,
        cache_ttl=cache_ttl,
        retry_config=RetryConfig(max_retries=max_retries, backoff_multiplier=2.0, initial_delay=1.0),
    )
    return EchoAgent(config, generator, cache=cache, **kwargs)

class TestExecute:

    @pytest.mark.asyncio
    async def test_successful_execution(self, execution_context, recording_sleep):
        generator = ScriptedGenerator(GOOD_OUTPUT)
        collector = MetricsCollector("echo")
        statuses = []
        agent = make_agent(generator, cache=MemoryCacheStore(), metrics=collector, sleep=recording_sleep)

        result = await agent.execute({"topic": "x"}, execution_context, status_listener=statuses.append)

        assert result.success
        assert result.data == {"summaryText": "fine", "score": 88.0, "nextSteps": ["a", "b"]}
        assert result.metadata.task_id == "echo"
        assert result.metadata.confidence == 88
        assert result.metadata.metrics.api_calls == 1
        assert result.metadata.metrics.tokens_used == 100
        assert result.metadata.metrics.cache_misses == 1
        assert result.metadata.metrics.quality_score == 88
        assert statuses == [AgentStatus.INITIALIZING, AgentStatus.PROCESSING,
                            AgentStatus.VALIDATING, AgentStatus.COMPLETED]
        assert collector.aggregate()["totalExecutions"] == 1

    @pytest.mark.asyncio
    async def test_repeat_request_is_served_from_cache(self, execution_context):
        generator = ScriptedGenerator(GOOD_OUTPUT)
        statuses = []
        agent = make_agent(generator, cache=MemoryCacheStore())

        first = await agent.execute({"topic": "x"}, execution_context)
        second = await agent.execute({"topic": "x"}, execution_context, status_listener=statuses.append)

        assert generator.calls == 1
        assert second.data == first.data
        assert second.metadata.confidence == 100
        assert second.metadata.metrics.cache_hits == 1
        assert second.metadata.metrics.api_calls == 0
        assert statuses == [AgentStatus.INITIALIZING, AgentStatus.COMPLETED]

    @pytest.mark.asyncio
    async def test_cache_entry_expires(self, execution_context, fake_clock):
        generator = ScriptedGenerator(GOOD_OUTPUT)
        agent = make_agent(generator, cache=MemoryCacheStore(clock=fake_clock), cache_ttl=10)

        await agent.execute({"topic": "x"}, execution_context)
        fake_clock.advance(11)
        result = await agent.execute({"topic": "x"}, execution_context)

        assert generator.calls == 2
        assert result.metadata.metrics.cache_misses == 1

    @pytest.mark.asyncio
    async def test_freshness_max_age_sets_ttl(self, execution_context, fake_clock):
        generator = ScriptedGenerator(GOOD_OUTPUT)
        agent = make_agent(generator, cache=MemoryCacheStore(clock=fake_clock), cache_ttl=3600)
        context = replace(execution_context, data_freshness=DataFreshness(max_age=5))

        await agent.execute({"topic": "x"}, context)
        fake_clock.advance(6)
        await agent.execute({"topic": "x"}, context)

        assert generator.calls == 2

    @pytest.mark.asyncio
    async def test_force_refresh_bypasses_cache_read(self, execution_context):
        generator = ScriptedGenerator(GOOD_OUTPUT)
        agent = make_agent(generator, cache=MemoryCacheStore())
        refresh = replace(execution_context, data_freshness=DataFreshness(force_refresh=True))

        await agent.execute({"topic": "x"}, execution_context)
        result = await agent.execute({"topic": "x"}, refresh)

        assert generator.calls == 2
        assert result.metadata.metrics.cache_hits == 0

    @pytest.mark.asyncio
    async def test_corrupted_cache_entry_is_a_miss(self, execution_context):
        cache = MemoryCacheStore()
        generator = ScriptedGenerator(GOOD_OUTPUT)
        agent = make_agent(generator, cache=cache)
        key = agent.generate_cache_key(agent.validate_input({"topic": "x"}), execution_context)
        await cache.set(key, "{not json")

        result = await agent.execute({"topic": "x"}, execution_context)

        assert result.success
        assert generator.calls == 1

    @pytest.mark.asyncio
    async def test_cache_write_failure_does_not_fail_result(self, execution_context):
        client = MagicMock()
        client.get = AsyncMock(return_value=None)
        client.setex = AsyncMock(side_effect=RedisConnectionError("down"))
        agent = make_agent(ScriptedGenerator(GOOD_OUTPUT), cache=RedisCacheStore(client=client))

        result = await agent.execute({"topic": "x"}, execution_context)

        assert result.success
        client.setex.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_invalid_input(self, execution_context):
        generator = ScriptedGenerator(GOOD_OUTPUT)
        statuses = []
        agent = make_agent(generator)

        result = await agent.execute({"topic": ""}, execution_context, status_listener=statuses.append)

        assert not result.success
        assert result.error.code == "VALIDATION_FAILED"
        assert result.error.details[0]["field"] == "topic"
        assert generator.calls == 0
        assert statuses[-1] == AgentStatus.FAILED
        assert result.metadata.metrics.error_count == 1
        assert result.metadata.confidence == 0

    @pytest.mark.asyncio
    async def test_non_json_output(self, execution_context):
        agent = make_agent(ScriptedGenerator("definitely not json"))

        result = await agent.execute({"topic": "x"}, execution_context)

        assert result.error.code == "OUTPUT_VALIDATION_FAILED"

    @pytest.mark.asyncio
    async def test_schema_violating_output(self, execution_context):
        cache = MemoryCacheStore()
        agent = make_agent(ScriptedGenerator(json.dumps({"summaryText": "x", "score": 150})), cache=cache)

        result = await agent.execute({"topic": "x"}, execution_context)

        assert result.error.code == "OUTPUT_VALIDATION_FAILED"
        assert cache.stats()["entries"] == 0

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_failed_result(self, execution_context):
        agent = make_agent(ScriptedGenerator(RuntimeError("boom")))

        result = await agent.execute({"topic": "x"}, execution_context)

        assert not result.success
        assert result.error.code == "AGENT_ERROR"
        assert result.error.message == "boom"

    @pytest.mark.asyncio
    async def test_failures_are_recorded(self, execution_context):
        collector = MetricsCollector("echo")
        agent = make_agent(ScriptedGenerator("nope"), metrics=collector)

        await agent.execute({"topic": "x"}, execution_context)

        assert collector.error_distribution() == {"OUTPUT_VALIDATION_FAILED": 1}

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self, execution_context):
        async def hang():
            await asyncio.sleep(10)

        agent = make_agent(ScriptedGenerator(hang))
        task = asyncio.create_task(agent.execute({"topic": "x"}, execution_context))
        await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

class TestQualityGate:

    @pytest.mark.asyncio
    async def test_low_confidence_is_returned_with_warning(self, execution_context, monkeypatch):
        gate_calls = []
        monkeypatch.setattr(base_agent_module, "log_quality_gate",
                            lambda *args, **kwargs: gate_calls.append((args, kwargs)))
        agent = make_agent(ScriptedGenerator(json.dumps({"summaryText": "x", "score": 40})))

        result = await agent.execute({"topic": "x"}, execution_context)

        assert result.success
        assert result.metadata.confidence == 40
        assert len(gate_calls) == 1
        assert "warning" in gate_calls[0][1]

    @pytest.mark.asyncio
    async def test_confident_result_skips_gate(self, execution_context, monkeypatch):
        gate_calls = []
        monkeypatch.setattr(base_agent_module, "log_quality_gate",
                            lambda *args, **kwargs: gate_calls.append(args))
        agent = make_agent(ScriptedGenerator(GOOD_OUTPUT))

        await agent.execute({"topic": "x"}, execution_context)

        assert gate_calls == []

class TestRetry:

    @pytest.mark.asyncio
    async def test_retryable_errors_back_off_exponentially(self, execution_context, recording_sleep):
        generator = ScriptedGenerator(ProviderError("overloaded"), ProviderError("overloaded"), GOOD_OUTPUT)
        agent = make_agent(generator, sleep=recording_sleep)

        result = await agent.execute({"topic": "x"}, execution_context)

        assert result.success
        assert recording_sleep.delays == [1.0, 2.0]
        assert result.metadata.metrics.api_calls == 3

    @pytest.mark.asyncio
    async def test_non_retryable_error_fails_immediately(self, execution_context, recording_sleep):
        generator = ScriptedGenerator(ProviderError("bad request", retryable=False), GOOD_OUTPUT)
        agent = make_agent(generator, sleep=recording_sleep)

        result = await agent.execute({"topic": "x"}, execution_context)

        assert result.error.code == "PROVIDER_ERROR"
        assert generator.calls == 1
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, execution_context, recording_sleep):
        generator = ScriptedGenerator(ProviderError("overloaded"))
        agent = make_agent(generator, max_retries=2, sleep=recording_sleep)

        result = await agent.execute({"topic": "x"}, execution_context)

        assert result.error.code == "PROVIDER_ERROR"
        assert result.metadata.metrics.api_calls == 3
        assert recording_sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_zero_retries(self, execution_context, recording_sleep):
        generator = ScriptedGenerator(ProviderError("overloaded"))
        agent = make_agent(generator, max_retries=0, sleep=recording_sleep)

        result = await agent.execute({"topic": "x"}, execution_context)

        assert generator.calls == 1
        assert not result.success

    @pytest.mark.asyncio
    async def test_deadline_breach_times_out(self, execution_context, recording_sleep):
        async def slow():
            await asyncio.sleep(5)
            return GOOD_OUTPUT

        statuses = []
        generator = ScriptedGenerator(slow)
        agent = make_agent(generator, timeout=0.01, max_retries=1, sleep=recording_sleep)

        result = await agent.execute({"topic": "x"}, execution_context, status_listener=statuses.append)

        assert result.error.code == "TIMEOUT"
        assert statuses[-1] == AgentStatus.TIMEOUT
        assert generator.calls == 2
        assert recording_sleep.delays == [1.0]

    @pytest.mark.asyncio
    async def test_provider_timeout_exhaustion_times_out(self, execution_context, recording_sleep):
        agent = make_agent(ScriptedGenerator(ProviderTimeoutError("slow")), max_retries=1, sleep=recording_sleep)

        result = await agent.execute({"topic": "x"}, execution_context)

        assert result.error.code == "TIMEOUT"

    @pytest.mark.asyncio
    async def test_open_circuit_is_not_retried(self, execution_context, recording_sleep):
        registry = CircuitBreakerRegistry()
        registry.get_breaker("scripted").force_open()
        generator = ScriptedGenerator(GOOD_OUTPUT)
        agent = make_agent(generator, circuit_breakers=registry, sleep=recording_sleep)

        result = await agent.execute({"topic": "x"}, execution_context)

        assert result.error.code == "CIRCUIT_OPEN"
        assert generator.calls == 0
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    async def test_failures_trip_the_breaker(self, execution_context, recording_sleep):
        registry = CircuitBreakerRegistry()
        agent = make_agent(ScriptedGenerator(ProviderError("down")), max_retries=4,
                           circuit_breakers=registry, sleep=recording_sleep)

        result = await agent.execute({"topic": "x"}, execution_context)

        assert registry.get_breaker("scripted").get_status()["state"] == "open"
        assert result.error.code == "PROVIDER_ERROR"

class TestCacheKey:

    def test_same_input_same_key(self, execution_context):
        agent = make_agent(ScriptedGenerator(GOOD_OUTPUT))
        payload = agent.validate_input({"topic": "x"})

        key = agent.generate_cache_key(payload, execution_context)

        assert key == agent.generate_cache_key(agent.validate_input({"topic": "x"}), execution_context)
        assert len(key) == 64

    def test_request_id_is_not_part_of_key(self, execution_context):
        agent = make_agent(ScriptedGenerator(GOOD_OUTPUT))
        payload = agent.validate_input({"topic": "x"})

        other = replace(execution_context, request_id="req_other", user_id="someone-else")

        assert agent.generate_cache_key(payload, execution_context) == agent.generate_cache_key(payload, other)

    def test_depth_profile_and_input_change_key(self, execution_context):
        agent = make_agent(ScriptedGenerator(GOOD_OUTPUT))
        payload = agent.validate_input({"topic": "x"})
        base = agent.generate_cache_key(payload, execution_context)

        deeper = replace(execution_context, analysis_depth=AnalysisDepth.COMPREHENSIVE)
        richer = replace(execution_context, user_profile=UserProfile(skills=("sales",)))

        assert agent.generate_cache_key(payload, deeper) != base
        assert agent.generate_cache_key(payload, richer) != base
        assert agent.generate_cache_key(agent.validate_input({"topic": "y"}), execution_context) != base

class TestHelpers:

    def test_parse_json_strips_code_fence(self):
        agent = make_agent(ScriptedGenerator(GOOD_OUTPUT))

        assert agent.parse_json('```json\n{"a": 1}\n```') == {"a": 1}

    def test_parse_json_rejects_arrays(self):
        agent = make_agent(ScriptedGenerator(GOOD_OUTPUT))

        with pytest.raises(ValidationError):
            agent.parse_json("[1, 2]")

    def test_scoring(self):
        assert EchoAgent.completeness_score({"summaryText": "x"}) == 25
        assert EchoAgent.completeness_score({}) == 15
        assert EchoAgent.actionability_score({"nextSteps": ["a"]}) == 0
        assert EchoAgent.actionability_score({"nextSteps": ["a", "b"]}) == 20

    @pytest.mark.asyncio
    async def test_unconfigured_data_source(self, execution_context):
        agent = make_agent(ScriptedGenerator(GOOD_OUTPUT))
        scope = base_agent_module.ExecutionScope(context=execution_context,
                                                 tracker=base_agent_module.StatusTracker())

        assert not agent.has_data_source("market_data")
        with pytest.raises(AgentError):
            await agent.fetch_external_data(scope, "market_data", {})
