# infrastructure/resilience/circuit_breaker.py
from enum import Enum
from typing import Awaitable, Callable, Any, Optional, Dict
import asyncio
import time
from dataclasses import dataclass
from domain.models.errors import CircuitOpenError, ProviderError
from shared.logging import log_circuit_breaker_event

# Failures that say something about the provider's health
_COUNTED_FAILURES = (ProviderError, asyncio.TimeoutError)

class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

@dataclass(frozen=True)
class CircuitBreakerConfig:
    failure_threshold: int = 5
    recovery_timeout: float = 120.0  # seconds
    success_threshold: int = 3
    half_open_max_calls: int = 1  # concurrent trial calls while half-open

class CircuitBreakerRegistry:
    """One breaker per provider name, shared by every task using that provider"""

    def __init__(self, config: Optional[CircuitBreakerConfig] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.config = config or CircuitBreakerConfig()
        self.clock = clock
        self.breakers: Dict[str, 'CircuitBreaker'] = {}

    def get_breaker(self, provider_name: str, config: Optional[CircuitBreakerConfig] = None) -> 'CircuitBreaker':
        if provider_name not in self.breakers:
            self.breakers[provider_name] = CircuitBreaker(
                provider_name, config or self.config, clock=self.clock
            )
        return self.breakers[provider_name]

    def get_all_status(self) -> Dict[str, Dict[str, Any]]:
        return {name: breaker.get_status() for name, breaker in self.breakers.items()}

class CircuitBreaker:
    def __init__(self, provider_name: str, config: CircuitBreakerConfig,
                 clock: Callable[[], float] = time.monotonic):
        self.provider_name = provider_name
        self.config = config
        self.clock = clock
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.last_failure_time: Optional[float] = None
        self.success_count = 0
        self.trial_calls = 0

    async def call(self, func: Callable[[], Awaitable[Any]]) -> Any:
        if self.state == CircuitState.OPEN:
            if self._should_attempt_reset():
                self._transition(CircuitState.HALF_OPEN)
                self.success_count = 0
            else:
                raise CircuitOpenError(
                    f"Circuit breaker for {self.provider_name} is OPEN",
                    provider=self.provider_name,
                )

        trial = self.state == CircuitState.HALF_OPEN
        if trial:
            if self.trial_calls >= self.config.half_open_max_calls:
                raise CircuitOpenError(
                    f"Circuit breaker for {self.provider_name} is HALF_OPEN with "
                    f"{self.trial_calls} trial call(s) in flight",
                    provider=self.provider_name,
                )
            self.trial_calls += 1

        try:
            result = await func()
        except _COUNTED_FAILURES:
            self._on_failure()
            raise
        finally:
            if trial:
                self.trial_calls -= 1
        self._on_success()
        return result

    def _should_attempt_reset(self) -> bool:
        if self.last_failure_time is None:
            return False
        return self.clock() - self.last_failure_time >= self.config.recovery_timeout

    def _on_success(self):
        if self.state == CircuitState.HALF_OPEN:
            self.success_count += 1
            if self.success_count >= self.config.success_threshold:
                self.failure_count = 0
                self._transition(CircuitState.CLOSED)
        elif self.state == CircuitState.CLOSED and self.failure_count > 0:
            self.failure_count = 0

    def _on_failure(self):
        self.failure_count += 1
        self.last_failure_time = self.clock()

        if self.state == CircuitState.HALF_OPEN or self.failure_count >= self.config.failure_threshold:
            if self.state != CircuitState.OPEN:
                self._transition(CircuitState.OPEN)

    def _transition(self, new_state: CircuitState):
        old_state = self.state
        self.state = new_state
        log_circuit_breaker_event(
            self.provider_name,
            "state_change",
            new_state.value,
            self.failure_count,
            {"previous_state": old_state.value},
        )

    def get_status(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "trial_calls": self.trial_calls,
            "seconds_since_failure": (
                round(self.clock() - self.last_failure_time, 3)
                if self.last_failure_time is not None else None
            ),
        }

    def force_open(self):
        """Manually open circuit breaker for testing or emergency"""
        self.last_failure_time = self.clock()
        self._transition(CircuitState.OPEN)

    def force_close(self):
        """Manually close circuit breaker for recovery"""
        self.failure_count = 0
        self.success_count = 0
        self._transition(CircuitState.CLOSED)
