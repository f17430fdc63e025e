# domain/models/errors.py
from typing import Any, List, Optional


class AgentError(Exception):
    """Base class for errors raised while executing an analysis task"""

    code = "AGENT_ERROR"

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(AgentError):
    """Input or output schema violation. Never retried."""

    code = "VALIDATION_FAILED"

    def __init__(self, message: str, errors: Optional[List[Any]] = None, code: Optional[str] = None):
        super().__init__(message, details=errors)
        self.errors = errors or []
        if code:
            self.code = code


class ProviderError(AgentError):
    """Failure of a text generator, cache or external data source"""

    code = "PROVIDER_ERROR"

    def __init__(self, message: str, provider: str = "unknown", retryable: bool = True,
                 status_code: Optional[int] = None):
        super().__init__(message, details={"provider": provider, "status_code": status_code})
        self.provider = provider
        self.retryable = retryable
        self.status_code = status_code


class ProviderQuotaError(ProviderError):
    code = "PROVIDER_QUOTA_EXCEEDED"


class ProviderTimeoutError(ProviderError):
    code = "PROVIDER_TIMEOUT"


class CircuitOpenError(ProviderError):
    code = "CIRCUIT_OPEN"

    def __init__(self, message: str, provider: str = "unknown"):
        super().__init__(message, provider=provider, retryable=False)


class TaskTimeoutError(AgentError, TimeoutError):
    """A provider call breached its deadline and the retry policy was exhausted"""

    code = "TIMEOUT"


class QualityGateWarning(UserWarning):
    """Confidence fell below the configured minimum; the result is still returned"""


class OrchestrationError(AgentError):
    """Malformed composite request or failure in aggregation"""

    code = "ORCHESTRATION_FAILED"

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[Any] = None):
        super().__init__(message, details=details)
        if code:
            self.code = code
