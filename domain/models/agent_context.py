# domain/models/agent_context.py
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, Tuple
from enum import Enum

class AnalysisDepth(str, Enum):
    BASIC = "basic"
    STANDARD = "standard"
    COMPREHENSIVE = "comprehensive"

class LLMProviderKind(str, Enum):
    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    MOCK = "mock"

@dataclass(frozen=True)
class UserProfile:
    """Immutable founder profile shared by all tasks of a request"""
    skills: Tuple[str, ...] = ()
    experience: Tuple[str, ...] = ()
    interests: Tuple[str, ...] = ()
    budget: Optional[float] = None
    timeframe: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "skills": list(self.skills),
            "experience": list(self.experience),
            "interests": list(self.interests),
            "budget": self.budget,
            "timeframe": self.timeframe,
        }

@dataclass(frozen=True)
class DataFreshness:
    """Cache freshness policy; max_age is in seconds"""
    max_age: int = 3600
    force_refresh: bool = False

@dataclass(frozen=True)
class ExecutionContext:
    """Immutable per-request context, fanned out read-only to every task"""
    request_id: str
    user_id: Optional[str] = None
    analysis_depth: AnalysisDepth = AnalysisDepth.STANDARD
    user_profile: Optional[UserProfile] = None
    data_freshness: Optional[DataFreshness] = None

@dataclass(frozen=True)
class RetryConfig:
    max_retries: int = 3
    backoff_multiplier: float = 2.0
    initial_delay: float = 1.0  # seconds

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number `attempt` (0-based)"""
        return self.initial_delay * (self.backoff_multiplier ** attempt)

@dataclass(frozen=True)
class TaskConfig:
    """Immutable configuration of one task instance"""
    task_id: str
    name: str
    version: str = "1.0.0"
    llm_provider: LLMProviderKind = LLMProviderKind.MOCK
    max_tokens: int = 4000
    temperature: float = 0.3
    timeout: float = 60.0  # seconds, per provider call
    cache_ttl: int = 3600  # seconds
    retry_config: RetryConfig = field(default_factory=RetryConfig)

    def __post_init__(self):
        if not 0.0 <= self.temperature <= 2.0:
            raise ValueError(f"temperature must be within [0, 2], got {self.temperature}")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.cache_ttl <= 0:
            raise ValueError("cache_ttl must be positive")
        if self.retry_config.max_retries < 0:
            raise ValueError("max_retries cannot be negative")

@dataclass(frozen=True)
class AgentDependency:
    """Declares that a task consumes the output of an upstream task.

    data_mapping maps a dotted path in the upstream output to a dotted path
    in the dependent task's input.
    """
    task_id: str
    required: bool = False
    data_mapping: Dict[str, str] = field(default_factory=dict)
