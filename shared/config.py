# shared/config.py
import os
from typing import Optional

from pydantic import BaseModel, Field


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class Settings(BaseModel):
    """Process configuration, read once from the environment"""

    llm_provider: str = Field(default="mock", pattern="^(anthropic|openai|mock)$")
    anthropic_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None

    cache_backend: str = Field(default="memory", pattern="^(redis|postgres|memory|none)$")
    redis_url: str = "redis://localhost:6379/0"
    database_url: str = "postgresql://localhost:5432/idea_analysis"
    cache_key_prefix: str = "ai-agent:"
    cache_sweep_interval_seconds: float = Field(default=300.0, gt=0)

    market_data_source: str = Field(default="none", pattern="^(http|mock|none)$")
    market_data_url: Optional[str] = None
    market_data_api_key: Optional[str] = None

    log_level: str = "INFO"
    json_logs: bool = True
    metrics_max_entries: int = Field(default=1000, ge=1)
    task_timeout_seconds: float = Field(default=60.0, gt=0)

    @property
    def llm_api_key(self) -> Optional[str]:
        if self.llm_provider == "anthropic":
            return self.anthropic_api_key
        if self.llm_provider == "openai":
            return self.openai_api_key
        return None

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            llm_provider=os.getenv("LLM_PROVIDER", "mock"),
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY"),
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            cache_backend=os.getenv("CACHE_BACKEND", "memory"),
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
            database_url=os.getenv("DATABASE_URL", "postgresql://localhost:5432/idea_analysis"),
            cache_key_prefix=os.getenv("CACHE_KEY_PREFIX", "ai-agent:"),
            cache_sweep_interval_seconds=float(os.getenv("CACHE_SWEEP_INTERVAL_SECONDS", "300")),
            market_data_source=os.getenv("MARKET_DATA_SOURCE", "none"),
            market_data_url=os.getenv("MARKET_DATA_URL"),
            market_data_api_key=os.getenv("MARKET_DATA_API_KEY"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            json_logs=_env_bool("JSON_LOGS", "true"),
            metrics_max_entries=int(os.getenv("METRICS_MAX_ENTRIES", "1000")),
            task_timeout_seconds=float(os.getenv("TASK_TIMEOUT_SECONDS", "60")),
        )
