# shared/logging.py
import structlog
import logging
import sys
from typing import Any, Dict, Optional

_SHARED_PROCESSORS = [
    structlog.stdlib.filter_by_level,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
    structlog.processors.UnicodeDecoder(),
]

# Configure structured logging
structlog.configure(
    processors=_SHARED_PROCESSORS + [structlog.processors.JSONRenderer()],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

# Get logger instance
logger = structlog.get_logger("idea_analysis")

# Configure standard library logging
logging.basicConfig(
    format="%(message)s",
    stream=sys.stdout,
    level=logging.INFO,
)

def setup_logging(level: str = "INFO", json_logs: bool = True):
    """Setup logging configuration"""
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.getLogger().setLevel(log_level)

    if not json_logs:
        # Use human-readable format for development
        structlog.configure(
            processors=_SHARED_PROCESSORS + [structlog.dev.ConsoleRenderer()],
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )

def log_agent_execution(
    task_id: str,
    request_id: str,
    execution_time_ms: int,
    tokens_used: int,
    success: bool,
    cache_hit: bool = False,
    confidence_score: Optional[float] = None,
    error_code: Optional[str] = None,
    error_message: Optional[str] = None
):
    """Log task execution metrics"""
    extra_data = {
        "task_id": task_id,
        "request_id": request_id,
        "execution_time_ms": execution_time_ms,
        "tokens_used": tokens_used,
        "success": success,
        "cache_hit": cache_hit
    }

    if confidence_score is not None:
        extra_data["confidence_score"] = confidence_score

    if error_message:
        extra_data["error_code"] = error_code
        extra_data["error_message"] = error_message
        logger.error("Agent execution failed", **extra_data)
    else:
        logger.info("Agent execution completed", **extra_data)

def log_cache_event(
    backend: str,
    operation: str,
    key: str,
    error_message: Optional[str] = None
):
    """Log cache failures that were degraded to a miss or a skipped write"""
    logger.warning("Cache operation degraded",
                   backend=backend,
                   operation=operation,
                   key=key,
                   error_message=error_message)

def log_quality_gate(
    task_id: str,
    request_id: str,
    confidence: float,
    minimum_confidence: float,
    issues: Optional[list] = None,
    warning: Optional[Warning] = None
):
    """Log results that fell below the quality threshold"""
    extra_data = {
        "task_id": task_id,
        "request_id": request_id,
        "confidence": confidence,
        "minimum_confidence": minimum_confidence,
        "issues": issues or []
    }

    if warning is not None:
        extra_data["warning_category"] = type(warning).__name__
        extra_data["warning_message"] = str(warning)

    logger.warning("Quality gate below threshold", **extra_data)

def log_provider_retry(
    task_id: str,
    provider: str,
    attempt: int,
    delay_seconds: float,
    error_message: str
):
    """Log a provider call that is about to be retried"""
    logger.warning("Provider call retry scheduled",
                   task_id=task_id,
                   provider=provider,
                   attempt=attempt,
                   delay_seconds=delay_seconds,
                   error_message=error_message)

def log_circuit_breaker_event(
    provider_name: str,
    event_type: str,
    state: str,
    failure_count: int,
    additional_context: Optional[Dict[str, Any]] = None
):
    """Log circuit breaker state changes"""
    extra_data = {
        "provider_name": provider_name,
        "event_type": event_type,
        "circuit_state": state,
        "failure_count": failure_count
    }

    if additional_context:
        extra_data.update(additional_context)

    logger.info("Circuit breaker event", **extra_data)

def log_orchestration(
    request_id: str,
    phase: str,
    **context: Any
):
    """Log coordinator phase transitions"""
    logger.info("Orchestration phase", request_id=request_id, phase=phase, **context)
