"""
Idea Analysis Service - concurrent, cached business idea analysis

Runs market research, financial modeling, founder fit and risk assessment
tasks for a business idea and merges them into one confidence-scored report.

Features:
- Stateless task agents over immutable execution contexts
- Content-addressed result caching (Redis, PostgreSQL or in-memory)
- Retry with exponential backoff and per-provider circuit breakers
- Bounded in-memory metrics with percentiles and health checks
- Dependency-aware fan-out with partial failure isolation
"""

__version__ = "1.0.0"
__author__ = "Idea Analysis Team"
