# main.py
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import Depends, FastAPI

# Internal imports
from application.orchestrators.analysis_coordinator import AnalysisCoordinator, create_coordinator
from infrastructure.storage.cache_store import MemoryCacheStore, PostgresCacheStore
from infrastructure.web.analysis_api import get_coordinator, router as analysis_router
from shared.config import Settings
from shared.logging import logger, setup_logging

VERSION = "1.0.0"

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle"""

    settings = Settings.from_env()
    setup_logging(level=settings.log_level, json_logs=settings.json_logs)

    # Startup
    logger.info("Starting Idea Analysis Service", version=VERSION)

    try:
        coordinator = create_coordinator(settings)

        if isinstance(coordinator.cache, PostgresCacheStore):
            await coordinator.cache.initialize()
        elif isinstance(coordinator.cache, MemoryCacheStore):
            coordinator.cache.start_sweeper(settings.cache_sweep_interval_seconds)

        app.state.coordinator = coordinator
        logger.info("Application initialized successfully")

    except Exception as e:
        logger.error("Failed to initialize application", error=str(e))
        raise

    yield

    # Shutdown
    logger.info("Shutting down Idea Analysis Service")
    await app.state.coordinator.close()

# Create FastAPI app
app = FastAPI(
    title="Idea Analysis Service",
    description="Concurrent, cached and confidence-scored business idea analysis",
    version=VERSION,
    lifespan=lifespan
)

@app.get("/health")
async def health_check(coordinator: AnalysisCoordinator = Depends(get_coordinator)):
    """Worst of per-task health and active load, plus circuit breaker states"""
    health = coordinator.get_health_status()
    health["version"] = VERSION
    return health

@app.get("/")
async def root():
    """API root endpoint"""
    return {
        "service": "Idea Analysis Service",
        "version": VERSION,
        "tasks": ["market-research", "financial-modeling", "founder-fit", "risk-assessment"],
        "endpoints": {
            "run_analysis": "POST /analysis",
            "active_executions": "GET /analysis/executions",
            "cancel_execution": "DELETE /analysis/executions/{request_id}",
            "task_metrics": "GET /analysis/metrics/{task_id}",
            "health_check": "GET /health",
        },
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

app.include_router(analysis_router)

if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", "8000"))
    host = os.getenv("HOST", "0.0.0.0")

    uvicorn.run(
        "main:app",
        host=host,
        port=port,
        reload=os.getenv("RELOAD", "false").lower() == "true"
    )
