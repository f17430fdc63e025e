# infrastructure/web/analysis_api.py
from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from application.orchestrators.analysis_coordinator import INVALID_REQUEST, AnalysisCoordinator
from shared.logging import logger

router = APIRouter(prefix="/analysis", tags=["analysis"])

def get_coordinator(request: Request) -> AnalysisCoordinator:
    """Coordinator built by the application lifespan"""
    coordinator = getattr(request.app.state, "coordinator", None)
    if coordinator is None:
        raise HTTPException(status_code=503, detail="Coordinator not initialized")
    return coordinator

@router.post("")
async def run_analysis(
    payload: Dict[str, Any] = Body(...),
    coordinator: AnalysisCoordinator = Depends(get_coordinator)
):
    """Run the enabled analysis tasks for one business idea.

    Partial task failures still return 200 with success=false; a malformed
    request returns 422 and an aggregation failure 500.
    """
    output = await coordinator.analyze(payload)

    status_code = 200
    if output.error is not None:
        status_code = 422 if output.error.code == INVALID_REQUEST else 500

    logger.info("Analysis request served",
                request_id=output.request_id,
                success=output.success,
                status_code=status_code)
    return JSONResponse(status_code=status_code, content=output.to_dict())

@router.get("/executions")
async def list_executions(
    coordinator: AnalysisCoordinator = Depends(get_coordinator)
) -> List[Dict[str, Any]]:
    """Requests currently in flight"""
    return coordinator.list_active_executions()

@router.delete("/executions/{request_id}")
async def cancel_execution(
    request_id: str,
    coordinator: AnalysisCoordinator = Depends(get_coordinator)
):
    if not coordinator.cancel_request(request_id):
        raise HTTPException(status_code=404, detail=f"No active execution {request_id}")
    return {"requestId": request_id, "cancelled": True}

@router.get("/metrics/{task_id}")
async def task_metrics(
    task_id: str,
    hours: float = Query(default=24, gt=0, le=24 * 30),
    coordinator: AnalysisCoordinator = Depends(get_coordinator)
):
    """Aggregates, percentiles, error distribution and health for one task type"""
    metrics = coordinator.get_task_metrics(task_id, hours=hours)
    if metrics is None:
        raise HTTPException(status_code=404, detail=f"Unknown task {task_id}")
    return metrics
