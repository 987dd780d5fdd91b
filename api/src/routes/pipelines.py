from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import List, Optional
import uuid

from api.src.db.database import get_db
from api.src.models.pipeline import PipelineRun
from api.src.models.run import PipelineRunResponse, ManualTriggerRequest, ApprovalRequest
from api.src.services.queue import (
    enqueue_pipeline_run,
    approve_run,
    request_cancel,
    get_run_status,
)

router = APIRouter(prefix="/pipelines", tags=["pipelines"])

TERMINAL_STATUSES = {"succeeded", "failed", "rolled-back", "rollback-failed", "cancelled"}

async def _load_run(run_id: str, db: AsyncSession) -> PipelineRun:
    result = await db.execute(select(PipelineRun).where(PipelineRun.id == run_id))
    run = result.scalar_one_or_none()

    if not run:
        raise HTTPException(status_code=404, detail="Pipeline run not found")
    return run

@router.post("/runs", status_code=202)
async def trigger_run(request: ManualTriggerRequest):
    """Queue a pipeline run for an environment and commit."""
    run_id = str(uuid.uuid4())
    await enqueue_pipeline_run(
        run_id=run_id,
        environment=request.environment,
        commit_sha=request.commit_sha,
        branch=request.branch,
        triggered_by=request.triggered_by,
    )
    return {"status": "queued", "run_id": run_id, "environment": request.environment}

@router.get("/runs", response_model=List[PipelineRunResponse])
async def list_runs(
    limit: int = 20,
    offset: int = 0,
    environment: Optional[str] = None,
    status: Optional[str] = None,
    db: AsyncSession = Depends(get_db)
):
    """List pipeline runs, newest first."""
    query = select(PipelineRun).order_by(PipelineRun.number.desc())

    if environment:
        query = query.where(PipelineRun.environment == environment)
    if status:
        query = query.where(PipelineRun.status == status)

    query = query.limit(limit).offset(offset)

    result = await db.execute(query)
    return result.scalars().all()

@router.get("/runs/{run_id}", response_model=PipelineRunResponse)
async def get_run(run_id: str, db: AsyncSession = Depends(get_db)):
    """Get a specific pipeline run."""
    return await _load_run(run_id, db)

@router.get("/runs/{run_id}/status")
async def get_run_status_endpoint(run_id: str, db: AsyncSession = Depends(get_db)):
    """Get real-time status of a pipeline run."""
    run = await _load_run(run_id, db)

    # Get live status from Redis
    redis_status = await get_run_status(run_id)

    return {
        "run_id": run_id,
        "environment": run.environment,
        "db_status": run.status,
        "live_status": redis_status,
        "error": run.error,
        "stages": [
            {
                "service": stage.get("service"),
                "status": stage.get("status"),
                "step": stage.get("step"),
            }
            for stage in run.stages or []
        ]
    }

@router.post("/runs/{run_id}/approve")
async def approve(run_id: str, request: ApprovalRequest):
    """Approve a production run waiting at the approval gate."""
    status = await get_run_status(run_id)
    if status is None:
        raise HTTPException(status_code=404, detail="Pipeline run not found")
    if status in TERMINAL_STATUSES:
        raise HTTPException(status_code=409, detail=f"Pipeline run already {status}")

    await approve_run(run_id, request.approver)
    return {"status": "approved", "run_id": run_id, "approver": request.approver}

@router.post("/runs/{run_id}/cancel")
async def cancel(run_id: str):
    """Cancel a run at its next stage boundary."""
    status = await get_run_status(run_id)
    if status is None:
        raise HTTPException(status_code=404, detail="Pipeline run not found")
    if status in TERMINAL_STATUSES:
        raise HTTPException(status_code=409, detail=f"Pipeline run already {status}")

    await request_cancel(run_id)
    return {"status": "cancel_requested", "run_id": run_id}
