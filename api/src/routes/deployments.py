from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import List, Optional

from api.src.db.database import get_db
from api.src.models.pipeline import DeploymentRecord, Rollback
from api.src.models.run import DeploymentRecordResponse, RollbackRequest, RollbackResponse
from api.src.services.queue import enqueue_rollback, get_run_status

router = APIRouter(tags=["deployments"])

@router.get("/deployments", response_model=List[DeploymentRecordResponse])
async def list_deployments(
    environment: Optional[str] = None,
    service: Optional[str] = None,
    limit: int = 50,
    db: AsyncSession = Depends(get_db)
):
    """Deployment record history, newest first."""
    query = select(DeploymentRecord).order_by(DeploymentRecord.sequence.desc())

    if environment:
        query = query.where(DeploymentRecord.environment == environment)
    if service:
        query = query.where(DeploymentRecord.service == service)

    result = await db.execute(query.limit(limit))
    return result.scalars().all()

@router.post("/rollbacks", status_code=202)
async def trigger_rollback(request: RollbackRequest):
    """Queue an operator rollback of one service or the whole environment."""
    rollback_id = await enqueue_rollback(
        request.environment,
        request.service,
        triggered_by=request.triggered_by,
    )
    return {
        "status": "queued",
        "rollback_id": rollback_id,
        "environment": request.environment,
        "service": request.service,
    }

@router.get("/rollbacks/{rollback_id}", response_model=RollbackResponse)
async def get_rollback(rollback_id: str, db: AsyncSession = Depends(get_db)):
    """Outcome of an operator rollback. Queued rollbacks only have a live status."""
    result = await db.execute(select(Rollback).where(Rollback.id == rollback_id))
    rollback = result.scalar_one_or_none()
    live_status = await get_run_status(rollback_id)

    if rollback is None:
        if live_status is None:
            raise HTTPException(status_code=404, detail="Rollback not found")
        return RollbackResponse(rollback_id=rollback_id, status=live_status, live_status=live_status)

    return RollbackResponse(
        rollback_id=rollback.id,
        environment=rollback.environment,
        service=rollback.service,
        status=rollback.status,
        live_status=live_status,
        triggered_by=rollback.triggered_by,
        result=rollback.result,
        error=rollback.error,
        created_at=rollback.created_at,
        finished_at=rollback.finished_at,
    )
