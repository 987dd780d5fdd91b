"""
Redis queue and run signal service.
"""

import redis.asyncio as redis
import json
import uuid
from typing import Any, Dict, Optional
from datetime import datetime, timezone

from api.src.config import get_settings

settings = get_settings()

PIPELINE_QUEUE = "deployx:jobs"
RUN_STATUS = "deployx:status"
RUN_APPROVALS = "deployx:approvals"
RUN_CANCELLATIONS = "deployx:cancel"

async def get_redis_client() -> redis.Redis:
    """Get async Redis client."""
    return redis.from_url(settings.redis_url, decode_responses=True)

async def _push(job: Dict[str, Any]):
    job["queued_at"] = datetime.now(timezone.utc).isoformat()
    client = await get_redis_client()

    try:
        await client.lpush(PIPELINE_QUEUE, json.dumps(job))
        status_key = job.get("run_id") or job.get("rollback_id")
        if status_key:
            await client.hset(RUN_STATUS, status_key, "queued")
    finally:
        await client.close()

async def enqueue_pipeline_run(
    run_id: str,
    environment: str,
    commit_sha: str,
    branch: str,
    triggered_by: Optional[str] = None,
):
    """Add pipeline run to processing queue."""
    await _push({
        "type": "pipeline",
        "run_id": run_id,
        "environment": environment,
        "sha": commit_sha,
        "branch": branch,
        "triggered_by": triggered_by,
    })

async def enqueue_rollback(
    environment: str,
    service: Optional[str] = None,
    triggered_by: Optional[str] = None,
) -> str:
    """Add an operator rollback to processing queue. Returns the rollback id."""
    rollback_id = str(uuid.uuid4())
    await _push({
        "type": "rollback",
        "rollback_id": rollback_id,
        "environment": environment,
        "service": service,
        "triggered_by": triggered_by,
    })
    return rollback_id

async def approve_run(run_id: str, approver: str):
    """Record the production approval the controller is waiting for."""
    client = await get_redis_client()

    try:
        await client.hset(RUN_APPROVALS, run_id, approver)
    finally:
        await client.close()

async def request_cancel(run_id: str):
    """Ask the controller to stop the run at its next stage boundary."""
    client = await get_redis_client()

    try:
        await client.sadd(RUN_CANCELLATIONS, run_id)
    finally:
        await client.close()

async def get_run_status(run_id: str) -> Optional[str]:
    """Get pipeline run or rollback status from Redis."""
    client = await get_redis_client()

    try:
        return await client.hget(RUN_STATUS, run_id)
    finally:
        await client.close()

async def get_queue_length() -> int:
    """Get number of jobs in queue."""
    client = await get_redis_client()

    try:
        return await client.llen(PIPELINE_QUEUE)
    finally:
        await client.close()
