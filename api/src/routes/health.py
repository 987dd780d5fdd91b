from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import func, select, text
import redis.asyncio as redis

from api.src.db.database import get_db
from api.src.config import get_settings
from api.src.models.pipeline import DeploymentRecord
from api.src.services.queue import get_queue_length

settings = get_settings()

router = APIRouter(tags=["health"])

async def _check_db(db: AsyncSession) -> str:
    try:
        await db.execute(text("SELECT 1"))
        return "healthy"
    except Exception as e:
        return f"unhealthy: {e}"

async def _check_redis() -> str:
    client = redis.from_url(settings.redis_url)
    try:
        await client.ping()
        return "healthy"
    except Exception as e:
        return f"unhealthy: {e}"
    finally:
        await client.close()

@router.get("/health")
async def health_check():
    return {"status": "healthy", "service": "deployx-api"}

@router.get("/health/db")
async def db_health_check(db: AsyncSession = Depends(get_db)):
    state = await _check_db(db)
    return {"status": state.split(":")[0], "database": state}

@router.get("/health/redis")
async def redis_health_check():
    state = await _check_redis()
    return {"status": state.split(":")[0], "redis": state}

@router.get("/health/queue")
async def queue_health_check():
    try:
        return {"status": "healthy", "queue_length": await get_queue_length()}
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}

@router.get("/health/environments")
async def environments_health_check(db: AsyncSession = Depends(get_db)):
    """What each environment is running: the latest rollout outcome per service."""
    latest = (
        select(func.max(DeploymentRecord.sequence))
        .group_by(DeploymentRecord.environment, DeploymentRecord.service)
    )
    result = await db.execute(
        select(DeploymentRecord).where(DeploymentRecord.sequence.in_(latest))
    )

    environments = {"staging": {}, "production": {}}
    for record in result.scalars().all():
        environments.setdefault(record.environment, {})[record.service] = {
            "image_tag": record.image_tag,
            "outcome": record.outcome,
            "reverted": record.reverts_record_id is not None,
            "timestamp": record.timestamp,
        }

    degraded = any(
        service["outcome"] != "success"
        for services in environments.values()
        for service in services.values()
    )
    return {"status": "degraded" if degraded else "healthy", "environments": environments}

@router.get("/health/all")
async def full_health_check(db: AsyncSession = Depends(get_db)):
    """Combined health check for all services."""
    health = {
        "api": "healthy",
        "database": await _check_db(db),
        "redis": await _check_redis(),
    }
    overall = "healthy" if all(v == "healthy" for v in health.values()) else "degraded"

    # Queue depth is informational only
    try:
        queue_length = await get_queue_length()
    except Exception:
        queue_length = None

    return {"status": overall, "services": health, "queue_length": queue_length}
