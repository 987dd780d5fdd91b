"""
Run signals stored in Redis: approvals, cancellation requests and live status.
"""

import logging
import redis.asyncio as redis

from controller.src.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

RUN_STATUS = "deployx:status"
RUN_APPROVALS = "deployx:approvals"
RUN_CANCELLATIONS = "deployx:cancel"

class RedisRunSignals:
    """Approval gate and cancellation source backed by Redis."""

    def __init__(self, redis_url: str = None):
        self.redis_url = redis_url or settings.redis_url

    def _client(self) -> redis.Redis:
        return redis.from_url(self.redis_url, decode_responses=True)

    async def is_approved(self, run_id: str) -> bool:
        client = self._client()
        try:
            return bool(await client.hexists(RUN_APPROVALS, run_id))
        finally:
            await client.close()

    async def is_cancel_requested(self, run_id: str) -> bool:
        client = self._client()
        try:
            return bool(await client.sismember(RUN_CANCELLATIONS, run_id))
        finally:
            await client.close()

    async def publish_status(self, run_id: str, status: str):
        client = self._client()
        try:
            await client.hset(RUN_STATUS, run_id, status)
        finally:
            await client.close()
