"""
Per-environment exclusive lease: at most one active run per environment.
"""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Dict, Optional

from pydantic import BaseModel, Field

from controller.src.errors import LeaseTimeout
from controller.src.models.domain import Environment
from controller.src.models.run import utcnow

logger = logging.getLogger(__name__)

class Lease(BaseModel):
    environment: Environment
    run_id: str
    token: str = Field(default_factory=lambda: uuid.uuid4().hex)
    acquired_at: datetime = Field(default_factory=utcnow)

class EnvironmentLeases:
    def __init__(self):
        self._locks: Dict[Environment, asyncio.Lock] = {env: asyncio.Lock() for env in Environment}
        self._holders: Dict[Environment, Lease] = {}

    def holder(self, environment: Environment) -> Optional[Lease]:
        return self._holders.get(environment)

    @asynccontextmanager
    async def hold(
        self,
        environment: Environment,
        run_id: str,
        timeout: float,
    ) -> AsyncIterator[Lease]:
        """Wait up to `timeout` seconds for the environment, then hold it."""
        lock = self._locks[environment]
        acquire = asyncio.ensure_future(lock.acquire())

        try:
            await asyncio.wait_for(acquire, timeout)
        except asyncio.TimeoutError:
            # wait_for can time out after the acquire already completed
            if acquire.done() and not acquire.cancelled():
                lock.release()
            holder = self._holders.get(environment)
            raise LeaseTimeout(
                f"environment busy with run {holder.run_id if holder else 'unknown'}",
                environment=environment.value,
                stage="lease",
            )

        lease = Lease(environment=environment, run_id=run_id)
        self._holders[environment] = lease
        logger.info(f"Run {run_id} acquired {environment.value} lease {lease.token[:8]}")

        try:
            yield lease
        finally:
            self._holders.pop(environment, None)
            lock.release()
            logger.info(f"Run {run_id} released {environment.value} lease {lease.token[:8]}")
