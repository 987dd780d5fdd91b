"""
Deployment executor - applies an image to a cluster and waits for the rollout.
"""

import asyncio
import logging
from typing import Optional

from controller.src.config import get_settings
from controller.src.models.domain import Environment, ImageReference
from controller.src.models.run import DeploymentRecord, RolloutOutcome, RolloutResult
from controller.src.services.polling import poll_until
from controller.src.services.record_store import DeploymentLog

logger = logging.getLogger(__name__)
settings = get_settings()

READY = "ready"
PENDING = "pending"
FAILED = "failed"

class DeploymentExecutor:
    def __init__(
        self,
        cluster,
        log: DeploymentLog,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
    ):
        self.cluster = cluster
        self.log = log
        self.timeout = timeout if timeout is not None else settings.rollout_timeout
        self.poll_interval = (
            poll_interval if poll_interval is not None else settings.rollout_poll_interval
        )

    async def deploy(
        self,
        environment: Environment,
        service: str,
        image: ImageReference,
        run_id: Optional[str] = None,
        reverts_record_id: Optional[str] = None,
    ) -> RolloutResult:
        """
        Deploy `image` and wait for the rollout to finish.
        Exactly one DeploymentRecord is appended per terminal outcome.
        If the caller is cancelled, the rollout still runs to its
        terminal outcome and is recorded.
        """
        task = asyncio.ensure_future(
            self._apply_and_wait(environment, service, image, run_id, reverts_record_id)
        )
        return await asyncio.shield(task)

    async def _apply_and_wait(
        self,
        environment: Environment,
        service: str,
        image: ImageReference,
        run_id: Optional[str],
        reverts_record_id: Optional[str],
    ) -> RolloutResult:
        logger.info(f"Deploying {image.ref} to {environment.value}")

        accepted = await self.cluster.apply_deployment(environment, service, image)
        if not accepted:
            logger.error(f"Cluster rejected {image.ref} for {service} in {environment.value}")
            return self._finish(environment, service, image, "rejected", run_id, reverts_record_id)

        async def check():
            try:
                status = await self.cluster.get_rollout_status(environment, service)
            except Exception as e:
                logger.warning(f"Error checking rollout status of {service}: {e}")
                return None
            return status if status in (READY, FAILED) else None

        status = await poll_until(check, self.timeout, self.poll_interval)

        if status == READY:
            logger.info(f"Rollout of {service} in {environment.value} completed")
            return self._finish(environment, service, image, None, run_id, reverts_record_id)

        reason = "failed" if status == FAILED else "timeout"
        logger.error(f"Rollout of {service} in {environment.value} ended: {reason}")
        return self._finish(environment, service, image, reason, run_id, reverts_record_id)

    def _finish(
        self,
        environment: Environment,
        service: str,
        image: ImageReference,
        reason: Optional[str],
        run_id: Optional[str],
        reverts_record_id: Optional[str],
    ) -> RolloutResult:
        record = self.log.append(DeploymentRecord(
            environment=environment,
            service=service,
            image=image,
            outcome=RolloutOutcome.SUCCESS if reason is None else RolloutOutcome.FAILURE,
            reason=reason,
            run_id=run_id,
            reverts_record_id=reverts_record_id,
        ))
        return RolloutResult(success=reason is None, reason=reason, record=record)
