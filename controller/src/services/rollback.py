"""
Rollback controller - redeploys the previous successful version of services.
"""

import logging
from typing import Dict, List, Optional, Tuple

from controller.src.errors import NoPriorRecord
from controller.src.models.domain import Environment, ServiceSpec
from controller.src.models.run import (
    DeploymentRecord,
    RollbackResult,
    RollbackStatus,
    ServiceRollback,
    ServiceRollbackStatus,
    utcnow,
)
from controller.src.services.catalog import deployment_order
from controller.src.services.executor import DeploymentExecutor
from controller.src.services.health import HealthProber
from controller.src.services.record_store import DeploymentLog

logger = logging.getLogger(__name__)

FAILED_STATUSES = {
    ServiceRollbackStatus.NO_PRIOR_RECORD,
    ServiceRollbackStatus.FAILED,
    ServiceRollbackStatus.UNHEALTHY,
}

class RollbackController:
    def __init__(
        self,
        services: Dict[str, ServiceSpec],
        log: DeploymentLog,
        executor: DeploymentExecutor,
        prober: HealthProber,
    ):
        self.services = services
        self.log = log
        self.executor = executor
        self.prober = prober

    async def rollback(
        self,
        environment: Environment,
        service: Optional[str] = None,
        run_id: Optional[str] = None,
    ) -> RollbackResult:
        """
        Roll services back to their previous successful deployment.

        Without `service`, every service is reverted in reverse dependency
        order. With `run_id`, services the run never deployed are skipped.
        A single named service with nothing to roll back to raises
        NoPriorRecord before any cluster change.
        """
        if service is not None:
            if service not in self.services:
                raise ValueError(f"Unknown service '{service}'")
            order = [self.services[service]]
        else:
            order = list(reversed(deployment_order(self.services)))

        result = RollbackResult(environment=environment)
        plan: List[Tuple[ServiceSpec, DeploymentRecord, DeploymentRecord]] = []

        # Plan every target before touching the cluster
        for spec in order:
            if run_id and not self.log.history(environment, spec.name, run_id=run_id):
                result.services.append(ServiceRollback(
                    service=spec.name,
                    status=ServiceRollbackStatus.SKIPPED,
                    reason="not deployed in this run",
                ))
                continue

            current = self.log.latest(environment, spec.name)
            target = self.log.rollback_target(environment, spec.name)
            if current is None or target is None:
                error = NoPriorRecord(
                    "no earlier successful deployment to roll back to",
                    environment=environment.value,
                    service=spec.name,
                    stage="rollback",
                )
                if service is not None:
                    raise error
                logger.error(str(error))
                result.services.append(ServiceRollback(
                    service=spec.name,
                    status=ServiceRollbackStatus.NO_PRIOR_RECORD,
                    reason=error.reason,
                    error=error.to_dict(),
                ))
                continue

            plan.append((spec, current, target))

        await self._execute(environment, plan, result, run_id)

        if any(s.status in FAILED_STATUSES for s in result.services):
            result.status = RollbackStatus.ROLLBACK_FAILED
            logger.error(
                f"Rollback in {environment.value} failed; manual intervention required"
            )
        elif result.reverted:
            result.status = RollbackStatus.ROLLED_BACK
        else:
            result.status = RollbackStatus.NOOP

        result.finished_at = utcnow()
        return result

    async def _execute(
        self,
        environment: Environment,
        plan: List[Tuple[ServiceSpec, DeploymentRecord, DeploymentRecord]],
        result: RollbackResult,
        run_id: Optional[str],
    ):
        reverted: List[ServiceRollback] = []

        for i, (spec, current, target) in enumerate(plan):
            logger.info(
                f"Rolling back {spec.name} in {environment.value} "
                f"from {current.image.tag} to {target.image.tag}"
            )
            outcome = await self.executor.deploy(
                environment,
                spec.name,
                target.image,
                run_id=run_id,
                reverts_record_id=current.id,
            )

            entry = ServiceRollback(
                service=spec.name,
                status=ServiceRollbackStatus.REVERTED,
                target=target.image.ref,
            )
            result.services.append(entry)

            if not outcome.success:
                entry.status = ServiceRollbackStatus.FAILED
                entry.reason = f"rollback rollout {outcome.reason}"
                # Remaining services keep their current version
                for skipped, _, _ in plan[i + 1:]:
                    result.services.append(ServiceRollback(
                        service=skipped.name,
                        status=ServiceRollbackStatus.SKIPPED,
                        reason=f"aborted after failed rollback of {spec.name}",
                    ))
                break

            reverted.append(entry)

        for entry in reverted:
            if not await self.prober.wait_healthy(environment, entry.service):
                entry.status = ServiceRollbackStatus.UNHEALTHY
                entry.reason = "unhealthy after rollback"
