"""
Pipeline orchestrator - sequences build, deploy, discovery and health
validation for every service of an environment, in dependency order.
"""

import logging
from typing import Dict, Optional, Set

from controller.src.config import Settings, get_settings
from controller.src.errors import (
    ApprovalTimeout,
    HealthCheckFailed,
    LeaseTimeout,
    PipelineError,
    ROLLOUT_ERRORS,
    RunCancelled,
)
from controller.src.models.domain import (
    Environment,
    EnvironmentPolicy,
    Revision,
    RunConfig,
    ServiceSpec,
)
from controller.src.models.run import (
    OperatorRollback,
    OperatorRollbackStatus,
    PipelineRun,
    RollbackStatus,
    RunStatus,
    StageResult,
    StageStatus,
    utcnow,
)
from controller.src.services.artifact_builder import ArtifactBuilder
from controller.src.services.catalog import deployment_order, dependents_of
from controller.src.services.discovery import ServiceDiscoveryResolver
from controller.src.services.executor import DeploymentExecutor
from controller.src.services.health import HealthProber
from controller.src.services.leases import EnvironmentLeases
from controller.src.services.polling import poll_until
from controller.src.services.record_store import RollbackStore, RunStore
from controller.src.services.rollback import RollbackController

logger = logging.getLogger(__name__)
settings = get_settings()

def build_policies(settings: Settings) -> Dict[Environment, EnvironmentPolicy]:
    """Staging iterates freely; production is gated, scanned and auto-rolled back."""
    return {
        Environment.STAGING: EnvironmentPolicy(
            environment=Environment.STAGING,
            namespace=settings.staging_namespace,
        ),
        Environment.PRODUCTION: EnvironmentPolicy(
            environment=Environment.PRODUCTION,
            namespace=settings.production_namespace,
            requires_approval=True,
            auto_rollback=True,
            scan_required=True,
        ),
    }

class PipelineOrchestrator:
    def __init__(
        self,
        services: Dict[str, ServiceSpec],
        policies: Dict[Environment, EnvironmentPolicy],
        builder: ArtifactBuilder,
        executor: DeploymentExecutor,
        resolver: ServiceDiscoveryResolver,
        prober: HealthProber,
        rollback: RollbackController,
        runs: RunStore,
        signals=None,
        leases: Optional[EnvironmentLeases] = None,
        approval_timeout: Optional[float] = None,
        approval_poll_interval: Optional[float] = None,
        lease_timeout: Optional[float] = None,
        rollbacks: Optional[RollbackStore] = None,
    ):
        self.services = services
        self.order = deployment_order(services)
        self.policies = policies
        self.builder = builder
        self.executor = executor
        self.resolver = resolver
        self.prober = prober
        self.rollback = rollback
        self.runs = runs
        self.rollbacks = rollbacks or RollbackStore(runs.engine)
        self.signals = signals
        self.leases = leases or EnvironmentLeases()
        self.approval_timeout = (
            approval_timeout if approval_timeout is not None else settings.approval_timeout
        )
        self.approval_poll_interval = (
            approval_poll_interval
            if approval_poll_interval is not None
            else settings.approval_poll_interval
        )
        self.lease_timeout = lease_timeout if lease_timeout is not None else settings.lease_timeout
        self._cancelled: Set[str] = set()

    def cancel(self, run_id: str):
        """Request cancellation. Observed at the next stage boundary."""
        logger.info(f"Cancellation requested for run {run_id}")
        self._cancelled.add(run_id)

    async def run_pipeline(
        self,
        environment: Environment,
        revision: Revision,
        run_id: Optional[str] = None,
        triggered_by: Optional[str] = None,
    ) -> PipelineRun:
        """Run every service stage for `revision` in `environment`."""
        run = self.runs.create(environment, revision, run_id=run_id, triggered_by=triggered_by)
        run.stages = [StageResult(service=spec.name) for spec in self.order]
        await self._persist(run)

        logger.info(
            f"Starting run #{run.number} ({run.id}) of {revision.short_sha} "
            f"on {environment.value} with {len(self.order)} stages"
        )

        try:
            async with self.leases.hold(environment, run.id, self.lease_timeout):
                await self._execute(run)
        except LeaseTimeout as e:
            self._fail(run, e)
        finally:
            self._cancelled.discard(run.id)

        run.finished_at = utcnow()
        await self._persist(run)
        message = f"Run #{run.number} ({run.id}) finished with status: {run.status.value}"
        if run.reason:
            message += f" ({run.reason})"
        logger.info(message)
        return run

    async def run_rollback(
        self,
        environment: Environment,
        service: Optional[str] = None,
        rollback_id: Optional[str] = None,
        triggered_by: Optional[str] = None,
    ) -> OperatorRollback:
        """
        Operator rollback of one service or the whole environment.

        Holds the environment lease like a pipeline run. A rollback that
        cannot get the lease, or has nothing to roll back to, is stored as
        refused and never touches the cluster.
        """
        rollback = OperatorRollback(
            environment=environment,
            service=service,
            triggered_by=triggered_by,
        )
        if rollback_id:
            rollback.id = rollback_id
        self.rollbacks.create(rollback)
        await self._publish(rollback.id, rollback.status.value)

        target = service or "all services"
        logger.info(f"Starting rollback {rollback.id} of {target} in {environment.value}")

        try:
            async with self.leases.hold(environment, rollback.id, self.lease_timeout):
                rollback.status = OperatorRollbackStatus.RUNNING
                self.rollbacks.save(rollback)
                await self._publish(rollback.id, rollback.status.value)
                try:
                    result = await self.rollback.rollback(environment, service=service)
                except ValueError as e:
                    raise PipelineError(
                        str(e),
                        environment=environment.value,
                        service=service,
                        stage="rollback",
                    )
        except PipelineError as e:
            logger.error(f"Rollback {rollback.id} refused: {e}")
            rollback.status = OperatorRollbackStatus.REFUSED
            rollback.error = e.to_dict()
        else:
            rollback.result = result
            rollback.status = OperatorRollbackStatus(result.status.value)

        rollback.finished_at = utcnow()
        self.rollbacks.save(rollback)
        await self._publish(rollback.id, rollback.status.value)
        logger.info(f"Rollback {rollback.id} in {environment.value} finished: {rollback.status.value}")
        return rollback

    async def _execute(self, run: PipelineRun):
        policy = self.policies[run.environment]

        run.status = RunStatus.RUNNING
        run.started_at = utcnow()
        await self._persist(run)

        try:
            if policy.requires_approval:
                await self._await_approval(run)
        except RunCancelled as e:
            self._cancel(run, e)
            return
        except PipelineError as e:
            self._fail(run, e)
            return

        config = RunConfig()

        for spec in self.order:
            stage = run.stage(spec.name)

            if await self._cancel_requested(run):
                self._cancel(run, RunCancelled(
                    "cancelled by operator",
                    environment=run.environment.value,
                    service=spec.name,
                ))
                return

            try:
                config = await self._run_stage(run, policy, spec, stage, config)
            except PipelineError as e:
                self._fail_stage(stage, e)
            except Exception as e:
                logger.exception(f"Stage {spec.name} of run {run.id} failed with exception")
                self._fail_stage(stage, PipelineError(
                    str(e),
                    environment=run.environment.value,
                    service=spec.name,
                    stage=stage.step,
                ))

            await self._persist(run)

            if stage.status == StageStatus.FAILED:
                run.status = RunStatus.FAILED
                run.error = stage.error
                self._skip_remaining(run)
                if policy.auto_rollback:
                    await self._roll_back(run)
                return

        run.status = RunStatus.SUCCEEDED

    async def _run_stage(
        self,
        run: PipelineRun,
        policy: EnvironmentPolicy,
        spec: ServiceSpec,
        stage: StageResult,
        config: RunConfig,
    ) -> RunConfig:
        """Build, deploy and validate one service. Returns the config for later stages."""
        environment = run.environment
        stage.status = StageStatus.RUNNING
        stage.started_at = utcnow()
        logger.info(f"Executing stage {spec.name} of run #{run.number}")

        stage.step = "build"
        await self._persist(run)
        image = await self.builder.build(spec, run.revision, environment, run.number, config)
        stage.image = image.ref

        if policy.scan_required:
            stage.step = "scan"
            await self.builder.scan(image)

        stage.step = "deploy"
        await self._persist(run)
        rollout = await self.executor.deploy(environment, spec.name, image, run_id=run.id)
        if not rollout.success:
            error_cls = ROLLOUT_ERRORS.get(rollout.reason, PipelineError)
            raise error_cls(
                f"rollout {rollout.reason}",
                environment=environment.value,
                service=spec.name,
                stage="deploy",
            )

        if dependents_of(self.services, spec.name):
            stage.step = "discover"
            address = await self.resolver.resolve_address(environment, spec.name)
            stage.address = address.url
            config = config.with_address(spec.name, address)

        stage.step = "health"
        if not await self.prober.wait_healthy(environment, spec.name):
            raise HealthCheckFailed(
                "service did not report healthy before the timeout",
                environment=environment.value,
                service=spec.name,
                stage="health",
            )

        stage.status = StageStatus.SUCCEEDED
        stage.finished_at = utcnow()
        logger.info(f"Stage {spec.name} of run #{run.number} succeeded")
        return config

    async def _await_approval(self, run: PipelineRun):
        if self.signals is None:
            raise ApprovalTimeout(
                "approval timeout",
                environment=run.environment.value,
                stage="approval",
            )

        logger.info(f"Run {run.id} waiting for approval (timeout {self.approval_timeout}s)")

        async def check():
            if await self._cancel_requested(run):
                return "cancelled"
            try:
                if await self.signals.is_approved(run.id):
                    return "approved"
            except Exception as e:
                logger.warning(f"Error reading approval for run {run.id}: {e}")
            return None

        decision = await poll_until(check, self.approval_timeout, self.approval_poll_interval)

        if decision is None:
            raise ApprovalTimeout(
                "approval timeout",
                environment=run.environment.value,
                stage="approval",
            )
        if decision == "cancelled":
            raise RunCancelled(
                "cancelled by operator",
                environment=run.environment.value,
                stage="approval",
            )
        logger.info(f"Run {run.id} approved")

    async def _roll_back(self, run: PipelineRun):
        logger.warning(f"Rolling back {run.environment.value} after failed run {run.id}")
        try:
            result = await self.rollback.rollback(run.environment, run_id=run.id)
        except Exception:
            logger.exception(f"Rollback after run {run.id} raised")
            run.status = RunStatus.ROLLBACK_FAILED
            return

        run.rollback = result
        if result.status == RollbackStatus.ROLLED_BACK:
            run.status = RunStatus.ROLLED_BACK
        elif result.status == RollbackStatus.ROLLBACK_FAILED:
            run.status = RunStatus.ROLLBACK_FAILED

    async def _cancel_requested(self, run: PipelineRun) -> bool:
        if run.id in self._cancelled:
            return True
        if self.signals is None:
            return False
        try:
            return await self.signals.is_cancel_requested(run.id)
        except Exception as e:
            logger.warning(f"Error reading cancellation for run {run.id}: {e}")
            return False

    async def _persist(self, run: PipelineRun):
        self.runs.save(run)
        await self._publish(run.id, run.status.value)

    async def _publish(self, key: str, status: str):
        if self.signals is None:
            return
        try:
            await self.signals.publish_status(key, status)
        except Exception as e:
            logger.warning(f"Failed to publish status of {key}: {e}")

    def _fail(self, run: PipelineRun, error: PipelineError):
        logger.error(f"Run {run.id} failed: {error}")
        run.status = RunStatus.FAILED
        run.error = error.to_dict()
        self._skip_remaining(run)

    def _fail_stage(self, stage: StageResult, error: PipelineError):
        logger.error(f"Stage failed: {error}")
        stage.status = StageStatus.FAILED
        stage.error = error.to_dict()
        stage.finished_at = utcnow()

    def _cancel(self, run: PipelineRun, error: RunCancelled):
        logger.warning(f"Run {run.id} cancelled")
        run.status = RunStatus.CANCELLED
        run.error = error.to_dict()
        self._skip_remaining(run)

    def _skip_remaining(self, run: PipelineRun):
        for stage in run.stages:
            if stage.status == StageStatus.PENDING:
                stage.status = StageStatus.SKIPPED
