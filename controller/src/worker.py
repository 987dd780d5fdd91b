"""
Queue worker - pulls pipeline and rollback jobs from Redis and executes them.
"""

import asyncio
import logging
import json
from typing import Optional, Set

import redis.asyncio as redis
from pydantic import ValidationError

from controller.src.config import get_settings
from controller.src.k8s.cluster import KubernetesBuildService, KubernetesCluster, KubernetesScanner
from controller.src.models.domain import Revision
from controller.src.models.run import PipelineJob
from controller.src.services.artifact_builder import ArtifactBuilder
from controller.src.services.catalog import load_catalog
from controller.src.services.discovery import ServiceDiscoveryResolver
from controller.src.services.executor import DeploymentExecutor
from controller.src.services.health import HealthProber
from controller.src.services.orchestrator import PipelineOrchestrator, build_policies
from controller.src.services.record_store import (
    DeploymentLog,
    RollbackStore,
    RunStore,
    get_engine,
    init_db,
)
from controller.src.services.rollback import RollbackController
from controller.src.services.signals import RedisRunSignals

logger = logging.getLogger(__name__)
settings = get_settings()

PIPELINE_QUEUE = "deployx:jobs"

def build_orchestrator() -> PipelineOrchestrator:
    """Wire the orchestrator to Kubernetes, the database and Redis."""
    services = load_catalog(settings.catalog_path)
    policies = build_policies(settings)

    engine = get_engine()
    init_db(engine)
    log = DeploymentLog(engine)

    cluster = KubernetesCluster(policies)
    executor = DeploymentExecutor(cluster, log)
    resolver = ServiceDiscoveryResolver(cluster, services)
    prober = HealthProber(services, policies, resolver)

    return PipelineOrchestrator(
        services=services,
        policies=policies,
        builder=ArtifactBuilder(KubernetesBuildService(), KubernetesScanner()),
        executor=executor,
        resolver=resolver,
        prober=prober,
        rollback=RollbackController(services, log, executor, prober),
        runs=RunStore(engine),
        rollbacks=RollbackStore(engine),
        signals=RedisRunSignals(),
    )

async def get_next_job(client: redis.Redis) -> Optional[PipelineJob]:
    """Pull next job from Redis queue."""
    result = await client.brpop(PIPELINE_QUEUE, timeout=5)
    if not result:
        return None

    _, job_data = result
    try:
        return PipelineJob.model_validate(json.loads(job_data))
    except (ValueError, ValidationError) as e:
        logger.error(f"Discarding malformed job {job_data!r}: {e}")
        return None

async def handle_job(orchestrator: PipelineOrchestrator, job: PipelineJob):
    """Execute one queued job."""
    if job.type == "rollback":
        logger.info(f"Received rollback {job.rollback_id or 'new'} for {job.environment.value}")
        await orchestrator.run_rollback(
            job.environment,
            service=job.service,
            rollback_id=job.rollback_id,
            triggered_by=job.triggered_by,
        )
        return

    if not job.sha:
        logger.error(f"Pipeline job {job.run_id} has no commit SHA")
        return

    logger.info(f"Received job for run {job.run_id or 'new'}")
    await orchestrator.run_pipeline(
        job.environment,
        Revision(sha=job.sha, branch=job.branch or ""),
        run_id=job.run_id,
        triggered_by=job.triggered_by,
    )

async def _run_safely(orchestrator: PipelineOrchestrator, job: PipelineJob):
    try:
        await handle_job(orchestrator, job)
    except Exception as e:
        logger.exception(f"Failed to execute job {job.run_id or job.rollback_id or job.type}: {e}")

async def worker_loop(orchestrator: Optional[PipelineOrchestrator] = None):
    """
    Main worker loop. Each job runs as its own task: different environments
    proceed concurrently, same-environment runs queue on the environment lease.
    """
    orchestrator = orchestrator or build_orchestrator()
    client = redis.from_url(settings.redis_url, decode_responses=True)
    tasks: Set[asyncio.Task] = set()
    logger.info("Worker started, waiting for jobs...")

    try:
        while True:
            try:
                job = await get_next_job(client)

                if job:
                    task = asyncio.create_task(_run_safely(orchestrator, job))
                    tasks.add(task)
                    task.add_done_callback(tasks.discard)

            except Exception as e:
                logger.exception(f"Worker error: {e}")
                await asyncio.sleep(5)
    finally:
        if tasks:
            logger.info(f"Waiting for {len(tasks)} in-flight jobs...")
            await asyncio.gather(*tasks, return_exceptions=True)
        await client.close()

def run_worker():
    """Entry point for worker."""
    try:
        asyncio.run(worker_loop())
    except KeyboardInterrupt:
        logger.info("Worker shutting down...")
