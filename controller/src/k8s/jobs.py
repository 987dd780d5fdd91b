"""
Run one-shot Kubernetes Jobs and collect their logs.
"""

import asyncio
import logging
from typing import Optional, Tuple

from kubernetes import client
from kubernetes.client.rest import ApiException

from controller.src.config import get_settings
from controller.src.k8s.client import delete_job, get_batch_api, get_core_api
from controller.src.k8s.job_builder import get_job_status
from controller.src.services.polling import poll_until

logger = logging.getLogger(__name__)
settings = get_settings()

async def run_job(job: client.V1Job, timeout: int) -> Tuple[bool, str]:
    """
    Create the job, wait for it to finish and collect its logs.
    Returns (succeeded, logs).
    """
    batch_v1 = get_batch_api()
    job_name = job.metadata.name
    namespace = job.metadata.namespace
    logger.info(f"Creating job {job_name}")

    try:
        batch_v1.create_namespaced_job(namespace=namespace, body=job)
    except ApiException as e:
        if e.status == 409:
            # Job already exists, delete and recreate
            logger.warning(f"Job {job_name} already exists, deleting...")
            delete_job(job_name, namespace)
            await asyncio.sleep(2)
            batch_v1.create_namespaced_job(namespace=namespace, body=job)
        else:
            raise

    success = await wait_for_job(job_name, namespace, timeout)
    logs = await collect_logs(job_name, namespace)
    return success, logs

async def wait_for_job(job_name: str, namespace: str, timeout: int) -> bool:
    """
    Wait for a job to complete.
    Returns True if succeeded, False if failed or timed out.
    """
    batch_v1 = get_batch_api()

    async def check() -> Optional[str]:
        try:
            job = batch_v1.read_namespaced_job(name=job_name, namespace=namespace)
        except ApiException as e:
            logger.error(f"Error checking job status: {e}")
            return None

        status = get_job_status(job)
        return status if status in ("succeeded", "failed") else None

    status = await poll_until(check, timeout, settings.job_poll_interval)
    if status is None:
        logger.error(f"Job {job_name} timed out after {timeout}s")
        return False
    return status == "succeeded"

async def get_job_pod_name(job_name: str, namespace: str) -> Optional[str]:
    """Get the pod name for a job."""
    core_v1 = get_core_api()

    try:
        pods = core_v1.list_namespaced_pod(
            namespace=namespace,
            label_selector=f"job-name={job_name}",
        )

        if pods.items:
            return pods.items[0].metadata.name
        return None
    except ApiException as e:
        logger.error(f"Failed to get pod for job {job_name}: {e}")
        return None

async def collect_logs(job_name: str, namespace: str) -> str:
    """Collect logs from a job's pod."""
    core_v1 = get_core_api()

    pod_name = await get_job_pod_name(job_name, namespace)
    if not pod_name:
        return "No pod found for job"

    try:
        return core_v1.read_namespaced_pod_log(
            name=pod_name,
            namespace=namespace,
            tail_lines=1000,  # Limit log lines
        )
    except ApiException as e:
        if e.status == 400:
            # Pod might not have started yet
            return "Waiting for pod to start..."
        logger.error(f"Failed to collect logs for {pod_name}: {e}")
        return f"Error collecting logs: {e.reason}"
