"""
Cluster collaborators backed by the Kubernetes API: deployment rollouts,
load-balancer addresses, image builds and vulnerability scans.
"""

import logging
from typing import Any, Dict, Optional

from kubernetes import client
from kubernetes.client.rest import ApiException

from controller.src.config import get_settings
from controller.src.errors import BuildError
from controller.src.k8s.client import get_apps_api, get_core_api
from controller.src.k8s.job_builder import (
    build_kaniko_job,
    build_trivy_job,
    parse_trivy_findings,
)
from controller.src.k8s.jobs import run_job
from controller.src.models.domain import Address, Environment, EnvironmentPolicy, ImageReference
from controller.src.models.run import ScanReport

logger = logging.getLogger(__name__)
settings = get_settings()

def build_image_patch(service: str, image: ImageReference) -> Dict[str, Any]:
    """Strategic merge patch setting the service container's image."""
    return {
        "spec": {
            "template": {
                "metadata": {"labels": {"deployx/tag": image.tag}},
                "spec": {"containers": [{"name": service, "image": image.ref}]},
            }
        }
    }

def get_rollout_status(deployment: client.V1Deployment) -> str:
    """
    Determine rollout status from a Kubernetes Deployment object.
    Returns: 'ready', 'pending', 'failed'
    """
    status = deployment.status
    if status is None:
        return "pending"

    for condition in status.conditions or []:
        if (
            condition.type == "Progressing"
            and condition.status == "False"
            and condition.reason == "ProgressDeadlineExceeded"
        ):
            return "failed"

    generation = deployment.metadata.generation or 0
    if (status.observed_generation or 0) < generation:
        return "pending"

    desired = deployment.spec.replicas if deployment.spec.replicas is not None else 1
    updated = status.updated_replicas or 0

    if updated < desired:
        return "pending"

    # Old replicas still terminating
    if (status.replicas or 0) > updated:
        return "pending"

    if (status.available_replicas or 0) < desired:
        return "pending"

    return "ready"

def extract_address(service: client.V1Service) -> Optional[Address]:
    """Load-balancer address of a Service, or None while unassigned."""
    if service.status is None or service.status.load_balancer is None:
        return None

    ingress = service.status.load_balancer.ingress or []
    if not ingress:
        return None

    host = ingress[0].ip or ingress[0].hostname
    if not host:
        return None

    ports = (service.spec.ports or []) if service.spec else []
    port = ports[0].port if ports else 80
    return Address(host=host, port=port)

class KubernetesCluster:
    """Cluster control plane and load-balancer address provider."""

    def __init__(self, policies: Dict[Environment, EnvironmentPolicy]):
        self.policies = policies

    def _namespace(self, environment: Environment) -> str:
        return self.policies[environment].namespace

    async def apply_deployment(
        self,
        environment: Environment,
        service: str,
        image: ImageReference,
    ) -> bool:
        """Returns True if accepted, False if the API server rejected the change."""
        apps_v1 = get_apps_api()

        try:
            apps_v1.patch_namespaced_deployment(
                name=service,
                namespace=self._namespace(environment),
                body=build_image_patch(service, image),
            )
            return True
        except ApiException as e:
            if 400 <= e.status < 500:
                logger.error(f"Deployment of {image.ref} rejected: {e.status} {e.reason}")
                return False
            raise

    async def get_rollout_status(self, environment: Environment, service: str) -> str:
        apps_v1 = get_apps_api()
        deployment = apps_v1.read_namespaced_deployment_status(
            name=service,
            namespace=self._namespace(environment),
        )
        return get_rollout_status(deployment)

    async def get_external_address(
        self,
        environment: Environment,
        service: str,
    ) -> Optional[Address]:
        core_v1 = get_core_api()

        try:
            svc = core_v1.read_namespaced_service(
                name=service,
                namespace=self._namespace(environment),
            )
        except ApiException as e:
            if e.status == 404:
                return None
            raise

        return extract_address(svc)

class KubernetesBuildService:
    """Builds and pushes images with kaniko Jobs."""

    async def build(self, request) -> ImageReference:
        job = build_kaniko_job(
            image=request.image,
            sha=request.revision.sha,
            branch=request.revision.branch,
            context=request.service.context,
            dockerfile=request.service.dockerfile,
            build_args=request.build_args,
        )

        succeeded, logs = await run_job(job, settings.build_timeout)
        if not succeeded:
            tail = "\n".join(logs.splitlines()[-20:])
            raise BuildError(
                f"image build failed:\n{tail}",
                environment=request.environment.value,
                service=request.service.name,
                stage="build",
            )

        logger.info(f"Built and pushed {request.image.ref}")
        return request.image

class KubernetesScanner:
    """Scans images with trivy Jobs."""

    async def scan(self, image: ImageReference) -> ScanReport:
        succeeded, logs = await run_job(build_trivy_job(image), settings.scan_timeout)
        findings = parse_trivy_findings(logs)
        if not succeeded and not findings:
            findings = [logs.splitlines()[-1] if logs else "scan job failed"]
        return ScanReport(passed=succeeded, findings=findings)
