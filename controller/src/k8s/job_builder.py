"""
Kubernetes Job builder for image builds (kaniko) and vulnerability scans (trivy).
"""

from kubernetes import client
from typing import List, Dict, Optional
import hashlib
import json

from controller.src.config import get_settings
from controller.src.models.domain import ImageReference

settings = get_settings()

def build_job_name(kind: str, image: ImageReference) -> str:
    """Generate a unique job name."""
    # K8s names must be lowercase, alphanumeric, max 63 chars
    safe_name = image.service.lower().replace(" ", "-").replace("_", "-")
    safe_name = "".join(c for c in safe_name if c.isalnum() or c == "-")
    safe_name = safe_name[:20]  # Truncate service name

    # Use short hash of the image reference for uniqueness
    ref_hash = hashlib.md5(image.ref.encode()).hexdigest()[:8]

    return f"dx-{kind}-{safe_name}-{ref_hash}"

def _labels(kind: str, image: ImageReference) -> Dict[str, str]:
    return {
        "app": "deployx",
        "deployx/kind": kind,
        "deployx/service": image.service,
        "deployx/environment": image.environment.value,
    }

def _build_job(
    kind: str,
    image: ImageReference,
    container: client.V1Container,
    timeout: int,
) -> client.V1Job:
    labels = _labels(kind, image)

    # Pod spec
    pod_spec = client.V1PodSpec(
        containers=[container],
        restart_policy="Never",
    )

    # Pod template
    template = client.V1PodTemplateSpec(
        metadata=client.V1ObjectMeta(labels=labels),
        spec=pod_spec,
    )

    # Job spec
    job_spec = client.V1JobSpec(
        template=template,
        backoff_limit=0,  # Don't retry failed jobs
        active_deadline_seconds=timeout,
        ttl_seconds_after_finished=settings.job_ttl_after_finished,
    )

    return client.V1Job(
        api_version="batch/v1",
        kind="Job",
        metadata=client.V1ObjectMeta(
            name=build_job_name(kind, image),
            namespace=settings.k8s_build_namespace,
            labels=labels,
        ),
        spec=job_spec,
    )

def build_kaniko_job(
    image: ImageReference,
    sha: str,
    branch: str,
    context: str,
    dockerfile: str = "Dockerfile",
    build_args: Optional[Dict[str, str]] = None,
    timeout: int = None,
) -> client.V1Job:
    """
    Build a Job that builds `image` from the repository at `sha` and pushes it.
    """
    args = [
        f"--context=git://{settings.git_url}#refs/heads/{branch}#{sha}",
        f"--context-sub-path={context}",
        f"--dockerfile={dockerfile}",
        f"--destination={image.ref}",
    ]
    for key, value in sorted((build_args or {}).items()):
        args.append(f"--build-arg={key}={value}")

    container = client.V1Container(
        name="build",
        image=settings.kaniko_image,
        args=args,
        resources=client.V1ResourceRequirements(
            requests={"cpu": "500m", "memory": "512Mi"},
            limits={"cpu": "2", "memory": "2Gi"},
        ),
    )
    return _build_job("build", image, container, timeout or settings.build_timeout)

def build_trivy_job(image: ImageReference, timeout: int = None) -> client.V1Job:
    """Build a Job that scans `image` and fails on HIGH/CRITICAL findings."""
    container = client.V1Container(
        name="scan",
        image=settings.trivy_image,
        args=[
            "image",
            "--exit-code", "1",
            "--severity", "HIGH,CRITICAL",
            "--format", "json",
            "--quiet",
            image.ref,
        ],
        resources=client.V1ResourceRequirements(
            requests={"cpu": "100m", "memory": "256Mi"},
            limits={"cpu": "1", "memory": "1Gi"},
        ),
    )
    return _build_job("scan", image, container, timeout or settings.scan_timeout)

def get_job_status(job: client.V1Job) -> str:
    """
    Determine job status from Kubernetes Job object.
    Returns: 'pending', 'running', 'succeeded', 'failed'
    """
    if job.status is None:
        return "pending"

    if job.status.succeeded and job.status.succeeded > 0:
        return "succeeded"

    if job.status.failed and job.status.failed > 0:
        return "failed"

    if job.status.active and job.status.active > 0:
        return "running"

    return "pending"

def parse_trivy_findings(logs: str) -> List[str]:
    """Extract vulnerability summaries from trivy JSON output."""
    try:
        report = json.loads(logs)
    except ValueError:
        return []

    if not isinstance(report, dict):
        return []

    findings = []
    for result in report.get("Results") or []:
        for vuln in result.get("Vulnerabilities") or []:
            findings.append(
                f"{vuln.get('VulnerabilityID')} ({vuln.get('Severity')}) in {vuln.get('PkgName')}"
            )
    return findings
