"""Tests for the Kubernetes object builders and status readers."""

import json

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException

from controller.src.k8s import jobs
from controller.src.k8s.cluster import build_image_patch, extract_address, get_rollout_status
from controller.src.k8s.job_builder import (
    build_job_name,
    build_kaniko_job,
    build_trivy_job,
    get_job_status,
    parse_trivy_findings,
)
from controller.src.models.domain import Environment, ImageReference

IMAGE = ImageReference(
    service="frontend",
    environment=Environment.PRODUCTION,
    tag="production-a1b2c3d-12",
    repository="registry.test/shop",
)

def _deployment(
    replicas=2,
    generation=3,
    observed=3,
    updated=2,
    total=2,
    available=2,
    conditions=None,
):
    return client.V1Deployment(
        metadata=client.V1ObjectMeta(name="frontend", generation=generation),
        spec=client.V1DeploymentSpec(
            replicas=replicas,
            selector=client.V1LabelSelector(match_labels={"app": "frontend"}),
            template=client.V1PodTemplateSpec(),
        ),
        status=client.V1DeploymentStatus(
            observed_generation=observed,
            updated_replicas=updated,
            replicas=total,
            available_replicas=available,
            conditions=conditions,
        ),
    )

def test_rollout_ready():
    assert get_rollout_status(_deployment()) == "ready"

def test_rollout_pending_states():
    assert get_rollout_status(_deployment(observed=2)) == "pending"
    assert get_rollout_status(_deployment(updated=1)) == "pending"
    assert get_rollout_status(_deployment(total=3)) == "pending"
    assert get_rollout_status(_deployment(available=1)) == "pending"

def test_rollout_progress_deadline_exceeded():
    condition = client.V1DeploymentCondition(
        type="Progressing",
        status="False",
        reason="ProgressDeadlineExceeded",
    )
    assert get_rollout_status(_deployment(updated=1, conditions=[condition])) == "failed"

def test_extract_address():
    svc = client.V1Service(
        spec=client.V1ServiceSpec(ports=[client.V1ServicePort(port=5000)]),
        status=client.V1ServiceStatus(
            load_balancer=client.V1LoadBalancerStatus(
                ingress=[client.V1LoadBalancerIngress(hostname="lb.example.net")]
            )
        ),
    )
    address = extract_address(svc)
    assert address.url == "http://lb.example.net:5000"

def test_extract_address_unassigned():
    svc = client.V1Service(
        spec=client.V1ServiceSpec(ports=[client.V1ServicePort(port=80)]),
        status=client.V1ServiceStatus(load_balancer=client.V1LoadBalancerStatus(ingress=[])),
    )
    assert extract_address(svc) is None
    assert extract_address(client.V1Service()) is None

def test_image_patch_targets_service_container():
    patch = build_image_patch("frontend", IMAGE)
    container = patch["spec"]["template"]["spec"]["containers"][0]
    assert container == {
        "name": "frontend",
        "image": "registry.test/shop/frontend:production-a1b2c3d-12",
    }

def test_job_name_is_valid_k8s_name():
    name = build_job_name("build", IMAGE.model_copy(update={"service": "Very_Long Service Name"}))
    assert name.startswith("dx-build-very-long-service-na")
    assert len(name) <= 63
    assert name == name.lower()

def test_kaniko_job():
    job = build_kaniko_job(
        image=IMAGE,
        sha="a1b2c3d4e5f6",
        branch="main",
        context="frontend",
        build_args={"REACT_APP_API_URL": "http://203.0.113.10:5000", "A": "1"},
    )
    container = job.spec.template.spec.containers[0]
    assert "--destination=registry.test/shop/frontend:production-a1b2c3d-12" in container.args
    assert "--context-sub-path=frontend" in container.args
    assert any(a.endswith("#refs/heads/main#a1b2c3d4e5f6") for a in container.args)
    assert container.args[-2:] == [
        "--build-arg=A=1",
        "--build-arg=REACT_APP_API_URL=http://203.0.113.10:5000",
    ]
    assert job.spec.backoff_limit == 0
    assert job.metadata.labels["deployx/environment"] == "production"

def test_trivy_job():
    job = build_trivy_job(IMAGE)
    container = job.spec.template.spec.containers[0]
    assert container.args[-1] == IMAGE.ref
    assert "HIGH,CRITICAL" in container.args
    assert job.metadata.name.startswith("dx-scan-frontend-")

def test_job_status():
    assert get_job_status(client.V1Job()) == "pending"
    assert get_job_status(client.V1Job(status=client.V1JobStatus(active=1))) == "running"
    assert get_job_status(client.V1Job(status=client.V1JobStatus(succeeded=1))) == "succeeded"
    assert get_job_status(client.V1Job(status=client.V1JobStatus(failed=1))) == "failed"

def test_parse_trivy_findings():
    logs = json.dumps({
        "Results": [
            {"Target": "alpine", "Vulnerabilities": [
                {"VulnerabilityID": "CVE-2024-0001", "Severity": "CRITICAL", "PkgName": "openssl"},
            ]},
            {"Target": "node", "Vulnerabilities": None},
        ]
    })
    assert parse_trivy_findings(logs) == ["CVE-2024-0001 (CRITICAL) in openssl"]
    assert parse_trivy_findings("not json") == []

class FakeBatchApi:
    """Returns the queued job states in order, repeating the last one."""

    def __init__(self, states):
        self.states = list(states)
        self.reads = 0

    def read_namespaced_job(self, name, namespace):
        self.reads += 1
        state = self.states.pop(0) if len(self.states) > 1 else self.states[0]
        if isinstance(state, Exception):
            raise state
        return client.V1Job(status=state)

@pytest.fixture
def batch_api(monkeypatch):
    def install(*states):
        api = FakeBatchApi(states)
        monkeypatch.setattr(jobs, "get_batch_api", lambda: api)
        monkeypatch.setattr(jobs.settings, "job_poll_interval", 0.01)
        return api
    return install

@pytest.mark.asyncio
async def test_wait_for_job_succeeds_after_running(batch_api):
    api = batch_api(
        client.V1JobStatus(active=1),
        ApiException(status=500),
        client.V1JobStatus(succeeded=1),
    )

    assert await jobs.wait_for_job("dx-build-frontend-1", "deployx-builds", timeout=1)
    assert api.reads == 3

@pytest.mark.asyncio
async def test_wait_for_job_failed(batch_api):
    batch_api(client.V1JobStatus(failed=1))

    assert not await jobs.wait_for_job("dx-build-frontend-1", "deployx-builds", timeout=1)

@pytest.mark.asyncio
async def test_wait_for_job_times_out(batch_api):
    api = batch_api(client.V1JobStatus(active=1))

    assert not await jobs.wait_for_job("dx-build-frontend-1", "deployx-builds", timeout=0.05)
    assert api.reads >= 2
