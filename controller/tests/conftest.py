"""Shared fakes for the external collaborators."""

import asyncio

import pytest
from sqlalchemy import create_engine

from controller.src.config import get_settings
from controller.src.errors import BuildError
from controller.src.models.domain import Address, Environment, ImageReference, Revision
from controller.src.models.run import DeploymentRecord, RolloutOutcome, ScanReport
from controller.src.services.artifact_builder import ArtifactBuilder
from controller.src.services.catalog import load_catalog
from controller.src.services.discovery import ServiceDiscoveryResolver
from controller.src.services.executor import DeploymentExecutor
from controller.src.services.leases import EnvironmentLeases
from controller.src.services.orchestrator import PipelineOrchestrator, build_policies
from controller.src.services.record_store import DeploymentLog, RollbackStore, RunStore, init_db
from controller.src.services.rollback import RollbackController

REPOSITORY = "registry.test/shop"

class FakeCluster:
    """Cluster control plane and address provider kept in memory."""

    def __init__(self):
        self.applied = []
        self.images = {}
        self.rejected = set()
        self.stuck = set()  # services whose rollout never completes
        self.failing = set()  # services whose rollout fails
        self.addresses = {}
        self.address_lookups = 0

    async def apply_deployment(self, environment, service, image):
        if service in self.rejected:
            return False
        self.applied.append((environment, service, image.tag))
        self.images[(environment, service)] = image.tag
        return True

    async def get_rollout_status(self, environment, service):
        if service in self.stuck:
            return "pending"
        if service in self.failing:
            return "failed"
        return "ready"

    async def get_external_address(self, environment, service):
        self.address_lookups += 1
        return self.addresses.get(service)

class FakeBuildService:
    def __init__(self, delay: float = 0):
        self.requests = []
        self.failing = set()
        self.delay = delay
        self.on_build = None

    async def build(self, request):
        self.requests.append(request)
        if self.on_build:
            self.on_build(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if request.service.name in self.failing:
            raise BuildError("compile failed")
        return request.image

class FakeScanner:
    def __init__(self, passed: bool = True, findings=None):
        self.passed = passed
        self.findings = findings or []
        self.scanned = []

    async def scan(self, image):
        self.scanned.append(image.ref)
        return ScanReport(passed=self.passed, findings=self.findings)

class FakeSignals:
    def __init__(self, approved: bool = True):
        self.approve_all = approved
        self.approved = set()
        self.cancelled = set()
        self.statuses = {}

    async def is_approved(self, run_id):
        return self.approve_all or run_id in self.approved

    async def is_cancel_requested(self, run_id):
        return run_id in self.cancelled

    async def publish_status(self, run_id, status):
        self.statuses.setdefault(run_id, []).append(status)

class FakeProber:
    """Healthy unless the image deployed for a service contains a bad tag fragment."""

    def __init__(self, cluster: FakeCluster):
        self.cluster = cluster
        self.bad_tags = set()
        self.calls = []

    async def wait_healthy(self, environment, service, timeout=None):
        self.calls.append((environment, service))
        tag = self.cluster.images.get((environment, service), "")
        return not any(fragment in tag for fragment in self.bad_tags)

class Harness:
    """A fully wired orchestrator with fake collaborators."""

    def __init__(self, tmp_path, approved=True, build_delay=0):
        self.engine = create_engine(f"sqlite:///{tmp_path}/deployx.db")
        init_db(self.engine)

        self.services = load_catalog()
        self.policies = build_policies(get_settings())
        self.log = DeploymentLog(self.engine)
        self.runs = RunStore(self.engine)
        self.rollbacks = RollbackStore(self.engine)
        self.cluster = FakeCluster()
        self.cluster.addresses["backend-api"] = Address(host="203.0.113.10", port=5000)
        self.build_service = FakeBuildService(delay=build_delay)
        self.scanner = FakeScanner()
        self.signals = FakeSignals(approved=approved)
        self.prober = FakeProber(self.cluster)
        self.leases = EnvironmentLeases()

        self.executor = DeploymentExecutor(self.cluster, self.log, timeout=0.05, poll_interval=0.01)
        self.resolver = ServiceDiscoveryResolver(
            self.cluster, self.services, timeout=0.05, poll_interval=0.01
        )
        self.rollback = RollbackController(self.services, self.log, self.executor, self.prober)
        self.orchestrator = PipelineOrchestrator(
            services=self.services,
            policies=self.policies,
            builder=ArtifactBuilder(self.build_service, self.scanner, repository=REPOSITORY),
            executor=self.executor,
            resolver=self.resolver,
            prober=self.prober,
            rollback=self.rollback,
            runs=self.runs,
            signals=self.signals,
            leases=self.leases,
            approval_timeout=0.05,
            approval_poll_interval=0.01,
            lease_timeout=5,
            rollbacks=self.rollbacks,
        )

    def seed(self, environment, service, tag, outcome=RolloutOutcome.SUCCESS, run_id=None):
        """Append a historical record and mirror it on the cluster."""
        record = self.log.append(DeploymentRecord(
            environment=environment,
            service=service,
            image=ImageReference(
                service=service, environment=environment, tag=tag, repository=REPOSITORY
            ),
            outcome=outcome,
            run_id=run_id,
        ))
        self.cluster.images[(environment, service)] = tag
        return record

@pytest.fixture
def harness(tmp_path):
    return Harness(tmp_path)

@pytest.fixture
def revision():
    return Revision(sha="a1b2c3d4e5f6a7b8c9d0", branch="main")

@pytest.fixture
def staging():
    return Environment.STAGING

@pytest.fixture
def production():
    return Environment.PRODUCTION

@pytest.fixture
def make_harness(tmp_path):
    def factory(**kwargs):
        return Harness(tmp_path, **kwargs)
    return factory
