from controller.src.services.artifact_builder import ArtifactBuilder, BuildRequest
from controller.src.services.catalog import load_catalog, deployment_order, dependents_of
from controller.src.services.discovery import ServiceDiscoveryResolver
from controller.src.services.executor import DeploymentExecutor
from controller.src.services.health import HealthProber
from controller.src.services.leases import EnvironmentLeases
from controller.src.services.orchestrator import PipelineOrchestrator, build_policies
from controller.src.services.record_store import DeploymentLog, RollbackStore, RunStore
from controller.src.services.rollback import RollbackController

__all__ = [
    "ArtifactBuilder",
    "BuildRequest",
    "load_catalog",
    "deployment_order",
    "dependents_of",
    "ServiceDiscoveryResolver",
    "DeploymentExecutor",
    "HealthProber",
    "EnvironmentLeases",
    "PipelineOrchestrator",
    "build_policies",
    "DeploymentLog",
    "RunStore",
    "RollbackController",
]
