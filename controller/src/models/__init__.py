from controller.src.models.domain import (
    Address,
    Environment,
    EnvironmentPolicy,
    ImageReference,
    Revision,
    RunConfig,
    ServiceSpec,
    make_image_tag,
)
from controller.src.models.run import (
    DeploymentRecord,
    OperatorRollback,
    OperatorRollbackStatus,
    PipelineJob,
    PipelineRun,
    RollbackResult,
    RollbackStatus,
    RolloutOutcome,
    RolloutResult,
    RunStatus,
    ScanReport,
    ServiceRollback,
    ServiceRollbackStatus,
    StageResult,
    StageStatus,
)

__all__ = [
    "Address",
    "Environment",
    "EnvironmentPolicy",
    "ImageReference",
    "Revision",
    "RunConfig",
    "ServiceSpec",
    "make_image_tag",
    "DeploymentRecord",
    "OperatorRollback",
    "OperatorRollbackStatus",
    "PipelineJob",
    "PipelineRun",
    "RollbackResult",
    "RollbackStatus",
    "RolloutOutcome",
    "RolloutResult",
    "RunStatus",
    "ScanReport",
    "ServiceRollback",
    "ServiceRollbackStatus",
    "StageResult",
    "StageStatus",
]
