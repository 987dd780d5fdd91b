from api.src.models.pipeline import PipelineRun, DeploymentRecord
from api.src.models.run import (
    PipelineRunResponse,
    StageResponse,
    DeploymentRecordResponse,
    ManualTriggerRequest,
    ApprovalRequest,
    RollbackRequest,
)

__all__ = [
    "PipelineRun",
    "DeploymentRecord",
    "PipelineRunResponse",
    "StageResponse",
    "DeploymentRecordResponse",
    "ManualTriggerRequest",
    "ApprovalRequest",
    "RollbackRequest",
]
