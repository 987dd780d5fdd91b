"""
Pipeline run, stage and deployment record models.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import List, Literal, Optional, Dict, Any
from datetime import datetime, timezone
from enum import Enum
import uuid

from controller.src.models.domain import Environment, Revision, ImageReference

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

class StageStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"

class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ROLLED_BACK = "rolled-back"
    ROLLBACK_FAILED = "rollback-failed"
    CANCELLED = "cancelled"

class RolloutOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"

class DeploymentRecord(BaseModel):
    """Terminal outcome of one rollout. Never mutated after creation."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    sequence: Optional[int] = None
    environment: Environment
    service: str
    image: ImageReference
    outcome: RolloutOutcome
    reason: Optional[str] = None
    run_id: Optional[str] = None
    reverts_record_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)

    @property
    def succeeded(self) -> bool:
        return self.outcome == RolloutOutcome.SUCCESS

class RolloutResult(BaseModel):
    success: bool
    reason: Optional[str] = None
    record: DeploymentRecord

class ScanReport(BaseModel):
    passed: bool
    findings: List[str] = []

class StageResult(BaseModel):
    service: str
    status: StageStatus = StageStatus.PENDING
    step: Optional[str] = None
    image: Optional[str] = None
    address: Optional[str] = None
    error: Optional[Dict[str, Any]] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

class ServiceRollbackStatus(str, Enum):
    REVERTED = "reverted"
    SKIPPED = "skipped"
    NO_PRIOR_RECORD = "no-prior-record"
    FAILED = "failed"
    UNHEALTHY = "unhealthy"

class ServiceRollback(BaseModel):
    service: str
    status: ServiceRollbackStatus
    target: Optional[str] = None
    reason: Optional[str] = None
    error: Optional[Dict[str, Any]] = None

class RollbackStatus(str, Enum):
    ROLLED_BACK = "rolled-back"
    ROLLBACK_FAILED = "rollback-failed"
    NOOP = "noop"

class RollbackResult(BaseModel):
    environment: Environment
    status: RollbackStatus = RollbackStatus.NOOP
    services: List[ServiceRollback] = []
    started_at: datetime = Field(default_factory=utcnow)
    finished_at: Optional[datetime] = None

    @property
    def reverted(self) -> List[str]:
        return [
            s.service for s in self.services
            if s.status in (ServiceRollbackStatus.REVERTED, ServiceRollbackStatus.UNHEALTHY)
        ]

class PipelineRun(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    number: int
    environment: Environment
    revision: Revision
    status: RunStatus = RunStatus.PENDING
    stages: List[StageResult] = []
    error: Optional[Dict[str, Any]] = None
    rollback: Optional[RollbackResult] = None
    created_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def reason(self) -> Optional[str]:
        return self.error["reason"] if self.error else None

    def stage(self, service: str) -> Optional[StageResult]:
        for stage in self.stages:
            if stage.service == service:
                return stage
        return None

class OperatorRollbackStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    ROLLED_BACK = "rolled-back"
    ROLLBACK_FAILED = "rollback-failed"
    NOOP = "noop"
    REFUSED = "refused"

class OperatorRollback(BaseModel):
    """A rollback requested by an operator rather than by a failed run."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    environment: Environment
    service: Optional[str] = None
    status: OperatorRollbackStatus = OperatorRollbackStatus.PENDING
    triggered_by: Optional[str] = None
    result: Optional[RollbackResult] = None
    error: Optional[Dict[str, Any]] = None
    created_at: datetime = Field(default_factory=utcnow)
    finished_at: Optional[datetime] = None

class PipelineJob(BaseModel):
    """Queue payload pushed by the API."""

    type: Literal["pipeline", "rollback"] = "pipeline"
    run_id: Optional[str] = None
    rollback_id: Optional[str] = None
    environment: Environment
    sha: Optional[str] = None
    branch: Optional[str] = None
    service: Optional[str] = None
    triggered_by: Optional[str] = None
    queued_at: str
