from pydantic import BaseModel, ConfigDict
from typing import Optional, List, Dict, Any, Literal
from datetime import datetime

EnvironmentName = Literal["staging", "production"]

class StageResponse(BaseModel):
    service: str
    status: str
    step: Optional[str] = None
    image: Optional[str] = None
    address: Optional[str] = None
    error: Optional[Dict[str, Any]] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

class PipelineRunResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    number: int
    environment: str
    commit_sha: str
    branch: str
    status: str
    triggered_by: Optional[str] = None
    stages: List[StageResponse] = []
    error: Optional[Dict[str, Any]] = None
    rollback: Optional[Dict[str, Any]] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

class DeploymentRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    sequence: int
    environment: str
    service: str
    repository: str
    image_tag: str
    outcome: str
    reason: Optional[str] = None
    run_id: Optional[str] = None
    reverts_record_id: Optional[str] = None
    timestamp: datetime

class ManualTriggerRequest(BaseModel):
    environment: EnvironmentName
    commit_sha: str
    branch: str = "main"
    triggered_by: Optional[str] = None

class ApprovalRequest(BaseModel):
    approver: str

class RollbackRequest(BaseModel):
    environment: EnvironmentName
    service: Optional[str] = None
    triggered_by: Optional[str] = None

class RollbackResponse(BaseModel):
    rollback_id: str
    environment: Optional[str] = None
    service: Optional[str] = None
    status: str
    live_status: Optional[str] = None
    triggered_by: Optional[str] = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
