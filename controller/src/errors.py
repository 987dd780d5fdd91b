"""
Pipeline error taxonomy.

Every stage failure carries the environment, service, stage name and a
reason string so a run can be diagnosed from its stage results alone.
"""

from typing import Any, Dict, Optional


class CatalogError(Exception):
    """Raised when the service catalog is invalid."""
    pass


class PipelineError(Exception):
    """Base class for failures recorded on a pipeline run."""

    kind = "pipeline_error"

    def __init__(
        self,
        reason: str,
        environment: Optional[str] = None,
        service: Optional[str] = None,
        stage: Optional[str] = None,
    ):
        self.reason = reason
        self.environment = environment
        self.service = service
        self.stage = stage
        super().__init__(reason)

    def __str__(self) -> str:
        where = "/".join(p for p in (self.environment, self.service, self.stage) if p)
        return f"[{where}] {self.reason}" if where else self.reason

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "environment": self.environment,
            "service": self.service,
            "stage": self.stage,
            "reason": self.reason,
        }


class BuildError(PipelineError):
    kind = "build_error"


class ScanFailed(PipelineError):
    kind = "scan_failed"


class RolloutTimeout(PipelineError):
    kind = "rollout_timeout"


class RolloutRejected(PipelineError):
    kind = "rollout_rejected"


class RolloutFailed(PipelineError):
    kind = "rollout_failed"


class NotExposed(PipelineError):
    kind = "not_exposed"


class AddressResolutionTimeout(PipelineError):
    kind = "address_resolution_timeout"


class HealthCheckFailed(PipelineError):
    kind = "health_check_failed"


class ApprovalTimeout(PipelineError):
    kind = "approval_timeout"


class LeaseTimeout(PipelineError):
    kind = "lease_timeout"


class RunCancelled(PipelineError):
    kind = "run_cancelled"


class NoPriorRecord(PipelineError):
    """No earlier successful deployment exists to roll back to."""

    kind = "no_prior_record"


ROLLOUT_ERRORS = {
    "timeout": RolloutTimeout,
    "rejected": RolloutRejected,
    "failed": RolloutFailed,
}
