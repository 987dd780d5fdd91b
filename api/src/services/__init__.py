from api.src.services.github import (
    verify_signature,
    parse_webhook_payload,
    environment_for_branch,
)
from api.src.services.queue import (
    enqueue_pipeline_run,
    enqueue_rollback,
    approve_run,
    request_cancel,
    get_run_status,
    get_queue_length,
)

__all__ = [
    "verify_signature",
    "parse_webhook_payload",
    "environment_for_branch",
    "enqueue_pipeline_run",
    "enqueue_rollback",
    "approve_run",
    "request_cancel",
    "get_run_status",
    "get_queue_length",
]
