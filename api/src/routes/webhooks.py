"""
GitHub webhook endpoints.
"""

from fastapi import APIRouter, Request, HTTPException, Header
from typing import Optional
import logging
import uuid

from api.src.services.github import (
    verify_signature,
    parse_webhook_payload,
    environment_for_branch,
)
from api.src.services.queue import enqueue_pipeline_run

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

async def process_push_event(payload: dict):
    """Map a GitHub push to an environment and queue a pipeline run."""
    webhook_data = parse_webhook_payload(payload)

    if webhook_data["deleted"]:
        return {"status": "skipped", "reason": "Branch deleted"}

    if not webhook_data["commit_sha"]:
        logger.warning("No commit SHA in webhook payload")
        return {"status": "skipped", "reason": "No commit SHA"}

    environment = environment_for_branch(webhook_data["branch"])
    if environment is None:
        return {
            "status": "skipped",
            "reason": f"Branch {webhook_data['branch']} does not deploy",
        }

    run_id = str(uuid.uuid4())
    await enqueue_pipeline_run(
        run_id=run_id,
        environment=environment,
        commit_sha=webhook_data["commit_sha"],
        branch=webhook_data["branch"],
        triggered_by=webhook_data["pusher"],
    )

    logger.info(
        f"Pipeline run {run_id} queued for {environment} "
        f"({webhook_data['repo_full_name']}@{webhook_data['commit_sha'][:7]})"
    )

    return {
        "status": "queued",
        "run_id": run_id,
        "environment": environment,
    }

@router.post("/github")
async def github_webhook(
    request: Request,
    x_hub_signature_256: Optional[str] = Header(None),
    x_github_event: Optional[str] = Header(None),
):
    """
    Receive GitHub webhook events.
    """
    # Get raw body for signature verification
    body = await request.body()

    if not verify_signature(body, x_hub_signature_256 or ""):
        raise HTTPException(status_code=401, detail="Invalid signature")

    # Parse JSON payload
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    # Handle different event types
    if x_github_event == "ping":
        return {"status": "pong", "message": "Webhook configured successfully"}

    if x_github_event == "push":
        return await process_push_event(payload)

    # Ignore other events
    return {
        "status": "ignored",
        "event": x_github_event,
        "message": f"Event type '{x_github_event}' not handled"
    }
