"""Tests for webhook handling."""

import hashlib
import hmac
import json

import pytest
from fastapi.testclient import TestClient

from api.src.main import app
from api.src.routes import webhooks
from api.src.services import github
from api.src.services.github import (
    environment_for_branch,
    parse_webhook_payload,
    verify_signature,
)

def _push(branch="main", sha="abc123def456", **extra):
    payload = {
        "ref": f"refs/heads/{branch}",
        "repository": {"name": "shop", "full_name": "acme/shop"},
        "head_commit": {"id": sha, "message": "Test commit"},
        "pusher": {"name": "testuser"},
    }
    payload.update(extra)
    return payload

@pytest.fixture
def queued(monkeypatch):
    jobs = []

    async def fake_enqueue(**job):
        jobs.append(job)

    monkeypatch.setattr(webhooks, "enqueue_pipeline_run", fake_enqueue)
    return jobs

def test_parse_push_payload():
    result = parse_webhook_payload(_push())

    assert result["repo_full_name"] == "acme/shop"
    assert result["branch"] == "main"
    assert result["commit_sha"] == "abc123def456"
    assert result["pusher"] == "testuser"
    assert result["deleted"] is False

def test_parse_payload_with_after():
    """Test fallback to 'after' field for commit SHA."""
    payload = _push(branch="develop", after="xyz789")
    payload["head_commit"] = None

    result = parse_webhook_payload(payload)
    assert result["commit_sha"] == "xyz789"
    assert result["branch"] == "develop"

def test_verify_signature_without_secret(monkeypatch):
    """When no secret is configured, verification should pass."""
    monkeypatch.setattr(github.settings, "github_webhook_secret", "")
    assert verify_signature(b"payload", "sha256=anything") is True

def test_verify_signature_with_secret(monkeypatch):
    monkeypatch.setattr(github.settings, "github_webhook_secret", "s3cret")
    digest = hmac.new(b"s3cret", b"payload", hashlib.sha256).hexdigest()

    assert verify_signature(b"payload", f"sha256={digest}") is True
    assert verify_signature(b"payload", "sha256=forged") is False
    assert verify_signature(b"payload", "") is False

def test_branch_strategy():
    assert environment_for_branch("main") == "production"
    assert environment_for_branch("develop") == "staging"
    assert environment_for_branch("feature/login") is None

@pytest.mark.asyncio
async def test_push_to_main_queues_production_run(queued):
    result = await webhooks.process_push_event(_push())

    assert result["status"] == "queued"
    assert result["environment"] == "production"
    assert queued == [{
        "run_id": result["run_id"],
        "environment": "production",
        "commit_sha": "abc123def456",
        "branch": "main",
        "triggered_by": "testuser",
    }]

@pytest.mark.asyncio
async def test_push_to_feature_branch_is_skipped(queued):
    result = await webhooks.process_push_event(_push(branch="feature/login"))

    assert result["status"] == "skipped"
    assert queued == []

@pytest.mark.asyncio
async def test_deleted_branch_is_skipped(queued):
    result = await webhooks.process_push_event(_push(branch="develop", deleted=True))

    assert result == {"status": "skipped", "reason": "Branch deleted"}
    assert queued == []

def test_github_endpoint(monkeypatch, queued):
    monkeypatch.setattr(github.settings, "github_webhook_secret", "")
    client = TestClient(app)

    ping = client.post("/api/webhooks/github", json={}, headers={"X-GitHub-Event": "ping"})
    assert ping.json()["status"] == "pong"

    push = client.post(
        "/api/webhooks/github",
        content=json.dumps(_push(branch="develop")),
        headers={"X-GitHub-Event": "push", "Content-Type": "application/json"},
    )
    assert push.status_code == 200
    assert push.json()["environment"] == "staging"
    assert len(queued) == 1

def test_github_endpoint_rejects_bad_signature(monkeypatch, queued):
    monkeypatch.setattr(github.settings, "github_webhook_secret", "s3cret")
    client = TestClient(app)

    response = client.post(
        "/api/webhooks/github",
        json=_push(),
        headers={"X-GitHub-Event": "push", "X-Hub-Signature-256": "sha256=forged"},
    )
    assert response.status_code == 401
    assert queued == []
