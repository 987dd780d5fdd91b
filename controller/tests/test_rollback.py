"""Tests for the rollback controller and environment leases."""

import asyncio

import pytest

from controller.src.errors import LeaseTimeout, NoPriorRecord
from controller.src.models.run import (
    RollbackStatus,
    RolloutOutcome,
    ServiceRollbackStatus,
)
from controller.src.services import leases as leases_module
from controller.src.services.leases import EnvironmentLeases

def _statuses(result):
    return {s.service: s.status for s in result.services}

@pytest.mark.asyncio
async def test_rollback_single_service(harness, production):
    harness.seed(production, "backend-api", "production-aaaaaaa-1")
    current = harness.seed(production, "backend-api", "production-bbbbbbb-2")

    result = await harness.rollback.rollback(production, service="backend-api")

    assert result.status == RollbackStatus.ROLLED_BACK
    assert result.reverted == ["backend-api"]
    assert harness.cluster.images[(production, "backend-api")] == "production-aaaaaaa-1"

    latest = harness.log.latest(production, "backend-api")
    assert latest.reverts_record_id == current.id
    assert latest.image.tag == "production-aaaaaaa-1"
    assert latest.succeeded

@pytest.mark.asyncio
async def test_rollback_without_prior_record_raises_before_cluster_change(harness, production):
    harness.seed(production, "backend-api", "production-aaaaaaa-1")

    with pytest.raises(NoPriorRecord) as exc:
        await harness.rollback.rollback(production, service="backend-api")
    assert exc.value.service == "backend-api"
    assert harness.cluster.applied == []

@pytest.mark.asyncio
async def test_rollback_unknown_service(harness, production):
    with pytest.raises(ValueError, match="Unknown service"):
        await harness.rollback.rollback(production, service="billing")

@pytest.mark.asyncio
async def test_rollback_all_services_in_reverse_order(harness, staging):
    for service in ("backend-api", "frontend"):
        harness.seed(staging, service, "staging-aaaaaaa-1")
    for service in ("backend-api", "frontend"):
        harness.seed(staging, service, "staging-bbbbbbb-2")

    result = await harness.rollback.rollback(staging)

    assert result.status == RollbackStatus.ROLLED_BACK
    assert [s.service for s in result.services] == ["frontend", "backend-api"]
    assert [a[1] for a in harness.cluster.applied] == ["frontend", "backend-api"]

@pytest.mark.asyncio
async def test_rollback_all_reports_missing_targets(harness, staging):
    harness.seed(staging, "backend-api", "staging-aaaaaaa-1")
    harness.seed(staging, "backend-api", "staging-bbbbbbb-2")
    harness.seed(staging, "frontend", "staging-bbbbbbb-2")

    result = await harness.rollback.rollback(staging)

    assert result.status == RollbackStatus.ROLLBACK_FAILED
    assert _statuses(result) == {
        "frontend": ServiceRollbackStatus.NO_PRIOR_RECORD,
        "backend-api": ServiceRollbackStatus.REVERTED,
    }

@pytest.mark.asyncio
async def test_rollback_skips_services_not_in_run(harness, production):
    harness.seed(production, "backend-api", "production-aaaaaaa-1")
    harness.seed(production, "frontend", "production-aaaaaaa-1")
    harness.seed(production, "backend-api", "production-bbbbbbb-2", run_id="run-2")

    result = await harness.rollback.rollback(production, run_id="run-2")

    assert result.status == RollbackStatus.ROLLED_BACK
    assert _statuses(result) == {
        "frontend": ServiceRollbackStatus.SKIPPED,
        "backend-api": ServiceRollbackStatus.REVERTED,
    }
    assert (production, "frontend", "production-aaaaaaa-1") not in harness.cluster.applied

@pytest.mark.asyncio
async def test_failed_revert_aborts_remaining(harness, production):
    for service in ("backend-api", "frontend"):
        harness.seed(production, service, "production-aaaaaaa-1")
        harness.seed(production, service, "production-bbbbbbb-2")
    harness.cluster.failing.add("frontend")

    result = await harness.rollback.rollback(production)

    assert result.status == RollbackStatus.ROLLBACK_FAILED
    assert _statuses(result) == {
        "frontend": ServiceRollbackStatus.FAILED,
        "backend-api": ServiceRollbackStatus.SKIPPED,
    }
    assert harness.cluster.images[(production, "backend-api")] == "production-bbbbbbb-2"
    assert harness.log.latest(production, "frontend").outcome == RolloutOutcome.FAILURE

@pytest.mark.asyncio
async def test_unhealthy_after_rollback(harness, production):
    harness.seed(production, "backend-api", "production-aaaaaaa-1")
    harness.seed(production, "backend-api", "production-bbbbbbb-2")
    harness.prober.bad_tags = {"aaaaaaa"}

    result = await harness.rollback.rollback(production, service="backend-api")

    assert result.status == RollbackStatus.ROLLBACK_FAILED
    assert _statuses(result) == {"backend-api": ServiceRollbackStatus.UNHEALTHY}

@pytest.mark.asyncio
async def test_repeated_rollback_does_not_flip_flop(harness, production):
    harness.seed(production, "backend-api", "production-aaaaaaa-1")
    harness.seed(production, "backend-api", "production-bbbbbbb-2")
    harness.seed(production, "backend-api", "production-ccccccc-3")

    await harness.rollback.rollback(production, service="backend-api")
    assert harness.cluster.images[(production, "backend-api")] == "production-bbbbbbb-2"

    await harness.rollback.rollback(production, service="backend-api")
    assert harness.cluster.images[(production, "backend-api")] == "production-aaaaaaa-1"

@pytest.mark.asyncio
async def test_lease_is_exclusive_per_environment(staging, production):
    leases = EnvironmentLeases()

    async with leases.hold(staging, "run-1", timeout=1) as lease:
        assert leases.holder(staging) == lease
        async with leases.hold(production, "run-2", timeout=1):
            assert leases.holder(production).run_id == "run-2"

        with pytest.raises(LeaseTimeout, match="run-1"):
            async with leases.hold(staging, "run-3", timeout=0.02):
                pass

    assert leases.holder(staging) is None

@pytest.mark.asyncio
async def test_lease_waits_for_release(staging):
    leases = EnvironmentLeases()
    order = []

    async def run(run_id):
        async with leases.hold(staging, run_id, timeout=1):
            order.append(f"{run_id}:start")
            await asyncio.sleep(0.01)
            order.append(f"{run_id}:end")

    await asyncio.gather(run("a"), run("b"))

    assert order == ["a:start", "a:end", "b:start", "b:end"]

@pytest.mark.asyncio
async def test_lease_timeout_after_acquire_releases_lock(staging, monkeypatch):
    leases = EnvironmentLeases()

    async def acquire_then_time_out(awaitable, timeout):
        await awaitable
        raise asyncio.TimeoutError()

    monkeypatch.setattr(leases_module.asyncio, "wait_for", acquire_then_time_out)
    with pytest.raises(LeaseTimeout):
        async with leases.hold(staging, "run-late", timeout=0.01):
            pass
    monkeypatch.undo()

    assert not leases._locks[staging].locked()
    async with leases.hold(staging, "run-next", timeout=0.1):
        assert leases.holder(staging).run_id == "run-next"
