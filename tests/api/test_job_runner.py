"""Tests for the job runner: execution, failure, cooperative cancellation."""
import asyncio
import threading

import pytest

from job_engine.api.jobs.models import JobStatus
from job_engine.api.jobs.operations import OperationRegistry, check_cancelled
from job_engine.api.jobs.runner import JobRunner


@pytest.fixture
def registry():
    reg = OperationRegistry()
    gate = threading.Event()
    reg.gate = gate

    @reg.register("virtualServer.provision")
    def provision(params, cancel_event=None, report_eta=None):
        return f"/virtualServers/{params['name']}"

    @reg.register("virtualServer.explode")
    def explode(params, cancel_event=None, report_eta=None):
        raise ValueError("boom")

    @reg.register("virtualServer.wait")
    def wait(params, cancel_event=None, report_eta=None):
        while not gate.is_set():
            check_cancelled(cancel_event)
            cancel_event.wait(0.01)
        return params.get("location")

    @reg.register("virtualServer.stubborn")
    def stubborn(params, cancel_event=None, report_eta=None):
        # ignores cancellation and finishes anyway
        gate.wait(2)
        return "/virtualServers/late"

    return reg


@pytest.fixture
async def runner(manager, registry):
    r = JobRunner(manager, registry, max_concurrent=2)
    r.start()
    yield r
    registry.gate.set()
    await r.stop()


@pytest.mark.asyncio
async def test_runner_completes_job(manager, runner, wait_for_status):
    job = await manager.create("virtualServer.provision", params={"name": "abc"})
    rec = await wait_for_status(manager, job.id, JobStatus.COMPLETED)
    assert rec.started_at is not None
    assert rec.completed_at is not None
    assert rec.result_resource_location == "/virtualServers/abc"


@pytest.mark.asyncio
async def test_runner_failure(manager, runner, wait_for_status):
    job = await manager.create("virtualServer.explode")
    rec = await wait_for_status(manager, job.id, JobStatus.FAILED)
    assert "boom" in rec.failure_reason


@pytest.mark.asyncio
async def test_runner_unknown_operation_fails_job(manager, runner, wait_for_status):
    job = await manager.create("virtualServer.unknown")
    rec = await wait_for_status(manager, job.id, JobStatus.FAILED)
    assert "not registered" in rec.failure_reason
    assert rec.started_at is None


@pytest.mark.asyncio
async def test_cooperative_cancel(manager, runner, wait_for_status):
    job = await manager.create("virtualServer.wait")
    await wait_for_status(manager, job.id, JobStatus.STARTED)
    await manager.cancel(job.id)

    for _ in range(100):
        if runner.pending_count == 0:
            break
        await asyncio.sleep(0.02)
    assert runner.pending_count == 0
    assert (await manager.get_status(job.id)).status == JobStatus.CANCELED


@pytest.mark.asyncio
async def test_completion_after_cancel_is_rejected(manager, runner, registry, wait_for_status):
    job = await manager.create("virtualServer.stubborn")
    await wait_for_status(manager, job.id, JobStatus.STARTED)
    await manager.cancel(job.id)
    registry.gate.set()

    for _ in range(100):
        if runner.pending_count == 0:
            break
        await asyncio.sleep(0.02)
    rec = await manager.get_status(job.id)
    assert rec.status == JobStatus.CANCELED
    assert rec.result_resource_location is None
    assert rec.completed_at is None


@pytest.mark.asyncio
async def test_cancelled_before_start_is_skipped(manager, registry, wait_for_status):
    job = await manager.create("virtualServer.provision", params={"name": "x"})
    await manager.cancel(job.id)

    r = JobRunner(manager, registry)
    r.start()
    try:
        for _ in range(20):
            if manager.queue_depth == 0 and r.pending_count == 0:
                break
            await asyncio.sleep(0.02)
    finally:
        await r.stop()
    rec = await manager.get_status(job.id)
    assert rec.status == JobStatus.CANCELED
    assert rec.started_at is None


@pytest.mark.asyncio
async def test_concurrency_is_bounded(manager, runner, registry, wait_for_status):
    jobs = [await manager.create("virtualServer.wait") for _ in range(3)]
    await wait_for_status(manager, jobs[0].id, JobStatus.STARTED)
    await wait_for_status(manager, jobs[1].id, JobStatus.STARTED)
    await asyncio.sleep(0.1)
    assert (await manager.get_status(jobs[2].id)).status == JobStatus.PENDING
    assert runner.pending_count == 2

    registry.gate.set()
    for job in jobs:
        await wait_for_status(manager, job.id, JobStatus.COMPLETED)


@pytest.mark.asyncio
async def test_stop_fails_in_flight_jobs(manager, registry, wait_for_status):
    r = JobRunner(manager, registry)
    r.start()
    job = await manager.create("virtualServer.wait")
    await wait_for_status(manager, job.id, JobStatus.STARTED)
    await r.stop()

    rec = await manager.get_status(job.id)
    assert rec.status == JobStatus.FAILED
    assert "stopped" in rec.failure_reason
    assert not r.running


@pytest.mark.asyncio
async def test_stop_keeps_queued_jobs_queued(manager, registry, wait_for_status):
    r = JobRunner(manager, registry, max_concurrent=1)
    r.start()
    busy = await manager.create("virtualServer.wait")
    await wait_for_status(manager, busy.id, JobStatus.STARTED)
    queued = await manager.create("virtualServer.provision", params={"name": "next"})
    await asyncio.sleep(0.05)

    await r.stop()
    assert (await manager.get_status(busy.id)).status == JobStatus.FAILED
    assert (await manager.get_status(queued.id)).status == JobStatus.PENDING
    assert manager.queue_depth == 1

    r.start()
    try:
        rec = await wait_for_status(manager, queued.id, JobStatus.COMPLETED)
        assert rec.result_resource_location == "/virtualServers/next"
    finally:
        await r.stop()


@pytest.mark.asyncio
async def test_pending_jobs_run_after_restart(tmp_path, registry, clock, wait_for_status):
    from job_engine.api.errors import CapacityError
    from job_engine.api.jobs.manager import JobManager
    from job_engine.api.jobs.store import JobStore

    path = str(tmp_path / "jobs.db")
    first_store = JobStore(path)
    await first_store.initialize()
    before = JobManager(first_store, max_active_jobs=1, clock=clock)
    job = await before.create("virtualServer.provision", params={"name": "survivor"})
    await first_store.close()

    store = JobStore(path)
    await store.initialize()
    after = JobManager(store, max_active_jobs=1, clock=clock)
    with pytest.raises(CapacityError):
        await after.create("virtualServer.provision", params={"name": "blocked"})

    await after.recover()
    r = JobRunner(after, registry, max_concurrent=1)
    r.start()
    try:
        rec = await wait_for_status(after, job.id, JobStatus.COMPLETED)
        assert rec.result_resource_location == "/virtualServers/survivor"
        assert (await after.create("virtualServer.provision", params={"name": "ok"})).status == JobStatus.PENDING
    finally:
        await r.stop()
        await store.close()
