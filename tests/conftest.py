"""Shared test fixtures for the job_engine test suite."""
from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from job_engine.api.jobs.manager import JobManager
from job_engine.api.jobs.store import MemoryJobStore


class FakeClock:
    """Deterministic clock advanced by hand."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


async def _wait_for_status(manager, job_id, *statuses, timeout: float = 3.0):
    """Poll ``manager.get_status`` until the job reaches one of *statuses*."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        rec = await manager.get_status(job_id)
        if rec.status in statuses:
            return rec
        if loop.time() > deadline:
            raise AssertionError(f"Job {job_id} stuck in {rec.status.value}, wanted {statuses}")
        await asyncio.sleep(0.02)


# ── Core fixtures ────────────────────────────────────────────────────


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
async def store():
    s = MemoryJobStore()
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture
def manager(store, clock):
    return JobManager(store, max_active_jobs=10, clock=clock)


@pytest.fixture
def wait_for_status():
    """Async helper: ``await wait_for_status(manager, job_id, *statuses)``."""
    return _wait_for_status


@pytest.fixture
def engine_config():
    """Yield ``job_engine.config`` and restore its adjustable values afterwards."""
    import job_engine.config as cfg

    keys = [
        "MAX_ACTIVE_JOBS",
        "DEFAULT_RETRY_AFTER_SECONDS",
        "JOB_RETENTION_TTL_SECONDS",
        "CAPACITY_ERROR_STATUS",
        "MAX_CONCURRENT_WORKERS",
        "JOB_RETENTION_INTERVAL_SECONDS",
        "LOG_FORMAT",
        "LOG_LEVEL",
    ]
    saved = {k: getattr(cfg, k) for k in keys}
    yield cfg
    for key, value in saved.items():
        setattr(cfg, key, value)


# ── API fixtures ─────────────────────────────────────────────────────


@pytest.fixture
async def app(engine_config):
    """Test FastAPI app backed by a fresh in-memory job store.

    The ASGI transport does not run the lifespan, so the runner is never
    started and submitted jobs stay PENDING unless a test moves them.
    """
    import job_engine.api.deps.providers as _prov
    from job_engine.api.config import ApiSettings
    from job_engine.api.main import create_app

    _prov.reset_providers()
    application = create_app(ApiSettings(job_store="memory"))
    yield application
    _prov.reset_providers()


@pytest.fixture
def app_manager(app):
    """The ``JobManager`` singleton the test app serves."""
    from job_engine.api.deps.providers import get_job_manager

    return get_job_manager()


@pytest.fixture
async def client(app):
    """Async HTTP client bound to the test app."""
    from httpx import ASGITransport, AsyncClient

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://testserver",
    ) as ac:
        yield ac

