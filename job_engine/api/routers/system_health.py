"""System health endpoint."""
from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from ... import __version__
from ..deps.providers import get_job_manager, get_job_runner
from ..jobs.manager import JobManager
from ..jobs.runner import JobRunner
from ..schemas.envelope import ApiResponse

router = APIRouter(tags=["health"])


@router.get("/api/health")
async def quick_health(
    manager: JobManager = Depends(get_job_manager),
    runner: JobRunner = Depends(get_job_runner),
) -> ApiResponse:
    active = await manager.store.count_active()
    warnings = []
    if not runner.running:
        warnings.append("Job runner is not running; queued jobs will stay PENDING.")
    data = {
        "status": "healthy" if runner.running else "degraded",
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "active_jobs": active,
        "max_active_jobs": manager.max_active_jobs,
        "queued": manager.queue_depth,
        "executing": runner.pending_count,
        "retention_policy": repr(manager.retention_policy),
    }
    return ApiResponse.success(data, warnings=warnings)
