"""Job resource endpoints: poll, cancel, purge, events."""
from __future__ import annotations

import json
from typing import Dict, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sse_starlette.sse import EventSourceResponse

from ..deps.providers import get_job_manager
from ..jobs.manager import JobManager
from ..jobs.models import JobRecord, JobStatus
from ..schemas.envelope import ApiResponse

router = APIRouter(prefix="/api/jobs", tags=["jobs"])


def job_location(job_id: str) -> str:
    """Path of a job resource, used in ``Location`` headers."""
    return f"{router.prefix}/{job_id}"


def poll_headers(rec: JobRecord) -> Dict[str, str]:
    """``Retry-After`` hint for jobs that are still worth polling."""
    if rec.retry_after_seconds and rec.status.is_active:
        return {"Retry-After": str(rec.retry_after_seconds)}
    return {}


def snapshot_response(rec: JobRecord, status_code: int = 200, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=rec.to_wire(), headers=headers)


@router.get("")
async def list_jobs(
    limit: int = Query(50, ge=1, le=1000),
    status: Optional[JobStatus] = None,
    manager: JobManager = Depends(get_job_manager),
) -> ApiResponse:
    jobs = await manager.list_jobs(limit=limit, status=status)
    return ApiResponse.success([j.to_wire() for j in jobs])


@router.post("/purge-expired")
async def purge_expired(manager: JobManager = Depends(get_job_manager)) -> ApiResponse:
    """Run the retention policy now instead of waiting for the background sweep."""
    purged = await manager.purge_expired()
    return ApiResponse.success({"purged": purged, "count": len(purged)})


@router.get("/{job_id}")
async def get_job(job_id: str, manager: JobManager = Depends(get_job_manager)) -> JSONResponse:
    """Poll a job.

    A completed job that produced a resource answers ``303 See Other`` with
    ``Location`` pointing at that resource and the snapshot as body.
    """
    rec = await manager.get_status(job_id)
    headers = poll_headers(rec)
    if rec.status == JobStatus.COMPLETED and rec.result_resource_location:
        headers["Location"] = rec.result_resource_location
        return snapshot_response(rec, 303, headers)
    return snapshot_response(rec, 200, headers)


@router.delete("/{job_id}")
async def cancel_job(job_id: str, manager: JobManager = Depends(get_job_manager)) -> JSONResponse:
    rec = await manager.cancel(job_id)
    return snapshot_response(rec)


@router.post("/{job_id}/purge")
async def purge_job(job_id: str, manager: JobManager = Depends(get_job_manager)) -> ApiResponse:
    await manager.purge(job_id)
    return ApiResponse.success({"purged": job_id})


@router.get("/{job_id}/events")
async def job_events(job_id: str, manager: JobManager = Depends(get_job_manager)):
    await manager.get_status(job_id)

    async def _generate():
        async for event in manager.subscribe(job_id):
            yield {"event": event.get("event", "message"), "data": json.dumps(event)}

    return EventSourceResponse(_generate())
