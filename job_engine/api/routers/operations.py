"""Operation endpoints accepting asynchronous work with ``202 Accepted``."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..deps.providers import get_job_manager, get_operation_registry
from ..jobs.manager import JobManager
from ..jobs.operations import OperationRegistry
from ..schemas.envelope import ApiResponse
from ..schemas.jobs import OperationRequest
from .jobs import job_location, poll_headers

router = APIRouter(prefix="/api/operations", tags=["operations"])


@router.get("")
async def list_operations(registry: OperationRegistry = Depends(get_operation_registry)) -> ApiResponse:
    return ApiResponse.success(registry.names())


@router.api_route("/{name}", methods=["POST", "PUT", "DELETE"], status_code=202)
async def submit_operation(
    name: str,
    body: Optional[OperationRequest] = None,
    manager: JobManager = Depends(get_job_manager),
    registry: OperationRegistry = Depends(get_operation_registry),
) -> JSONResponse:
    registry.get(name)
    req = body or OperationRequest()
    rec = await manager.create(
        name,
        eta=req.eta,
        params=req.params,
        retry_after_seconds=req.retry_after_seconds,
    )
    headers = {"Location": job_location(rec.id), **poll_headers(rec)}
    return JSONResponse(status_code=202, content=rec.to_wire(), headers=headers)
