"""Runtime config management endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse

from ..config import RuntimeConfig
from ..deps.providers import get_job_manager, get_runtime_config
from ..jobs.manager import JobManager
from ..jobs.retention import build_retention_policy
from ..schemas.envelope import ApiResponse

router = APIRouter(prefix="/api/config", tags=["config"])


@router.get("")
async def get_config(rc: RuntimeConfig = Depends(get_runtime_config)) -> ApiResponse:
    return ApiResponse.success(rc.get_adjustable())


@router.get("/validate")
async def validate_config_endpoint() -> ApiResponse:
    """Run config validation and return any issues found.

    Each issue has a ``level`` (WARNING or ERROR) and a ``message``
    describing what is wrong and how to fix it.
    """
    from job_engine.config import validate_config
    issues = validate_config()
    return ApiResponse.success({
        "issues": issues,
        "count": len(issues),
        "errors": sum(1 for i in issues if i.get("level") == "ERROR"),
        "warnings": sum(1 for i in issues if i.get("level") == "WARNING"),
    })


@router.patch("")
async def patch_config(
    updates: dict = Body(...),
    rc: RuntimeConfig = Depends(get_runtime_config),
    manager: JobManager = Depends(get_job_manager),
) -> ApiResponse:
    try:
        new_state = rc.patch(updates)
    except (KeyError, ValueError) as exc:
        resp = ApiResponse.fail(str(exc))
        return JSONResponse(status_code=422, content=resp.model_dump())
    manager.configure(
        max_active_jobs=new_state["MAX_ACTIVE_JOBS"],
        default_retry_after_seconds=new_state["DEFAULT_RETRY_AFTER_SECONDS"],
        retention_policy=build_retention_policy(new_state["JOB_RETENTION_TTL_SECONDS"]),
    )
    return ApiResponse.success(new_state)
