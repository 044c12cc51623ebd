"""Job error taxonomy and FastAPI error handler registration."""
from __future__ import annotations

import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .. import config as engine_config
from .schemas.envelope import ApiResponse

logger = logging.getLogger(__name__)


# ── Custom Exceptions ────────────────────────────────────────────────


class JobEngineError(Exception):
    """Base class for every error raised by the job lifecycle layer."""


class JobNotFoundError(JobEngineError):
    """Job ID is unknown or its record was purged."""


class UnknownOperationError(JobEngineError):
    """No handler is registered under the requested operation name."""


class JobConflictError(JobEngineError):
    """Operation is not allowed in the job's current state (e.g. cancel on a terminal job)."""


class InvalidTransitionError(JobEngineError):
    """A worker attempted a status change the state machine does not allow."""

    def __init__(self, job_id: str, current: str, requested: str) -> None:
        self.job_id = job_id
        self.current = current
        self.requested = requested
        super().__init__(f"Job '{job_id}': invalid transition {current} -> {requested}")


class CapacityError(JobEngineError):
    """No room to accept another job."""


# ── Error → HTTP mapping ────────────────────────────────────────────

_EXCEPTION_STATUS = {
    JobNotFoundError: 404,
    UnknownOperationError: 404,
    JobConflictError: 403,
}


def _make_handler(status_code: int):
    """Create a handler that wraps an exception in ApiResponse."""

    async def _handler(request: Request, exc: Exception) -> JSONResponse:
        resp = ApiResponse.fail(str(exc))
        return JSONResponse(status_code=status_code, content=resp.model_dump())

    return _handler


async def _invalid_transition(request: Request, exc: InvalidTransitionError) -> JSONResponse:
    logger.error(
        "Invalid job transition on %s %s: %s", request.method, request.url.path, exc
    )
    resp = ApiResponse.fail(str(exc))
    return JSONResponse(status_code=500, content=resp.model_dump())


async def _capacity_exhausted(request: Request, exc: CapacityError) -> JSONResponse:
    status = engine_config.CAPACITY_ERROR_STATUS
    headers = {}
    if status == 503 and engine_config.DEFAULT_RETRY_AFTER_SECONDS > 0:
        headers["Retry-After"] = str(engine_config.DEFAULT_RETRY_AFTER_SECONDS)
    logger.warning("Rejected job request: %s", exc)
    resp = ApiResponse.fail(str(exc))
    return JSONResponse(status_code=status, content=resp.model_dump(), headers=headers)


def register_error_handlers(app: FastAPI) -> None:
    """Register custom exception handlers on the FastAPI app."""
    for exc_cls, status in _EXCEPTION_STATUS.items():
        app.add_exception_handler(exc_cls, _make_handler(status))
    app.add_exception_handler(InvalidTransitionError, _invalid_transition)
    app.add_exception_handler(CapacityError, _capacity_exhausted)

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled error: %s\n%s", exc, traceback.format_exc())
        resp = ApiResponse.fail("Internal server error")
        return JSONResponse(status_code=500, content=resp.model_dump())
