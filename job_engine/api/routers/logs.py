"""Recent log records, filterable by job and severity."""
from __future__ import annotations

import logging
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional

from fastapi import APIRouter, Query

from ..schemas.envelope import ApiResponse

router = APIRouter(prefix="/api/logs", tags=["logs"])

_BUFFER_SIZE = 500
_LEVEL_PATTERN = "^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$"

_records: Deque[Dict[str, Any]] = deque(maxlen=_BUFFER_SIZE)


class JobLogBuffer(logging.Handler):
    """Keeps the newest records of the ``job_engine`` loggers in memory.

    Records logged with ``extra={"job_id": ...}`` keep that id, so the
    history of a single job can be pulled out of the buffer.
    """

    def emit(self, record: logging.LogRecord) -> None:
        _records.append({
            "time": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "levelno": record.levelno,
            "level": record.levelname,
            "logger": record.name,
            "jobId": getattr(record, "job_id", None),
            "message": record.getMessage(),
        })


_handler = JobLogBuffer(level=logging.INFO)


def setup_log_buffer() -> None:
    """Attach the buffer to the ``job_engine`` logger; repeated calls are no-ops."""
    root = logging.getLogger("job_engine")
    if _handler not in root.handlers:
        root.addHandler(_handler)


def teardown_log_buffer() -> None:
    logging.getLogger("job_engine").removeHandler(_handler)
    _records.clear()


def recent_records(
    last_n: int = 100, level: Optional[str] = None, job_id: Optional[str] = None
) -> List[Dict[str, Any]]:
    """Newest-last slice of the buffer after applying the filters."""
    min_level = logging.getLevelName(level) if level else logging.NOTSET
    matched = [
        {k: v for k, v in rec.items() if k != "levelno"}
        for rec in _records
        if rec["levelno"] >= min_level and (job_id is None or rec["jobId"] == job_id)
    ]
    return matched[-last_n:]


@router.get("")
async def get_logs(
    last_n: int = Query(100, ge=1, le=_BUFFER_SIZE),
    level: Optional[str] = Query(None, pattern=_LEVEL_PATTERN, description="Minimum severity"),
    job_id: Optional[str] = Query(None, alias="jobId"),
) -> ApiResponse:
    return ApiResponse.success(recent_records(last_n, level, job_id))
