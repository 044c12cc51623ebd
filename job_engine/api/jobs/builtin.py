"""Built-in ``system.*`` operations."""
from __future__ import annotations

import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from .operations import EtaReporter, OperationRegistry, check_cancelled

_POLL_INTERVAL = 0.05


def echo(
    params: Dict[str, Any],
    cancel_event: Optional[threading.Event] = None,
    report_eta: Optional[EtaReporter] = None,
) -> Optional[str]:
    """Complete immediately, pointing at ``params['location']`` if given."""
    check_cancelled(cancel_event)
    return params.get("location")


def sleep(
    params: Dict[str, Any],
    cancel_event: Optional[threading.Event] = None,
    report_eta: Optional[EtaReporter] = None,
) -> Optional[str]:
    """Wait ``params['seconds']`` (default 1), honouring cancellation."""
    seconds = float(params.get("seconds", 1.0))
    if seconds < 0:
        raise ValueError(f"seconds must be >= 0, got {seconds}")
    if report_eta is not None:
        report_eta(datetime.now(timezone.utc) + timedelta(seconds=seconds))
    deadline = time.monotonic() + seconds
    while True:
        check_cancelled(cancel_event)
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            break
        if cancel_event is not None:
            cancel_event.wait(min(_POLL_INTERVAL, remaining))
        else:
            time.sleep(min(_POLL_INTERVAL, remaining))
    return params.get("location")


def fail(
    params: Dict[str, Any],
    cancel_event: Optional[threading.Event] = None,
    report_eta: Optional[EtaReporter] = None,
) -> Optional[str]:
    """Raise with ``params['message']``; exercises the FAILED path."""
    check_cancelled(cancel_event)
    raise RuntimeError(params.get("message", "Operation failed"))


def register_builtin_operations(registry: OperationRegistry) -> None:
    registry.add("system.echo", echo)
    registry.add("system.sleep", sleep)
    registry.add("system.fail", fail)
