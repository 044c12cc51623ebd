"""Registry of asynchronous operations executable as jobs."""
from __future__ import annotations

import re
import threading
from datetime import datetime
from typing import Callable, Dict, List, Optional

from ..errors import UnknownOperationError

# Dot-qualified name such as ``virtualServer.provision``.
OPERATION_NAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_]*(\.[A-Za-z][A-Za-z0-9_]*)+$")

# fn(params, *, cancel_event, report_eta) -> result resource location or None
OperationHandler = Callable[..., Optional[str]]
EtaReporter = Callable[[Optional[datetime]], None]


class JobCancelled(Exception):
    """Raised by operation handlers when cooperative cancellation is detected."""


def check_cancelled(cancel_event: Optional[threading.Event]) -> None:
    """Raise ``JobCancelled`` if the cancellation event is set."""
    if cancel_event is not None and cancel_event.is_set():
        raise JobCancelled("Job canceled by user")


def is_valid_operation_name(name: str) -> bool:
    return bool(OPERATION_NAME_RE.match(name))


class OperationRegistry:
    """Maps operation names to the handlers that execute them."""

    def __init__(self) -> None:
        self._handlers: Dict[str, OperationHandler] = {}

    def add(self, name: str, fn: OperationHandler) -> None:
        if not is_valid_operation_name(name):
            raise ValueError(f"Operation name '{name}' is not dot-qualified (e.g. 'virtualServer.provision')")
        if name in self._handlers:
            raise ValueError(f"Operation '{name}' is already registered")
        self._handlers[name] = fn

    def register(self, name: str) -> Callable[[OperationHandler], OperationHandler]:
        """Decorator form of :meth:`add`."""

        def _decorator(fn: OperationHandler) -> OperationHandler:
            self.add(name, fn)
            return fn

        return _decorator

    def get(self, name: str) -> OperationHandler:
        try:
            return self._handlers[name]
        except KeyError:
            raise UnknownOperationError(f"Operation '{name}' is not registered") from None

    def __contains__(self, name: object) -> bool:
        return name in self._handlers

    def names(self) -> List[str]:
        return sorted(self._handlers)


def default_registry() -> OperationRegistry:
    """Registry preloaded with the built-in ``system.*`` operations."""
    from .builtin import register_builtin_operations

    registry = OperationRegistry()
    register_builtin_operations(registry)
    return registry

