"""Job data models and the lifecycle state machine."""
from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..errors import InvalidTransitionError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, enum.Enum):
    """Job lifecycle states.

    PENDING -> STARTED -> COMPLETED
    PENDING | STARTED -> CANCELED   (explicit cancel)
    PENDING | STARTED -> FAILED     (operation error)

    COMPLETED, CANCELED and FAILED are terminal.
    """

    PENDING = "PENDING"
    STARTED = "STARTED"
    COMPLETED = "COMPLETED"
    CANCELED = "CANCELED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        return not self.is_terminal


TERMINAL_STATUSES: FrozenSet[JobStatus] = frozenset(
    {JobStatus.COMPLETED, JobStatus.CANCELED, JobStatus.FAILED}
)

VALID_TRANSITIONS: Dict[JobStatus, FrozenSet[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.STARTED, JobStatus.CANCELED, JobStatus.FAILED}),
    JobStatus.STARTED: frozenset({JobStatus.COMPLETED, JobStatus.CANCELED, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.CANCELED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


class JobRecord(BaseModel):
    """Immutable snapshot of a job.

    Every change produces a new record via :meth:`transition_to` or
    :meth:`with_estimate`; callers never hold a reference the manager mutates.
    """

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    status: JobStatus = JobStatus.PENDING
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    eta: Optional[datetime] = None
    result_resource_location: Optional[str] = None
    retry_after_seconds: Optional[int] = None
    failure_reason: Optional[str] = None
    params: Dict[str, Any] = Field(default_factory=dict, exclude=True)

    def can_transition_to(self, new_status: JobStatus) -> bool:
        return new_status in VALID_TRANSITIONS[self.status]

    def transition_to(self, new_status: JobStatus, at: Optional[datetime] = None, **changes: Any) -> "JobRecord":
        """Return a copy moved to *new_status*.

        Sets ``startedAt`` on STARTED and ``completedAt`` on COMPLETED.  Extra
        keyword arguments are applied as field updates.

        Raises
        ------
        InvalidTransitionError
            If the state machine has no edge from the current status.
        """
        if not self.can_transition_to(new_status):
            raise InvalidTransitionError(self.id, self.status.value, new_status.value)
        now = at or utcnow()
        updates: Dict[str, Any] = {"status": new_status, "updated_at": now}
        if new_status == JobStatus.STARTED:
            updates["started_at"] = now
        elif new_status == JobStatus.COMPLETED:
            updates["completed_at"] = now
        updates.update(changes)
        return self.model_copy(update=updates)

    def with_estimate(
        self,
        eta: Optional[datetime],
        retry_after_seconds: Optional[int] = None,
        at: Optional[datetime] = None,
    ) -> "JobRecord":
        """Return a copy with a refreshed ETA; only valid while the job is active."""
        if self.status.is_terminal:
            raise InvalidTransitionError(self.id, self.status.value, "eta update")
        updates: Dict[str, Any] = {"eta": eta, "updated_at": at or utcnow()}
        if retry_after_seconds is not None:
            updates["retry_after_seconds"] = retry_after_seconds
        return self.model_copy(update=updates)

    def to_wire(self) -> Dict[str, Any]:
        """JSON-ready dict: camelCase keys, ISO-8601 timestamps, unset fields omitted."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
