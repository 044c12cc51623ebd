"""Job lifecycle manager.

The manager is the only writer of job records.  It exposes non-blocking
create / poll / cancel / purge operations for the HTTP layer and the
``mark_*`` transitions used by the runner.  Work is handed to the runner by
message passing: ``create`` enqueues the job id and the runner drains the
queue with :meth:`JobManager.next_job`.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, AsyncGenerator, Callable, Dict, List, Optional, Tuple

from ..errors import CapacityError, InvalidTransitionError, JobConflictError, JobNotFoundError
from .events import JobEventBroker
from .models import JobRecord, JobStatus, utcnow
from .retention import NoRetention, RetentionPolicy

logger = logging.getLogger(__name__)


class JobManager:
    """Owns job records and enforces the lifecycle state machine.

    Every mutation of a given job runs under that job's lock, so a cancel and
    a worker transition can never interleave.  Reads take no lock; records are
    immutable and replaced whole, so a reader always sees a consistent snapshot.
    """

    def __init__(
        self,
        store,
        *,
        max_active_jobs: int = 100,
        default_retry_after_seconds: Optional[int] = None,
        retention_policy: Optional[RetentionPolicy] = None,
        broker: Optional[JobEventBroker] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self.max_active_jobs = max_active_jobs
        self.default_retry_after_seconds = default_retry_after_seconds
        self.retention_policy: RetentionPolicy = retention_policy or NoRetention()
        self.events = broker or JobEventBroker()
        self._clock = clock
        self._locks: Dict[str, asyncio.Lock] = {}
        self._admission = asyncio.Lock()
        self._queue: asyncio.Queue = asyncio.Queue()
        self._cancel_hooks: List[Callable[[str], None]] = []
        self._recovered = False

    @property
    def store(self):
        return self._store

    @property
    def queue_depth(self) -> int:
        """Job ids created but not yet picked up by a runner."""
        return self._queue.qsize()

    def configure(
        self,
        *,
        max_active_jobs: Optional[int] = None,
        default_retry_after_seconds: Optional[int] = None,
        retention_policy: Optional[RetentionPolicy] = None,
    ) -> None:
        """Apply runtime-adjusted limits to subsequent operations."""
        if max_active_jobs is not None:
            self.max_active_jobs = max_active_jobs
        if default_retry_after_seconds is not None:
            self.default_retry_after_seconds = default_retry_after_seconds or None
        if retention_policy is not None:
            self.retention_policy = retention_policy
        logger.info(
            "JobManager configured: max_active_jobs=%s retry_after=%s retention=%r",
            self.max_active_jobs,
            self.default_retry_after_seconds,
            self.retention_policy,
        )

    def add_cancel_hook(self, hook: Callable[[str], None]) -> None:
        """Register *hook(job_id)*, called after a job is canceled."""
        self._cancel_hooks.append(hook)

    # ── Caller operations ────────────────────────────────────────────

    async def create(
        self,
        name: str,
        eta: Optional[datetime] = None,
        params: Optional[Dict[str, Any]] = None,
        retry_after_seconds: Optional[int] = None,
    ) -> JobRecord:
        """Register a PENDING job and queue it for execution.

        Raises
        ------
        CapacityError
            If ``max_active_jobs`` jobs are already PENDING or STARTED.
        """
        if retry_after_seconds is None:
            retry_after_seconds = self.default_retry_after_seconds
        async with self._admission:
            active = await self._store.count_active()
            if active >= self.max_active_jobs:
                raise CapacityError(
                    f"Job capacity exhausted: {active} of {self.max_active_jobs} jobs active. "
                    "Try again later."
                )
            now = self._clock()
            rec = JobRecord(
                name=name,
                created_at=now,
                updated_at=now,
                eta=eta,
                retry_after_seconds=retry_after_seconds,
                params=dict(params or {}),
            )
            await self._store.insert(rec)
        self._queue.put_nowait(rec.id)
        logger.info("Job %s created for %s", rec.id, name, extra={"job_id": rec.id})
        await self._publish(rec, "created")
        return rec

    async def get_status(self, job_id: str) -> JobRecord:
        """Return the current snapshot of a job."""
        rec = await self._store.get(job_id)
        if rec is None:
            raise JobNotFoundError(f"Job '{job_id}' not found")
        return rec

    async def list_jobs(self, limit: int = 50, status: Optional[JobStatus] = None) -> List[JobRecord]:
        """List jobs newest first, optionally filtered by status."""
        return await self._store.list(limit=limit, status=status)

    async def cancel(self, job_id: str) -> JobRecord:
        """Cancel a PENDING or STARTED job.

        Cancellation is cooperative: the record flips to CANCELED and the
        registered cancel hooks are signalled; the worker stops on its own.

        Raises
        ------
        JobConflictError
            If the job is already in a terminal state.
        JobNotFoundError
            If the job is unknown or purged.
        """

        def _cancel(rec: JobRecord) -> JobRecord:
            if rec.status.is_terminal:
                raise JobConflictError(
                    f"Job '{rec.id}' is {rec.status.value} and cannot be canceled"
                )
            return rec.transition_to(JobStatus.CANCELED, self._clock(), eta=None)

        _, rec = await self._apply(job_id, _cancel)
        logger.info("Job %s canceled", job_id, extra={"job_id": job_id})
        for hook in list(self._cancel_hooks):
            hook(job_id)
        await self._publish(rec, "canceled")
        return rec

    async def purge(self, job_id: str) -> None:
        """Delete a job record; its id is never resolvable again."""
        async with self._lock_for(job_id):
            removed = await self._store.delete(job_id)
        self._locks.pop(job_id, None)
        if not removed:
            raise JobNotFoundError(f"Job '{job_id}' not found")
        logger.info("Job %s purged", job_id, extra={"job_id": job_id})
        await self.events.publish(job_id, {"event": "purged", "jobId": job_id})

    async def purge_expired(self, now: Optional[datetime] = None) -> List[str]:
        """Purge every job the retention policy selects. Returns purged ids."""
        now = now or self._clock()
        jobs = await self._store.list(limit=None)
        purged: List[str] = []
        for job_id in self.retention_policy.select_expired(jobs, now):
            try:
                await self.purge(job_id)
            except JobNotFoundError:
                logger.debug("Job %s already purged", job_id)
                continue
            purged.append(job_id)
        if purged:
            logger.info("Retention purged %d job(s) with %r", len(purged), self.retention_policy)
        return purged

    async def recover(self) -> Tuple[List[str], List[str]]:
        """Pick up work left behind by a previous process.

        PENDING jobs are queued again, oldest first.  STARTED jobs lost their
        worker with the old process and are marked FAILED.  Only the first call
        on a manager does anything.  Returns ``(requeued_ids, failed_ids)``.
        """
        if self._recovered:
            return [], []
        self._recovered = True

        pending = await self._store.list(limit=None, status=JobStatus.PENDING)
        requeued = [rec.id for rec in reversed(pending)]
        for job_id in requeued:
            self._queue.put_nowait(job_id)

        failed: List[str] = []
        for rec in await self._store.list(limit=None, status=JobStatus.STARTED):
            try:
                await self.mark_failed(rec.id, "Interrupted by a service restart")
            except (InvalidTransitionError, JobNotFoundError):
                continue
            failed.append(rec.id)

        if requeued or failed:
            logger.info(
                "Recovered jobs from store: %d requeued, %d interrupted", len(requeued), len(failed)
            )
        return requeued, failed

    # ── Worker transitions ───────────────────────────────────────────

    async def mark_started(self, job_id: str) -> JobRecord:
        return await self._worker_transition(job_id, JobStatus.STARTED, "started")

    async def mark_completed(self, job_id: str, result_location: Optional[str] = None) -> JobRecord:
        return await self._worker_transition(
            job_id,
            JobStatus.COMPLETED,
            "completed",
            eta=None,
            result_resource_location=result_location,
        )

    async def mark_failed(self, job_id: str, reason: str) -> JobRecord:
        return await self._worker_transition(
            job_id, JobStatus.FAILED, "failed", eta=None, failure_reason=reason
        )

    async def update_estimate(
        self,
        job_id: str,
        eta: Optional[datetime] = None,
        retry_after_seconds: Optional[int] = None,
    ) -> JobRecord:
        """Refresh ``eta`` / ``retryAfterSeconds`` of an active job."""
        try:
            _, rec = await self._apply(
                job_id, lambda r: r.with_estimate(eta, retry_after_seconds, self._clock())
            )
        except InvalidTransitionError as exc:
            logger.warning("Rejected estimate update: %s", exc, extra={"job_id": job_id})
            raise
        await self._publish(rec, "estimate")
        return rec

    async def next_job(self) -> str:
        """Wait for the next queued job id."""
        return await self._queue.get()

    # ── Events ───────────────────────────────────────────────────────

    async def subscribe(self, job_id: str) -> AsyncGenerator[Dict[str, Any], None]:
        """Yield the current state of a job, then its lifecycle events."""

        async def _current() -> Optional[Dict[str, Any]]:
            rec = await self._store.get(job_id)
            if rec is None:
                return {"event": "purged", "jobId": job_id, "final": True}
            return {
                "event": "status",
                "jobId": job_id,
                "job": rec.to_wire(),
                "final": rec.status.is_terminal,
            }

        async for event in self.events.subscribe(job_id, initial=_current):
            yield event

    # ── Helpers ──────────────────────────────────────────────────────

    def _lock_for(self, job_id: str) -> asyncio.Lock:
        lock = self._locks.get(job_id)
        if lock is None:
            lock = self._locks[job_id] = asyncio.Lock()
        return lock

    async def _apply(
        self, job_id: str, change: Callable[[JobRecord], JobRecord]
    ) -> Tuple[JobRecord, JobRecord]:
        async with self._lock_for(job_id):
            before = await self._store.get(job_id)
            if before is None:
                self._locks.pop(job_id, None)
                raise JobNotFoundError(f"Job '{job_id}' not found")
            after = change(before)
            self._check_invariants(before, after)
            await self._store.replace(after)
        return before, after

    @staticmethod
    def _check_invariants(before: JobRecord, after: JobRecord) -> None:
        if before.status.is_terminal and after.status != before.status:
            raise InvalidTransitionError(before.id, before.status.value, after.status.value)
        if (after.id, after.name, after.created_at) != (before.id, before.name, before.created_at):
            raise InvalidTransitionError(before.id, before.status.value, "identity change")

    async def _worker_transition(
        self, job_id: str, status: JobStatus, event: str, **changes: Any
    ) -> JobRecord:
        try:
            _, rec = await self._apply(
                job_id, lambda r: r.transition_to(status, self._clock(), **changes)
            )
        except InvalidTransitionError as exc:
            logger.error("Rejected worker transition: %s", exc, extra={"job_id": job_id})
            raise
        logger.info("Job %s %s", job_id, status.value, extra={"job_id": job_id})
        await self._publish(rec, event)
        return rec

    async def _publish(self, rec: JobRecord, event: str) -> None:
        await self.events.publish(
            rec.id, {"event": event, "jobId": rec.id, "status": rec.status.value, "job": rec.to_wire()}
        )
