"""Worker pool executing queued jobs with bounded concurrency."""
from __future__ import annotations

import asyncio
import logging
import threading
import traceback
from datetime import datetime
from typing import Dict, Optional

from ..errors import InvalidTransitionError, JobNotFoundError, UnknownOperationError
from .manager import JobManager
from .models import JobStatus
from .operations import JobCancelled, OperationRegistry

logger = logging.getLogger(__name__)


class JobRunner:
    """Drains the manager's work queue and runs operation handlers in threads.

    The runner never edits records itself; every outcome is reported back
    through the manager's ``mark_*`` transitions.  Cancellation is observed
    through a per-job ``threading.Event`` that the manager's cancel hook sets.
    """

    def __init__(self, manager: JobManager, registry: OperationRegistry, max_concurrent: int = 2) -> None:
        self._manager = manager
        self._registry = registry
        self.max_concurrent = max_concurrent
        self._sem = asyncio.Semaphore(max_concurrent)
        self._active_tasks: Dict[str, asyncio.Task] = {}
        self._cancel_events: Dict[str, threading.Event] = {}
        self._dispatcher: Optional[asyncio.Task] = None
        manager.add_cancel_hook(self._signal_cancel)

    @property
    def pending_count(self) -> int:
        """Number of jobs currently executing."""
        return len(self._active_tasks)

    @property
    def running(self) -> bool:
        return self._dispatcher is not None and not self._dispatcher.done()

    # ── Lifecycle ────────────────────────────────────────────────────

    def start(self) -> None:
        """Start consuming queued jobs. Must be called from a running event loop."""
        if self.running:
            return
        self._dispatcher = asyncio.create_task(self._dispatch_loop())
        logger.info("JobRunner started (max_concurrent=%d)", self.max_concurrent)

    async def stop(self) -> None:
        """Stop dispatching and abandon in-flight jobs as FAILED."""
        if self._dispatcher is not None:
            self._dispatcher.cancel()
            await asyncio.gather(self._dispatcher, return_exceptions=True)
            self._dispatcher = None
        tasks = list(self._active_tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("JobRunner stopped")

    async def _dispatch_loop(self) -> None:
        # Take a worker slot before dequeuing so a stop never drops a job id.
        while True:
            await self._sem.acquire()
            try:
                job_id = await self._manager.next_job()
            except asyncio.CancelledError:
                self._sem.release()
                raise
            self._active_tasks[job_id] = asyncio.create_task(self._run(job_id))

    # ── Execution ────────────────────────────────────────────────────

    async def _run(self, job_id: str) -> None:
        cancel_event = threading.Event()
        self._cancel_events[job_id] = cancel_event
        try:
            await self._execute(job_id, cancel_event)
        except InvalidTransitionError as exc:
            if cancel_event.is_set():
                logger.info(
                    "Job %s was canceled before its outcome was recorded", job_id, extra={"job_id": job_id}
                )
            else:
                logger.error("Aborting job %s: %s", job_id, exc, extra={"job_id": job_id})
        except JobNotFoundError:
            logger.warning("Job %s was purged while running", job_id, extra={"job_id": job_id})
        except asyncio.CancelledError:
            cancel_event.set()
            await self._abandon(job_id)
            raise
        finally:
            self._active_tasks.pop(job_id, None)
            self._cancel_events.pop(job_id, None)
            self._sem.release()

    async def _execute(self, job_id: str, cancel_event: threading.Event) -> None:
        try:
            rec = await self._manager.get_status(job_id)
        except JobNotFoundError:
            logger.info("Job %s purged before it started", job_id, extra={"job_id": job_id})
            return
        if rec.status != JobStatus.PENDING:
            logger.info("Skipping job %s: already %s", job_id, rec.status.value, extra={"job_id": job_id})
            return

        try:
            fn = self._registry.get(rec.name)
        except UnknownOperationError as exc:
            await self._manager.mark_failed(job_id, str(exc))
            return

        await self._manager.mark_started(job_id)

        loop = asyncio.get_running_loop()

        def report_eta(eta: Optional[datetime]) -> None:
            asyncio.run_coroutine_threadsafe(self._on_eta(job_id, eta, cancel_event), loop)

        try:
            location = await asyncio.to_thread(
                fn, rec.params, cancel_event=cancel_event, report_eta=report_eta
            )
        except JobCancelled:
            if cancel_event.is_set():
                logger.info("Job %s stopped after cancellation", job_id, extra={"job_id": job_id})
            else:
                await self._manager.mark_failed(job_id, "Operation aborted")
            return
        except Exception as exc:
            if cancel_event.is_set():
                logger.info("Job %s raised after cancellation: %s", job_id, exc, extra={"job_id": job_id})
                return
            logger.error(
                "Job %s failed: %s\n%s", job_id, exc, traceback.format_exc(), extra={"job_id": job_id}
            )
            await self._manager.mark_failed(job_id, str(exc) or type(exc).__name__)
            return

        await self._manager.mark_completed(job_id, location)

    async def _on_eta(self, job_id: str, eta: Optional[datetime], cancel_event: threading.Event) -> None:
        if cancel_event.is_set():
            return
        try:
            await self._manager.update_estimate(job_id, eta)
        except (InvalidTransitionError, JobNotFoundError) as exc:
            logger.debug("Dropped ETA update for job %s: %s", job_id, exc)

    async def _abandon(self, job_id: str) -> None:
        try:
            rec = await self._manager.get_status(job_id)
            if rec.status.is_active:
                await self._manager.mark_failed(job_id, "Worker stopped before the operation finished")
        except (InvalidTransitionError, JobNotFoundError) as exc:
            logger.debug("Could not abandon job %s: %s", job_id, exc)

    # ── Cancel ───────────────────────────────────────────────────────

    def _signal_cancel(self, job_id: str) -> None:
        cancel_event = self._cancel_events.get(job_id)
        if cancel_event is not None:
            cancel_event.set()
