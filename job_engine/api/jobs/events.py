"""In-process fan-out of job lifecycle events for SSE subscribers."""
from __future__ import annotations

import asyncio
from typing import Any, AsyncGenerator, Awaitable, Callable, Dict, List, Optional

# Events after which a job produces nothing further.
FINAL_EVENTS = frozenset({"completed", "canceled", "failed", "purged"})


class JobEventBroker:
    """Per-job subscriber queues fed by the job manager."""

    def __init__(self) -> None:
        self._subscribers: Dict[str, List[asyncio.Queue]] = {}

    def subscriber_count(self, job_id: str) -> int:
        return len(self._subscribers.get(job_id, []))

    async def publish(self, job_id: str, event: Dict[str, Any]) -> None:
        for q in self._subscribers.get(job_id, []):
            await q.put(event)

    async def subscribe(
        self,
        job_id: str,
        initial: Optional[Callable[[], Awaitable[Optional[Dict[str, Any]]]]] = None,
    ) -> AsyncGenerator[Dict[str, Any], None]:
        """Yield events for *job_id* until it reaches a final event.

        *initial* is awaited after the queue is registered, so no event
        published in between is lost; its result is yielded first.  If that
        initial event already describes a final state the stream ends there.
        """
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.setdefault(job_id, []).append(queue)
        try:
            if initial is not None:
                first = await initial()
                if first is not None:
                    yield first
                    if first.get("final"):
                        return

            while True:
                event = await queue.get()
                yield event
                if event.get("event") in FINAL_EVENTS:
                    break
        finally:
            subs = self._subscribers.get(job_id, [])
            if queue in subs:
                subs.remove(queue)
            if not subs:
                self._subscribers.pop(job_id, None)
