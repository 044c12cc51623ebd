"""Keyed persistence for job records.

Both stores hold immutable :class:`JobRecord` snapshots and replace them
whole, so a reader sees either the previous or the next version of a job,
never a half-written one.
"""
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

import aiosqlite

from .models import JobRecord, JobStatus

_COLUMNS = (
    "id",
    "name",
    "status",
    "created_at",
    "updated_at",
    "started_at",
    "completed_at",
    "eta",
    "result_resource_location",
    "retry_after_seconds",
    "failure_reason",
    "params",
)

_ACTIVE = (JobStatus.PENDING.value, JobStatus.STARTED.value)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


class JobStore:
    """Async SQLite store for job lifecycle tracking."""

    def __init__(self, db_path: str = "jobs.db") -> None:
        self.db_path = db_path
        self._db: Optional[aiosqlite.Connection] = None

    async def initialize(self) -> None:
        """Create the jobs table if it doesn't exist."""
        if self._db is not None:
            return
        self._db = await aiosqlite.connect(self.db_path)
        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS jobs (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'PENDING',
                created_at TEXT NOT NULL,
                updated_at TEXT,
                started_at TEXT,
                completed_at TEXT,
                eta TEXT,
                result_resource_location TEXT,
                retry_after_seconds INTEGER,
                failure_reason TEXT,
                params TEXT DEFAULT '{}'
            )
        """)
        await self._db.execute("CREATE INDEX IF NOT EXISTS ix_jobs_status ON jobs (status)")
        await self._db.commit()

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    async def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            await self.initialize()
        return self._db

    # ── CRUD ─────────────────────────────────────────────────────────

    async def insert(self, rec: JobRecord) -> JobRecord:
        """Insert a new job record."""
        db = await self._conn()
        placeholders = ",".join("?" for _ in _COLUMNS)
        await db.execute(
            f"INSERT INTO jobs ({', '.join(_COLUMNS)}) VALUES ({placeholders})",
            self._record_to_row(rec),
        )
        await db.commit()
        return rec

    async def get(self, job_id: str) -> Optional[JobRecord]:
        """Fetch a single job by ID."""
        db = await self._conn()
        async with db.execute("SELECT * FROM jobs WHERE id = ?", (job_id,)) as cur:
            row = await cur.fetchone()
            desc = cur.description
        if row is None:
            return None
        return self._row_to_record(row, desc)

    async def list(self, limit: Optional[int] = 50, status: Optional[JobStatus] = None) -> List[JobRecord]:
        """List jobs ordered by creation time (newest first)."""
        db = await self._conn()
        sql = "SELECT * FROM jobs"
        vals: list = []
        if status is not None:
            sql += " WHERE status = ?"
            vals.append(status.value)
        sql += " ORDER BY created_at DESC"
        if limit is not None:
            sql += " LIMIT ?"
            vals.append(limit)
        async with db.execute(sql, vals) as cur:
            rows = await cur.fetchall()
            desc = cur.description
        return [self._row_to_record(r, desc) for r in rows]

    async def replace(self, rec: JobRecord) -> JobRecord:
        """Overwrite every mutable column of an existing job in one statement."""
        db = await self._conn()
        mutable = _COLUMNS[1:]
        row = self._record_to_row(rec)
        await db.execute(
            f"UPDATE jobs SET {', '.join(f'{c} = ?' for c in mutable)} WHERE id = ?",
            (*row[1:], rec.id),
        )
        await db.commit()
        return rec

    async def delete(self, job_id: str) -> bool:
        """Remove a job record. Returns False if it did not exist."""
        db = await self._conn()
        cur = await db.execute("DELETE FROM jobs WHERE id = ?", (job_id,))
        await db.commit()
        return cur.rowcount > 0

    async def count_active(self) -> int:
        """Number of PENDING or STARTED jobs."""
        db = await self._conn()
        async with db.execute(
            "SELECT COUNT(*) FROM jobs WHERE status IN (?, ?)", _ACTIVE
        ) as cur:
            row = await cur.fetchone()
        return int(row[0])

    # ── Helpers ───────────────────────────────────────────────────────

    @staticmethod
    def _record_to_row(rec: JobRecord) -> tuple:
        return (
            rec.id,
            rec.name,
            rec.status.value,
            _iso(rec.created_at),
            _iso(rec.updated_at),
            _iso(rec.started_at),
            _iso(rec.completed_at),
            _iso(rec.eta),
            rec.result_resource_location,
            rec.retry_after_seconds,
            rec.failure_reason,
            json.dumps(rec.params),
        )

    @staticmethod
    def _row_to_record(row, description) -> JobRecord:
        cols = [d[0] for d in description]
        d: Dict[str, Any] = dict(zip(cols, row))
        d["params"] = json.loads(d.get("params") or "{}")
        return JobRecord(**d)


class MemoryJobStore:
    """Process-local store with the same interface as :class:`JobStore`.

    Selected with ``JOB_ENGINE_API_JOB_STORE=memory``; records vanish on restart.
    Records are deep-copied in and out, so no caller shares state with the store.
    """

    def __init__(self) -> None:
        self._jobs: Dict[str, JobRecord] = {}

    @staticmethod
    def _copy(rec: JobRecord) -> JobRecord:
        return rec.model_copy(deep=True)

    async def initialize(self) -> None:
        pass

    async def close(self) -> None:
        self._jobs.clear()

    async def insert(self, rec: JobRecord) -> JobRecord:
        self._jobs[rec.id] = self._copy(rec)
        return rec

    async def get(self, job_id: str) -> Optional[JobRecord]:
        rec = self._jobs.get(job_id)
        return self._copy(rec) if rec is not None else None

    async def list(self, limit: Optional[int] = 50, status: Optional[JobStatus] = None) -> List[JobRecord]:
        jobs = [j for j in self._jobs.values() if status is None or j.status == status]
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        if limit is not None:
            jobs = jobs[:limit]
        return [self._copy(j) for j in jobs]

    async def replace(self, rec: JobRecord) -> JobRecord:
        self._jobs[rec.id] = self._copy(rec)
        return rec

    async def delete(self, job_id: str) -> bool:
        return self._jobs.pop(job_id, None) is not None

    async def count_active(self) -> int:
        return sum(1 for j in self._jobs.values() if j.status.is_active)
