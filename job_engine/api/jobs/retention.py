"""Pluggable retention policies deciding which job records to purge."""
from __future__ import annotations

import abc
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from .models import JobRecord


class RetentionPolicy(abc.ABC):
    """Strategy selecting job ids that may be purged at time *now*."""

    @abc.abstractmethod
    def select_expired(self, jobs: Iterable[JobRecord], now: datetime) -> List[str]:
        ...


class NoRetention(RetentionPolicy):
    """Keep every job forever."""

    def select_expired(self, jobs: Iterable[JobRecord], now: datetime) -> List[str]:
        return []

    def __repr__(self) -> str:
        return "NoRetention()"


class TerminalTTLRetention(RetentionPolicy):
    """Purge terminal jobs whose last update is older than ``ttl_seconds``.

    Active jobs are never selected, however old.
    """

    def __init__(self, ttl_seconds: float) -> None:
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
        self.ttl = timedelta(seconds=ttl_seconds)

    def select_expired(self, jobs: Iterable[JobRecord], now: datetime) -> List[str]:
        cutoff = now - self.ttl
        return [
            job.id
            for job in jobs
            if job.status.is_terminal and (job.updated_at or job.created_at) <= cutoff
        ]

    def __repr__(self) -> str:
        return f"TerminalTTLRetention(ttl_seconds={self.ttl.total_seconds():g})"


def build_retention_policy(ttl_seconds: Optional[float]) -> RetentionPolicy:
    """Policy for a configured TTL; a missing or non-positive TTL disables purging."""
    if not ttl_seconds or ttl_seconds <= 0:
        return NoRetention()
    return TerminalTTLRetention(ttl_seconds)
