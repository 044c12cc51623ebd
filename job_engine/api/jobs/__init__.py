"""Asynchronous job lifecycle: records, manager, retention and runner."""
from .models import JobRecord, JobStatus
from .store import JobStore, MemoryJobStore
from .manager import JobManager
from .operations import JobCancelled, OperationRegistry
from .retention import NoRetention, RetentionPolicy, TerminalTTLRetention
from .runner import JobRunner

__all__ = [
    "JobCancelled",
    "JobManager",
    "JobRecord",
    "JobRunner",
    "JobStatus",
    "JobStore",
    "MemoryJobStore",
    "NoRetention",
    "OperationRegistry",
    "RetentionPolicy",
    "TerminalTTLRetention",
]
