"""Singleton dependency providers for FastAPI ``Depends()``."""
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from ..config import ApiSettings, RuntimeConfig

_settings: Optional[ApiSettings] = None


def get_settings() -> ApiSettings:
    global _settings
    if _settings is None:
        _settings = ApiSettings()
    return _settings


def use_settings(settings: ApiSettings) -> None:
    """Make *settings* the value returned by :func:`get_settings`."""
    global _settings
    _settings = settings


@lru_cache
def get_runtime_config() -> RuntimeConfig:
    return RuntimeConfig()


# Lazy singletons, initialised at first call rather than import time
# so the event loop is already running when async resources are needed.

_job_store = None
_job_manager = None
_job_runner = None
_operation_registry = None


def get_job_store():
    """Return the singleton job store selected by ``ApiSettings.job_store``."""
    global _job_store
    if _job_store is None:
        from ..jobs.store import JobStore, MemoryJobStore

        settings = get_settings()
        if settings.job_store == "memory":
            _job_store = MemoryJobStore()
        else:
            _job_store = JobStore(settings.job_db_path)
    return _job_store


def get_job_manager():
    """Return the singleton ``JobManager`` configured from engine config."""
    global _job_manager
    if _job_manager is None:
        import job_engine.config as cfg

        from ..jobs.manager import JobManager
        from ..jobs.retention import build_retention_policy

        _job_manager = JobManager(
            get_job_store(),
            max_active_jobs=cfg.MAX_ACTIVE_JOBS,
            default_retry_after_seconds=cfg.DEFAULT_RETRY_AFTER_SECONDS or None,
            retention_policy=build_retention_policy(cfg.JOB_RETENTION_TTL_SECONDS),
        )
    return _job_manager


def get_operation_registry():
    """Return the singleton ``OperationRegistry`` with built-in operations."""
    global _operation_registry
    if _operation_registry is None:
        from ..jobs.operations import default_registry

        _operation_registry = default_registry()
    return _operation_registry


def get_job_runner():
    """Return the singleton ``JobRunner``."""
    global _job_runner
    if _job_runner is None:
        import job_engine.config as cfg

        from ..jobs.runner import JobRunner

        _job_runner = JobRunner(
            get_job_manager(),
            get_operation_registry(),
            max_concurrent=cfg.MAX_CONCURRENT_WORKERS,
        )
    return _job_runner


def reset_providers() -> None:
    """Drop every singleton so the next call rebuilds it."""
    global _settings, _job_store, _job_manager, _job_runner, _operation_registry
    _settings = None
    _job_store = None
    _job_manager = None
    _job_runner = None
    _operation_registry = None
    get_runtime_config.cache_clear()
