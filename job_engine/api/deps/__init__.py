"""Dependency injection providers."""
from .providers import (
    get_job_manager,
    get_job_runner,
    get_job_store,
    get_operation_registry,
    get_runtime_config,
    get_settings,
)

__all__ = [
    "get_job_manager",
    "get_job_runner",
    "get_job_store",
    "get_operation_registry",
    "get_runtime_config",
    "get_settings",
]
