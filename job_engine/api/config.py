"""Runtime-adjustable configuration for the API layer."""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Set

from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

# Keys that may be patched at runtime via the /api/config endpoint.
_ADJUSTABLE_KEYS: Set[str] = {
    "MAX_ACTIVE_JOBS",
    "DEFAULT_RETRY_AFTER_SECONDS",
    "JOB_RETENTION_TTL_SECONDS",
    "CAPACITY_ERROR_STATUS",
}

# Semantic validators: key -> (validator_fn, human-readable description).
# Validator returns True if the value is acceptable.
CONFIG_VALIDATORS: Dict[str, tuple[Callable[[Any], bool], str]] = {
    "MAX_ACTIVE_JOBS": (
        lambda v: 1 <= v <= 100_000,
        "Must be between 1 and 100000",
    ),
    "DEFAULT_RETRY_AFTER_SECONDS": (
        lambda v: 0 <= v <= 86_400,
        "Must be between 0 (disabled) and 86400",
    ),
    "JOB_RETENTION_TTL_SECONDS": (
        lambda v: v >= 0,
        "Must be >= 0 (0 keeps jobs forever)",
    ),
    "CAPACITY_ERROR_STATUS": (
        lambda v: v in (500, 503),
        "Must be 500 or 503",
    ),
}


def _coerce_int(key: str, value: Any) -> int:
    """Every adjustable key is an integer; fractional values are rejected, not truncated."""
    if isinstance(value, bool):
        raise ValueError(f"Cannot coerce {key}={value!r} to int")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise ValueError(f"Cannot coerce {key}={value!r} to int")


class ApiSettings(BaseSettings):
    """Immutable settings loaded from environment / .env file."""

    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: str = "http://localhost:5173,http://localhost:8000"
    job_store: str = "sqlite"
    job_db_path: str = "jobs.db"
    log_level: str = "INFO"

    model_config = {"env_prefix": "JOB_ENGINE_API_"}


class RuntimeConfig:
    """Thin wrapper around engine ``config.py`` module-level variables.

    Provides get/patch semantics restricted to the adjustable whitelist.
    """

    def __init__(self) -> None:
        import job_engine.config as _cfg

        self._cfg = _cfg

    def get_adjustable(self) -> Dict[str, Any]:
        """Return the current value of every adjustable key."""
        out: Dict[str, Any] = {}
        for key in sorted(_ADJUSTABLE_KEYS):
            out[key] = getattr(self._cfg, key, None)
        return out

    def patch(self, updates: Dict[str, Any]) -> Dict[str, Any]:
        """Apply validated updates and return the new state.

        All keys are validated before any is applied.  Raises ``KeyError`` for
        unknown keys and ``ValueError`` for values that fail coercion or
        validation.
        """
        bad = set(updates) - _ADJUSTABLE_KEYS
        if bad:
            raise KeyError(f"Keys not adjustable: {sorted(bad)}")
        coerced_updates: Dict[str, Any] = {}
        for key, value in updates.items():
            coerced = _coerce_int(key, value)
            validator = CONFIG_VALIDATORS.get(key)
            if validator is not None:
                check_fn, description = validator
                if not check_fn(coerced):
                    raise ValueError(
                        f"Invalid value for {key}: {coerced!r}. {description}"
                    )
            coerced_updates[key] = coerced
        for key, coerced in coerced_updates.items():
            setattr(self._cfg, key, coerced)
            logger.info("RuntimeConfig patched %s = %r", key, coerced)
        return self.get_adjustable()
