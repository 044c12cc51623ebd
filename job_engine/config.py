"""
Central configuration for the job engine.

Flat-constant interface read by the API layer at startup and patched at
runtime through ``job_engine.api.config.RuntimeConfig``.  Values that only
matter to the HTTP process (host, port, storage path) live in
``ApiSettings`` instead.

Config Status Legend
====================
  ACTIVE      Imported and used by running code.

Search for ``# STATUS:`` to locate all annotations.
"""

# ── Capacity ──────────────────────────────────────────────────────────
MAX_ACTIVE_JOBS = 100                            # STATUS: ACTIVE - jobs/manager.py; PENDING + STARTED jobs before CapacityError
MAX_CONCURRENT_WORKERS = 4                       # STATUS: ACTIVE - jobs/runner.py; handlers executing at once
CAPACITY_ERROR_STATUS = 503                      # STATUS: ACTIVE - api/errors.py; 503 or 500 for CapacityError

# ── Polling ───────────────────────────────────────────────────────────
DEFAULT_RETRY_AFTER_SECONDS = 5                  # STATUS: ACTIVE - jobs/manager.py; Retry-After hint for new jobs (0 disables)

# ── Retention ─────────────────────────────────────────────────────────
# Terminal jobs whose last update is older than the TTL are purged by the
# background retention loop.  0 keeps jobs forever.
JOB_RETENTION_TTL_SECONDS = 86400                # STATUS: ACTIVE - jobs/retention.py via api/main.py
JOB_RETENTION_INTERVAL_SECONDS = 300             # STATUS: ACTIVE - api/main.py; retention sweep period

# ── Logging ───────────────────────────────────────────────────────────
LOG_LEVEL = "INFO"                               # STATUS: ACTIVE - api/main.py; "DEBUG", "INFO", "WARNING", "ERROR"
LOG_FORMAT = "structured"                        # STATUS: ACTIVE - api/main.py; "structured" or "json"


def validate_config() -> list:
    """Check config for common misconfigurations.

    Returns a list of dicts: [{"level": "WARNING"|"ERROR", "message": str}].
    Called on server startup and available via /api/config/validate.
    """
    issues = []

    # 1. Capacity limits must allow at least one job
    if MAX_ACTIVE_JOBS < 1:
        issues.append({
            "level": "ERROR",
            "message": f"MAX_ACTIVE_JOBS={MAX_ACTIVE_JOBS} rejects every job. Must be >= 1.",
        })
    if MAX_CONCURRENT_WORKERS < 1:
        issues.append({
            "level": "ERROR",
            "message": (
                f"MAX_CONCURRENT_WORKERS={MAX_CONCURRENT_WORKERS} means no job ever starts. "
                "Must be >= 1."
            ),
        })
    elif MAX_CONCURRENT_WORKERS > MAX_ACTIVE_JOBS:
        issues.append({
            "level": "WARNING",
            "message": (
                f"MAX_CONCURRENT_WORKERS ({MAX_CONCURRENT_WORKERS}) exceeds "
                f"MAX_ACTIVE_JOBS ({MAX_ACTIVE_JOBS}); extra workers will stay idle."
            ),
        })

    # 2. CapacityError can only map to 503 or 500
    if CAPACITY_ERROR_STATUS not in (500, 503):
        issues.append({
            "level": "ERROR",
            "message": f"CAPACITY_ERROR_STATUS={CAPACITY_ERROR_STATUS} is invalid. Must be 500 or 503.",
        })

    # 3. Retention
    if JOB_RETENTION_TTL_SECONDS <= 0:
        issues.append({
            "level": "WARNING",
            "message": (
                "JOB_RETENTION_TTL_SECONDS is 0; terminal jobs are never purged "
                "automatically and the job store grows without bound."
            ),
        })
    if JOB_RETENTION_INTERVAL_SECONDS <= 0:
        issues.append({
            "level": "ERROR",
            "message": (
                f"JOB_RETENTION_INTERVAL_SECONDS={JOB_RETENTION_INTERVAL_SECONDS} is invalid. "
                "Must be > 0."
            ),
        })

    if DEFAULT_RETRY_AFTER_SECONDS < 0:
        issues.append({
            "level": "ERROR",
            "message": "DEFAULT_RETRY_AFTER_SECONDS must be >= 0 (0 disables the hint).",
        })

    # 4. Logging
    if LOG_FORMAT not in ("structured", "json"):
        issues.append({
            "level": "WARNING",
            "message": f"LOG_FORMAT='{LOG_FORMAT}' is unknown; falling back to 'structured'.",
        })
    if LOG_LEVEL.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        issues.append({
            "level": "WARNING",
            "message": f"LOG_LEVEL='{LOG_LEVEL}' is unknown; falling back to INFO.",
        })

    return issues
