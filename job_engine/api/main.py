"""FastAPI application factory and server entry point."""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from .config import ApiSettings
from .deps.providers import get_job_manager, get_job_runner, get_job_store, get_settings, use_settings
from .errors import register_error_handlers

logger = logging.getLogger(__name__)


def configure_logging(settings: ApiSettings) -> None:
    """Apply the engine log level/format to the root logger."""
    import job_engine.config as cfg

    # An explicitly passed log level (env var or CLI flag) wins over the engine default.
    level_name = settings.log_level if "log_level" in settings.model_fields_set else cfg.LOG_LEVEL
    effective_level = getattr(logging, level_name.upper(), None)
    if not isinstance(effective_level, int):
        effective_level = logging.INFO

    if cfg.LOG_FORMAT == "json":
        fmt = '{"time":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","message":"%(message)s"}'
    else:
        fmt = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"

    logging.basicConfig(
        level=effective_level,
        format=fmt,
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )


async def _retention_loop() -> None:
    """Background task that purges expired jobs on a fixed period."""
    import job_engine.config as cfg

    manager = get_job_manager()
    while True:
        await asyncio.sleep(cfg.JOB_RETENTION_INTERVAL_SECONDS)
        try:
            await manager.purge_expired()
        except Exception:  # noqa: BLE001
            logger.warning("Retention sweep failed", exc_info=True)


@asynccontextmanager
async def _lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    settings: ApiSettings = get_settings()
    configure_logging(settings)
    logger.info("Starting job_engine API on %s:%s", settings.host, settings.port)

    from job_engine.config import validate_config

    issues = validate_config()
    for issue in issues:
        if issue.get("level") == "ERROR":
            logger.error("Config validation: %s", issue.get("message", ""))
        else:
            logger.warning("Config validation: %s", issue.get("message", ""))
    if not issues:
        logger.info("Config validation: all checks passed")

    from .routers.logs import setup_log_buffer, teardown_log_buffer
    setup_log_buffer()

    store = get_job_store()
    await store.initialize()
    await get_job_manager().recover()

    runner = get_job_runner()
    runner.start()

    retention_task = asyncio.create_task(_retention_loop())

    yield

    retention_task.cancel()
    await asyncio.gather(retention_task, return_exceptions=True)
    await runner.stop()
    await store.close()
    teardown_log_buffer()
    logger.info("Shutting down job_engine API")


def create_app(settings: ApiSettings | None = None) -> FastAPI:
    """Build and return the FastAPI application."""
    if settings is None:
        settings = get_settings()
    else:
        use_settings(settings)

    app = FastAPI(
        title="Job Engine API",
        description="Asynchronous job lifecycle service: accept long-running operations, poll, cancel and purge jobs.",
        version=__version__,
        lifespan=_lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    origins = [o.strip() for o in settings.cors_origins.split(",")]
    allow_creds = "*" not in origins
    if not allow_creds:
        logger.warning(
            "CORS_ORIGINS contains '*'. Credentials will NOT be allowed. "
            "Set explicit origins for credentialed cross-origin requests."
        )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=allow_creds,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Location", "Retry-After"],
    )

    register_error_handlers(app)

    from .routers import all_routers

    for router in all_routers():
        app.include_router(router)

    return app


def run_server() -> None:
    """CLI entry point: ``python -m job_engine.api.main``."""
    import uvicorn

    settings = get_settings()
    app = create_app(settings)
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run_server()
