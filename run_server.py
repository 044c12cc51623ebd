"""API server entry point.

Usage:
    python run_server.py

    # Custom host/port, in-memory job store:
    python run_server.py --host 0.0.0.0 --port 9000 --store memory
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# Ensure job_engine is importable regardless of CWD
sys.path.insert(0, str(Path(__file__).resolve().parent))

logger = logging.getLogger(__name__)


def main() -> None:
    parser = argparse.ArgumentParser(description="Job Engine API Server")
    parser.add_argument("--host", default="0.0.0.0", help="Bind address (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8000, help="Port (default: 8000)")
    parser.add_argument("--store", default="sqlite", choices=["sqlite", "memory"], help="Job store backend")
    parser.add_argument("--db", default="jobs.db", help="SQLite path for the sqlite store (default: jobs.db)")
    parser.add_argument("--log-level", default="info", choices=["debug", "info", "warning", "error"])
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    import uvicorn

    from job_engine.api.config import ApiSettings
    from job_engine.api.main import create_app

    settings = ApiSettings(
        host=args.host,
        port=args.port,
        job_store=args.store,
        job_db_path=args.db,
        log_level=args.log_level,
    )
    app = create_app(settings)

    logger.info("Starting Job Engine API on %s:%s (%s store)", args.host, args.port, args.store)
    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
