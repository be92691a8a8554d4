from __future__ import annotations

import argparse
import os

import uvicorn

from checkins.infrastructure.config import get_settings
from checkins.infrastructure.db import create_database_engine
from checkins.utils.seed import initialise_database


def ensure_schema() -> None:
    """Create missing tables on the configured database before serving."""
    engine = create_database_engine(get_settings().database)
    try:
        if not initialise_database(engine):
            print("[run-server] Created missing check-in tables.")
    finally:
        engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the check-ins API server")
    parser.add_argument("--host", default=os.environ.get("APP_HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=int(os.environ.get("APP_PORT") or 8000))
    parser.add_argument("--no-reload", dest="reload", action="store_false")
    parser.add_argument("--skip-schema", action="store_true", help="Don't create missing tables")
    args = parser.parse_args()

    if not args.skip_schema:
        try:
            ensure_schema()
        except Exception as exc:  # pragma: no cover - developer helper
            print(f"[run-server] Warning: {exc}")

    uvicorn.run(
        "checkins.web.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
    )


if __name__ == "__main__":
    main()
