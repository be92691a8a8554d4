from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from checkins.infrastructure.config import get_settings
from checkins.infrastructure.logging import get_logger
from checkins.web.routes import api

logger = get_logger(__name__)


def create_application() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title=settings.app.title,
        version=settings.app.version,
        debug=settings.app.debug,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*", "X-Actor-Id"],
    )

    app.include_router(api.router)

    logger.info(
        f"Created {settings.app.title} application ({settings.app.environment}, "
        f"database backend {settings.database.backend})"
    )
    return app


app = create_application()
