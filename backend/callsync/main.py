"""FastAPI application factory.

Run with ``uvicorn --factory callsync.main:create_app``.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from callsync.api.livekit_webhook import router as livekit_webhook_router
from callsync.config import Settings, get_settings
from callsync.database import create_engine, create_session_maker, lifespan_db
from callsync.schemas.webhook import HealthResponse
from callsync.utils.logging import get_logger, setup_logging

logger = get_logger("main")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the application with its own engine and session factory."""
    settings = settings or get_settings()
    setup_logging(debug=settings.debug)

    engine = create_engine(settings)
    session_maker = create_session_maker(engine) if engine is not None else None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        missing = settings.missing_credentials()
        if missing:
            logger.error("config_incomplete", missing=missing)
        async with lifespan_db(engine):
            yield

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="LiveKit room webhook ingestion and call-record reconciliation",
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_maker = session_maker

    app.include_router(livekit_webhook_router, prefix="/api", tags=["LiveKit"])

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check() -> HealthResponse:
        """Service health check."""
        return HealthResponse(
            app=settings.app_name,
            version=settings.app_version,
            database_configured=session_maker is not None,
            livekit_configured=bool(
                settings.livekit_api_key and settings.livekit_api_secret
            ),
        )

    return app

