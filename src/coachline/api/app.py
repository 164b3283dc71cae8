"""
Coachline FastAPI Application.

Voice and text coaching API.
"""

import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from coachline.api.auth import get_auth_context
from coachline.api.dependencies import (
    build_embedding_provider,
    build_llm_provider,
    build_voice_platform,
)
from coachline.api.errors import capture_request_body, register_error_handlers
from coachline.api.routes import chat, voice_coach
from coachline.coaching.metrics import InMemoryMetricsStore, MetricsRecorder
from coachline.config import settings
from coachline.db.connection import check_connection
from coachline.logging_config import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI application.

    Sets up logging and checks the database before serving requests; closes
    the voice platform client on shutdown.
    """
    setup_logging(context="api")

    logger.info("Checking database connection...")
    if check_connection():
        logger.info("✓ Database connection OK")
    else:
        logger.warning("Database is unreachable; coaching requests will fail")

    if not settings.elevenlabs_agent_id:
        logger.warning("ELEVENLABS_AGENT_ID not set; no fallback voice agent")

    logger.info("Application startup complete")

    yield

    logger.info("Application shutdown initiated...")
    try:
        await app.state.voice_platform.aclose()
    except Exception as e:
        logger.error(f"Error closing voice platform client: {e}", exc_info=True)
    logger.info("Application shutdown complete")


def create_app() -> FastAPI:
    app = FastAPI(
        lifespan=lifespan,
        title="Coachline API",
        description="Context-aware voice and text coaching",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Process-wide clients and the metrics store
    app.state.voice_platform = build_voice_platform()
    app.state.embedding_provider = build_embedding_provider()
    app.state.llm_provider = build_llm_provider()
    app.state.metrics = MetricsRecorder(
        InMemoryMetricsStore(retention=timedelta(hours=settings.metrics_retention_hours))
    )

    register_error_handlers(app)

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint - API health check."""
        return {
            "status": "ok",
            "message": "Coachline API is running",
            "version": "0.1.0",
        }

    authenticated = [Depends(get_auth_context), Depends(capture_request_body)]
    app.include_router(
        voice_coach.router,
        prefix="/voice-coach",
        tags=["voice-coach"],
        dependencies=authenticated,
    )
    app.include_router(
        chat.router, prefix="/chat", tags=["chat"], dependencies=authenticated
    )
    return app


app = create_app()
