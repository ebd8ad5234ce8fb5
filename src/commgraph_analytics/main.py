"""FastAPI application entry point for the communication analytics service."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from commgraph_analytics import __version__
from commgraph_analytics.config import Settings, get_settings
from commgraph_analytics.db import GraphDB
from commgraph_analytics.logging_config import configure_logging
from commgraph_analytics.models import HealthResponse
from commgraph_analytics.routes.communications import router as communications_router
from commgraph_analytics.routes.conversations import router as conversations_router
from commgraph_analytics.routes.users import router as users_router

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the graph connection pool on startup and close it on shutdown."""
    settings: Settings = app.state.settings
    db = GraphDB(
        settings.database_path,
        max_pool_size=settings.max_pool_size,
        acquisition_timeout=settings.acquisition_timeout_seconds,
    )
    db.open()
    app.state.db = db
    logger.info("application_started", database=str(settings.database_path), version=__version__)
    try:
        yield
    finally:
        db.close()
        app.state.db = None


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application.  *settings* defaults to the environment."""
    settings = settings or get_settings()
    configure_logging(settings.log_level, json=settings.log_json)

    app = FastAPI(
        title="CommGraph Analytics Service",
        description=(
            "Read-only analytics over a Users/Conversations/Messages graph. "
            "Answers how two users have communicated: shared conversations, "
            "message timelines, and charting analytics."
        ),
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.db = None

    # ---------------------------------------------------------------------------
    # CORS -- the dashboard frontend calls this service directly in local dev.
    # ---------------------------------------------------------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ---------------------------------------------------------------------------
    # Routers
    # ---------------------------------------------------------------------------
    app.include_router(communications_router)
    app.include_router(users_router)
    app.include_router(conversations_router)

    # ---------------------------------------------------------------------------
    # Health check
    # ---------------------------------------------------------------------------
    @app.get("/health", response_model=HealthResponse, tags=["health"])
    def health(request: Request) -> HealthResponse:
        """Liveness check that also reports on the graph store."""
        db: GraphDB | None = request.app.state.db
        if db is None or not db.is_open:
            database = "not configured"
        else:
            database = "connected" if db.ping() else "unreachable"
        return HealthResponse(status="ok", version=__version__, database=database)

    return app


app = create_app()
