"""FastAPI dependencies shared by the routers."""

from __future__ import annotations

from fastapi import HTTPException, Request

from commgraph_analytics.config import Settings, get_settings
from commgraph_analytics.db import GraphDB


def get_db(request: Request) -> GraphDB:
    """Return the application's open :class:`GraphDB`, or fail with 503."""
    db: GraphDB | None = getattr(request.app.state, "db", None)
    if db is None or not db.is_open:
        raise HTTPException(status_code=503, detail="Database not configured")
    return db


def get_app_settings(request: Request) -> Settings:
    """Return the settings the application was created with."""
    settings: Settings | None = getattr(request.app.state, "settings", None)
    return settings if settings is not None else get_settings()
