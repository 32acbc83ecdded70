"""
Tubely API - FastAPI Application Entry Point.

Initializes the FastAPI application with CORS middleware, registers the v1 API
routers, mounts the local thumbnail directory at /assets and manages the MongoDB
connection across the application lifespan.

Usage:
    # Run with uvicorn directly
    uvicorn tubely.main:app --host 0.0.0.0 --port 8091 --reload

    # Run as Python script
    python -m tubely.main
"""

import logging

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

import uvicorn

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from tubely import __version__
from tubely.api.v1 import api_router
from tubely.config import get_settings
from tubely.core.database import close_db, get_db_client, init_db
from tubely.services.local_assets import ASSETS_URL_PATH, ensure_assets_dir
from tubely.utils.logger import setup_logging


logger = logging.getLogger(__name__)

settings = get_settings()


# =============================================================================
# Application Lifespan Management
# =============================================================================


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """
    Manage application startup and shutdown.

    - Startup: configure logging, create the assets directory, connect MongoDB
    - Shutdown: close the MongoDB connection
    """
    setup_logging(log_level=settings.log_level, json_logs=settings.json_logs)

    logger.info("Starting %s (env=%s)", settings.app_name, settings.app_env)

    assets_dir = ensure_assets_dir(settings.assets_root)
    logger.info("Serving assets from %s", assets_dir.resolve())

    try:
        await init_db(settings)
    except RuntimeError:
        logger.exception("Failed to initialize MongoDB")
        raise

    logger.info("%s ready on %s:%d", settings.app_name, settings.host, settings.port)

    yield

    logger.info("%s shutting down", settings.app_name)
    await close_db()


# =============================================================================
# FastAPI Application Initialization
# =============================================================================

app = FastAPI(
    title="Tubely API",
    version=__version__,
    description="Video upload, processing and delivery backend",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Directory is created during startup, so it may not exist at import time
app.mount(
    ASSETS_URL_PATH,
    StaticFiles(directory=settings.assets_root, check_dir=False),
    name="assets",
)

app.include_router(api_router, prefix="/api/v1")


# =============================================================================
# Root and Health Endpoints
# =============================================================================


@app.get("/", tags=["root"])
async def root() -> dict:
    """Root endpoint providing API information and navigation."""
    return {
        "name": "Tubely API",
        "version": __version__,
        "description": "Video upload, processing and delivery backend",
        "docs": "/docs",
    }


@app.get("/health", tags=["health"])
async def health_check() -> dict:
    """
    Health check endpoint for container orchestration and monitoring.

    Reports ``healthy`` when MongoDB answers a ping and ``degraded`` otherwise.

    Example Response:
        {
            "status": "healthy",
            "timestamp": "2025-01-15T10:30:00.000000+00:00",
            "service": "tubely",
            "database": "connected"
        }
    """
    try:
        database_ok = await get_db_client().ping()
    except RuntimeError:
        database_ok = False

    return {
        "status": "healthy" if database_ok else "degraded",
        "timestamp": datetime.now(UTC).isoformat(),
        "service": settings.app_name,
        "database": "connected" if database_ok else "unavailable",
    }


if __name__ == "__main__":
    uvicorn.run(
        "tubely.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level,
    )
