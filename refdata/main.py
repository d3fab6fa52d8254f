"""
FastAPI application entry point.

This module initializes the FastAPI application, configures middleware,
and registers all API routers.
"""
import logging
import os
from datetime import datetime
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from .core.config import settings
from .core.logging_config import configure_logging
from .db.session import dispose_engine, init_db

# Import routers
from .api.routers import imports, records

# Ensure logging is configured before the application starts serving requests.
configure_logging(settings.log_level, settings.import_log_level, settings.sql_log_level)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle - startup and shutdown events."""
    if os.getenv("SKIP_DB_INIT") == "1":
        logger.info("SKIP_DB_INIT=1 detected; skipping database bootstrap during startup")
        yield
        return

    try:
        logger.info("Initializing database tables...")
        init_db()
        logger.info("All reference-data tables ready")
    except Exception:
        logger.exception("Failed to initialize database tables; the application cannot start")
        raise

    yield  # Application runs here

    dispose_engine()


# Initialize FastAPI application
app = FastAPI(
    title="Reference Data API",
    version="1.0.0",
    description="Bulk CSV/Excel import and maintenance of stock and currency reference data",
    lifespan=lifespan
)

allowed_origins = [origin.strip() for origin in settings.allowed_origins.split(",") if origin.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(imports.router, prefix="/api")
app.include_router(records.router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint returning API information."""
    return {
        "message": "Reference Data API",
        "version": "1.0.0"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint for deployment monitoring."""
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "service": "refdata-api"
    }
