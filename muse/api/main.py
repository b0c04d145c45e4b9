"""
FastAPI Application

Main application entry point with:
- CORS middleware
- Health endpoint
- API routes
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from muse.config import get_settings

# Configure root logger BEFORE any other imports
logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(levelname)s  %(name)s  %(message)s",
)
# Silence noisy loggers
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("watchfiles").setLevel(logging.WARNING)

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from muse.api.routes import close_services, router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    app.state.start_time = datetime.now(timezone.utc)
    logger.info("Evidence API starting (evidence dir: %s)", get_settings().evidence_dir)

    yield

    await close_services()
    logger.info("Service connections closed")


app = FastAPI(
    title="Muse Evidence API",
    description="Evidence retrieval and matching for logic models",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check() -> dict[str, Any]:
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": "0.1.0",
    }


# Include API routes
app.include_router(router, prefix="/api/v1")
