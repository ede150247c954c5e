"""
Counselor AI - FastAPI Application Entry Point
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.v1 import ai_router, logs_router
from .config import get_settings
from .dependencies import create_ai_services
from .logging_config import setup_logging

settings = get_settings()

# Configure logging with file handlers and module separation
setup_logging(settings.log_level, settings.log_dir)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info(f"Starting {settings.app_name}...")
    if getattr(app.state, "ai_services", None) is None:
        app.state.ai_services = create_ai_services(settings)

    services = app.state.ai_services
    if settings.ai_health_monitor_enabled:
        await services.health_monitor.start()

    yield

    # Shutdown
    logger.info("Shutting down...")
    await services.health_monitor.stop()


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Multi-provider AI chat backend for the counseling assistant",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/api/docs" if settings.debug else None,
    redoc_url="/api/redoc" if settings.debug else None
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# API Routes
app.include_router(ai_router, prefix="/api/v1")
app.include_router(logs_router, prefix="/api/v1")


# Health check endpoint
@app.get("/api/health")
async def health_check():
    """Simple health check endpoint."""
    return {"status": "ok", "app": settings.app_name}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "counselor_ai.main:app",
        host="0.0.0.0",
        port=settings.app_port,
        reload=settings.debug
    )
