# Main application entry point

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from docjoin import __version__
from docjoin.config.settings import get_settings
from docjoin.api.routes import router
from docjoin.common.logging_config import setup_logging
from docjoin.common.metrics import get_metrics, get_metrics_content_type
from docjoin.storage.factory import get_storage_adapter, reset_storage_adapter

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan - startup and shutdown."""
    # Startup
    setup_logging(settings.log_level, json_format=settings.json_logs)
    storage = get_storage_adapter()
    logger.info(f"Storage ready at {getattr(storage, 'base_path', settings.storage_path)}")

    yield

    # Shutdown
    # Reset the singleton so a restarted app picks up fresh settings
    reset_storage_adapter()
    logger.info("Storage adapter released")


app = FastAPI(
    title="DocJoin API",
    description="Join related tables into nested JSON documents",
    version=__version__,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(router, prefix="/api/v1")


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": "DocJoin API",
        "version": __version__,
        "status": "running",
        "docs": "/docs"
    }


@app.get("/health")
async def health():
    """Health check endpoint"""
    return {"status": "healthy"}


@app.get("/metrics")
async def metrics():
    """Prometheus metrics in text exposition format"""
    if not settings.metrics_enabled:
        raise HTTPException(status_code=404, detail="Metrics disabled")
    return Response(content=get_metrics(), media_type=get_metrics_content_type())


if __name__ == "__main__":
    uvicorn.run(
        "docjoin.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.debug
    )
