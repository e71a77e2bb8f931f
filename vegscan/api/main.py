"""
FastAPI application entry point.

This is the main FastAPI application that wires the scan pipeline to HTTP.
"""

import logging
import os
from pathlib import Path
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from .routers import health, scan
from vegscan import __version__
from vegscan.models.manager import ModelManager, DEFAULT_CONFIG_PATH
from vegscan.pipeline.scan.scan import ScanPipeline

logger = logging.getLogger(__name__)

# Global application state, filled once at startup and read-only afterwards
app_state = {}

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Builds the model manager (providers, OCR engine, prompts) and the scan
    pipeline once. Missing credentials raise here, so the server refuses to
    start instead of failing per request.
    """
    config_path = Path(os.getenv("VEGSCAN_CONFIG", DEFAULT_CONFIG_PATH))
    logger.info(f"Starting vegscan API with config {config_path}")

    model_manager = ModelManager(config_path=config_path).initialize()
    app_state["model_manager"] = model_manager
    app_state["scan_pipeline"] = ScanPipeline(model_manager)
    logger.info("Scan pipeline ready to accept requests")

    yield  # Server runs here

    logger.info("Shutting down vegscan API")
    await model_manager.aclose()
    app_state.clear()

def create_app() -> FastAPI:
    """
    Factory function to create and configure the FastAPI application.
    """

    app = FastAPI(
        title="vegscan API",
        description="Ingredient label OCR and vegetarian/vegan classification",
        version=__version__,
        lifespan=lifespan
    )

    cors_origins = os.getenv("VEGSCAN_CORS_ORIGINS", "http://localhost:3000,http://localhost:5173")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[origin.strip() for origin in cors_origins.split(",") if origin.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router, prefix="/health", tags=["health"])
    app.include_router(scan.router, prefix="/api/scan", tags=["scan"])

    @app.get("/")
    async def root():
        """Root endpoint with basic API information."""
        return {
            "name": "vegscan API",
            "version": __version__,
            "status": "operational",
            "endpoints": {
                "health": "/health",
                "scan": "/api/scan",
                "docs": "/docs",
            }
        }

    return app

# Create the FastAPI app instance
app = create_app()
