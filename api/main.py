"""
FastAPI status application for a migration run
"""

import asyncio
import logging

from fastapi import FastAPI

from api.middleware import RequestContextMiddleware
from api.routes import health, progress
from migration.pipeline import MigrationPipeline

logger = logging.getLogger(__name__)


def create_app(pipeline: MigrationPipeline, launch: bool = True) -> FastAPI:
    """
    Build the status API around ``pipeline``.

    Args:
        pipeline: Run whose status is served
        launch: Start the run as a background task when the app starts
    """
    app = FastAPI(
        title="Reference Data Migration",
        description="Status of a running reference data migration",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(RequestContextMiddleware)
    app.state.pipeline = pipeline
    app.state.migration_task = None

    app.include_router(health.router)
    app.include_router(progress.router)

    @app.on_event("startup")
    async def startup_event():
        """Application startup event"""
        logger.info("Starting migration status API")
        logger.info(f"Environment: {pipeline.settings.ENVIRONMENT}")

        if launch:
            app.state.migration_task = asyncio.create_task(pipeline.run())

    @app.on_event("shutdown")
    async def shutdown_event():
        """Application shutdown event"""
        logger.info("Shutting down migration status API")
        task = app.state.migration_task
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "message": "Reference Data Migration",
            "version": "1.0.0",
            "docs": "/docs",
            "health": "/health",
            "endpoints": {
                "progress": "/progress"
            }
        }

    return app
