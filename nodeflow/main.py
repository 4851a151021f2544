"""Main entry point for the workflow engine server."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .binary_data.service import binary_data_service
from .core.config import settings
from .core.dependencies import get_active_executions, get_wait_tracker, get_workflow_runner
from .core.logging_setup import setup_logging
from .db import init_db
from .engine.node_registry import register_all_nodes
from .routes import api_router, webhook_router, stream_router
from .schemas.common import RootResponse, HealthResponse

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    setup_logging(settings.log_level)

    await init_db()
    logger.info("Database initialized")

    register_all_nodes()
    await binary_data_service.init(
        settings.binary_data_mode,
        settings.binary_data_modes,
        settings.binary_data_storage_path,
    )

    wait_tracker = get_wait_tracker()
    wait_tracker.start()

    logger.info("%s v%s started", settings.app_name, settings.app_version)
    logger.info("Running on http://%s:%s (executions: %s)", settings.host, settings.port, settings.executions_process)

    yield

    await wait_tracker.stop()
    await get_workflow_runner().shutdown()
    logger.info("%s stopped", settings.app_name)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        description="Workflow execution engine",
        version=settings.app_version,
        lifespan=lifespan,
        debug=settings.debug,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(api_router)
    app.include_router(stream_router, prefix="/api", tags=["Streaming"])
    app.include_router(webhook_router, tags=["Webhooks"])

    # Root endpoints
    @app.get("/", response_model=RootResponse)
    async def root() -> RootResponse:
        """Root endpoint."""
        return RootResponse(
            name=settings.app_name,
            version=settings.app_version,
            status="running",
        )

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(
            status="healthy",
            version=settings.app_version,
            active_executions=len(get_active_executions().get_active_ids()),
        )

    return app


# Create app instance
app = create_app()


def main() -> None:
    """Run the server."""
    uvicorn.run(
        "nodeflow.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
    )


if __name__ == "__main__":
    main()
