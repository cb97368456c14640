"""
Application Entry Point

This module defines the FastAPI application instance, registers all routers,
configures global exception handling, and provides a test-friendly application
factory.

Service handles are built once in the lifespan hook from `Settings` and
stored on `app.state.services`; tests pass their own `Services` instead.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI

from . import __version__
from .api import admin_routes, document_routes, health_routes, query_routes
from .config import get_settings
from .core.errors import register_exception_handlers
from .core.logging_config import configure_logging
from .services import Services, build_services

logger = logging.getLogger("docrag.app")


# ---------------------------------------------------------------------
# Application Factory (Test-Friendly)
# ---------------------------------------------------------------------

def create_app(services: Optional[Services] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Parameters
    ----------
    services : Optional[Services]
        Prebuilt service handles. When omitted they are built from the
        environment at startup and released at shutdown.

    Returns
    -------
    FastAPI
        Fully configured FastAPI application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if services is not None:
            app.state.services = services
            yield
            return

        settings = get_settings()
        configure_logging(settings.log_level)
        logger.info("Starting doc-rag-server %s", __version__)

        built = build_services(settings)
        app.state.services = built
        logger.info(
            "Services ready (queue: %s, embedding model: %s, completion model: %s)",
            built.queue_backend,
            settings.embedding_model,
            settings.completion_model,
        )
        try:
            yield
        finally:
            logger.info("Shutting down doc-rag-server")
            await built.aclose()

    app = FastAPI(
        title="doc-rag-server",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # --------------------------------------------------------------
    # Global Exception Handling
    # --------------------------------------------------------------

    register_exception_handlers(app)

    # --------------------------------------------------------------
    # Router Registration
    # --------------------------------------------------------------

    app.include_router(health_routes.router)
    app.include_router(document_routes.router)
    app.include_router(query_routes.router)
    app.include_router(admin_routes.router)

    return app


# ---------------------------------------------------------------------
# Default Application Instance (for Uvicorn)
# ---------------------------------------------------------------------

app = create_app()
