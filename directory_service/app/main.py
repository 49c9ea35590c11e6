"""
Main entrypoint for the Service Directory API.

This module assembles the FastAPI application, sets up logging,
creates the store handle and includes versioned routers.  The
``create_app`` function builds and configures the app, which is then
instantiated at module import time as ``app``, e.g.::

    uvicorn directory_service.app.main:app

The store handle is created here, once, and shared through
``app.state``; nothing else in the package opens the database on its
own.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .api.v1.router import router as v1_router
from .core.config import Settings, settings as default_settings
from .core.db import Database
from .core.errors import DirectoryError
from .core.logging_config import setup_logging
from .services import Directory

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, database: Optional[Database] = None) -> FastAPI:
    """Create and configure a FastAPI application.

    Parameters
    ----------
    settings : Optional[Settings]
        Configuration to use.  Defaults to the environment‑derived
        module settings.
    database : Optional[Database]
        Store handle to use.  Defaults to one built from ``settings``.

    Returns
    -------
    FastAPI
        A configured FastAPI instance.  Migrations are applied when the
        application starts.
    """
    settings = settings or default_settings
    # Initialise logging before anything else so that startup can log.
    setup_logging(settings.log_level, settings.log_file)

    directory = Directory.from_settings(settings, database)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # Creates the database file if needed and brings the schema up to date.
        directory.db.init_db()
        logger.info("Service directory ready (database %s)", directory.db.path)
        yield

    app = FastAPI(
        title=settings.project_name,
        version=settings.api_version,
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.directory = directory

    @app.exception_handler(DirectoryError)
    async def directory_error_handler(request: Request, exc: DirectoryError) -> JSONResponse:
        level = logging.ERROR if exc.retryable else logging.WARNING
        logger.log(level, "%s %s failed: %s", request.method, request.url.path, exc.message)
        headers = {"Retry-After": "1"} if exc.retryable else None
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "code": exc.code, "retryable": exc.retryable},
            headers=headers,
        )

    # Mount versioned routes under /api/v1.
    app.include_router(v1_router, prefix="/api/v1")

    return app


# Create the application instance at import time so that tools such as
# uvicorn can discover it without calling create_app manually.
app = create_app()
