"""
Shoot Sync — FastAPI application.

Builds the app, wires the services onto app.state and maps domain errors
to HTTP status codes.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from shootsync.api.deps import Services, build_services
from shootsync.api.routes import router
from shootsync.core.errors import IntegrationNotConnected, InvalidInput, NotFound

logger = logging.getLogger(__name__)


def create_app(services: Services | None = None) -> FastAPI:
    """Create the HTTP app. Services default to the configured SQLite file."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Shoot Sync API starting up...")
        yield
        logger.info("Shoot Sync API shutting down...")

    app = FastAPI(title="Shoot Sync API", version="1.0.0", lifespan=lifespan)
    app.state.services = services or build_services()

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.warning("Validation error for %s: %s", request.url.path, exc.errors())
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "invalid_input", "detail": exc.errors()},
        )

    @app.exception_handler(InvalidInput)
    async def invalid_input_handler(request: Request, exc: InvalidInput):
        logger.warning("Invalid input for %s: %s", request.url.path, exc)
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "invalid_input", "message": str(exc)},
        )

    @app.exception_handler(IntegrationNotConnected)
    async def not_connected_handler(request: Request, exc: IntegrationNotConnected):
        return JSONResponse(
            status_code=409,
            content={"success": False, "error": "not_connected", "message": str(exc)},
        )

    @app.exception_handler(NotFound)
    async def not_found_handler(request: Request, exc: NotFound):
        return JSONResponse(
            status_code=404,
            content={"success": False, "error": "not_found", "message": str(exc)},
        )

    app.include_router(router)
    return app
