"""
FastAPI application factory for the Concrete Ledger.

This module creates the app with:
- Service container lifecycle (initialize on startup, backup loop)
- CORS configuration for the browser frontend
- LedgerError -> JSON error responses
- The ledger routes
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .._version import __version__
from ..config import ServerConfig
from ..errors import LedgerError
from ..services import LedgerServices, build_services, initialize
from .auth import TokenService
from .routes import router

logger = logging.getLogger(__name__)

SERVER_ERROR_MESSAGE = "Internal server error"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Initialize the documents and run the backup loop while serving."""
    services: LedgerServices = app.state.services
    initialize(services)

    scheduler_task = None
    if services.scheduler is not None:
        scheduler_task = asyncio.create_task(services.scheduler.start())

    yield

    if services.scheduler is not None:
        await services.scheduler.stop()
    if scheduler_task is not None:
        scheduler_task.cancel()
        await asyncio.gather(scheduler_task, return_exceptions=True)


async def handle_ledger_error(request: Request, exc: LedgerError) -> JSONResponse:
    if exc.http_status >= 500:
        logger.error(
            f"{request.method} {request.url.path} failed: {exc.code}",
            exc_info=exc,
            extra={"details": exc.details},
        )
    return JSONResponse(
        status_code=exc.http_status,
        content={"message": exc.message, "code": exc.code},
    )


async def handle_request_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"message": "Malformed request body", "code": "VALIDATION_ERROR"},
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"message": SERVER_ERROR_MESSAGE, "code": "INTERNAL_ERROR"},
    )


def create_app(
    config: ServerConfig | None = None,
    services: LedgerServices | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Server configuration (loaded from env if not provided)
        services: Pre-built service container, for tests
    """
    if services is not None:
        config = services.config
    config = config or ServerConfig.from_env()
    services = services or build_services(config)

    app = FastAPI(
        title="Concrete Ledger",
        description="Multi-user concrete volume records with history and spreadsheet export.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.services = services
    app.state.tokens = TokenService(config.auth)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.http.cors_origins),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition"],
    )

    app.add_exception_handler(LedgerError, handle_ledger_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)

    app.include_router(router)
    return app
