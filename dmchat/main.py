"""
FastAPI Application Factory
===========================

Entry point for the two-party chat service.

Architecture:
    Browser/mobile client --HTTP--> /api/*  (accounts, conversations, messages)
                          --WS----> /ws     (typing indicators)

Routers:
    - /api/*            : Accounts, conversations, messages, read receipts
    - /ws               : WebSocket channel for typing indicators
    - /realtime/status  : Connection statistics
    - /health           : Health check endpoint

Running the Service:
    Development:
        uvicorn dmchat.main:app --reload --host 0.0.0.0 --port 5000

    With custom log level:
        LOG_LEVEL=DEBUG uvicorn dmchat.main:app --reload

The connection registry lives in process memory, so run a single worker.
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from .api import api_router
from .auth import auth_router
from .auth.session import RevokedTokenStore
from .config import Settings, get_settings, validate_configuration
from .models import ErrorResponse, HealthResponse
from .realtime import ConnectionRegistry, TypingRelay
from .realtime.ws import realtime_router
from .storage import MemStorage, Storage

SERVICE_NAME = "dmchat"
SERVICE_VERSION = "1.0.0"


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)],
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup: configure logging and report configuration problems.
    Shutdown: close every registered real-time connection.
    """
    settings: Settings = app.state.settings

    setup_logging(settings.LOG_LEVEL)
    logger = logging.getLogger("dmchat.main")

    report = validate_configuration(settings)
    for error in report["errors"]:
        logger.error(f"Configuration error: {error}")
    for warning in report["warnings"]:
        logger.warning(f"Configuration warning: {warning}")

    logger.info(
        "Chat service started",
        extra={
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "log_level": settings.LOG_LEVEL,
        },
    )

    yield

    logger.info("Shutting down chat service")
    closed = app.state.registry.close_all()
    logger.info(f"Closed {closed} real-time connections, shutdown complete")


def create_application(
    settings: Optional[Settings] = None,
    storage: Optional[Storage] = None,
) -> FastAPI:
    """
    Application factory function.

    Creates the FastAPI application and the components it owns: storage,
    connection registry, typing relay and token revocation list, all held on
    ``app.state``.

    Args:
        settings: Explicit settings (defaults to environment-loaded settings)
        storage: Storage implementation (defaults to MemStorage)
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Chat Service",
        description="Two-party direct messaging with real-time typing indicators",
        version=SERVICE_VERSION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    registry = ConnectionRegistry()
    app.state.settings = settings
    app.state.storage = storage or MemStorage()
    app.state.registry = registry
    app.state.relay = TypingRelay(registry)
    app.state.revoked_tokens = RevokedTokenStore()

    origins = settings.allowed_origins_list
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            allow_headers=["*"],
        )

    app.include_router(auth_router, prefix="/api")
    app.include_router(api_router, prefix="/api")
    app.include_router(realtime_router, tags=["Real-time Communications"])

    @app.get("/health", tags=["System"], response_model=HealthResponse)
    async def health_check():
        return HealthResponse(status="ok", service=SERVICE_NAME)

    @app.get("/", tags=["System"])
    async def root() -> Dict[str, object]:
        return {
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "endpoints": {
                "health": "/health",
                "docs": "/docs",
                "api": "/api",
                "websocket": "/ws",
                "realtime_status": "/realtime/status",
            },
        }

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Log unhandled errors and return a standardized 500 response.
        """
        logger = logging.getLogger("dmchat.main")
        logger.error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__,
            },
            exc_info=True,
        )

        error = ErrorResponse(
            error="internal_server_error",
            message="An unexpected error occurred",
            detail=str(exc) if settings.LOG_LEVEL == "DEBUG" else None,
        )
        return JSONResponse(status_code=500, content=error.model_dump())

    return app


# Create app instance for uvicorn
app = create_application()


def run() -> None:
    """Console entry point: serve the application with uvicorn."""
    settings = get_settings()

    uvicorn.run(
        "dmchat.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
