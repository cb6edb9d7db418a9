"""
Main FastAPI Application Entry Point

This module initializes and configures the FastAPI application with all
necessary middleware, routers, exception handlers and lifecycle events.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
import structlog

from devicehub import __version__
from devicehub.config import settings
from devicehub.api import v1
from devicehub.bridge.router import router as bridge_router
from devicehub.errors import DeviceHubError, Internal, ValidationError

# Configure structured logging
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        logging.getLevelName(settings.LOG_LEVEL.upper())
    ),
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.

    This handles:
    - Telemetry setup (when enabled)
    - Database engine disposal on shutdown
    """
    logger.info("application_starting", environment=settings.ENV)

    if settings.TELEMETRY_ENABLED:
        from devicehub.telemetry import setup_telemetry
        setup_telemetry(app, service_version=__version__, metrics_port=settings.METRICS_PORT)

    yield

    logger.info("application_shutting_down")
    if settings.TELEMETRY_ENABLED:
        from devicehub.telemetry import shutdown_telemetry
        shutdown_telemetry()

    from devicehub.database import engine
    await engine.dispose()


# Create FastAPI application
app = FastAPI(
    title="DeviceHub API",
    description="Device identity, scoped authorization and sensor bridge",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Root endpoint
@app.get("/", tags=["Root"])
async def root():
    """Root endpoint returning API information."""
    return {
        "message": "DeviceHub API",
        "version": __version__,
        "status": "running",
        "environment": settings.ENV,
        "docs": "/docs"
    }


# Include routers
app.include_router(v1.router, prefix="/api/v1")
app.include_router(bridge_router)


def _error_response(exc: DeviceHubError) -> JSONResponse:
    headers = None
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


@app.exception_handler(DeviceHubError)
async def devicehub_exception_handler(request: Request, exc: DeviceHubError):
    """Map service errors onto their HTTP status and a JSON body."""
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, error=exc.code)
    return _error_response(exc)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed or missing fields are a 400, with the offending fields listed."""
    issues = [
        {
            "loc": [str(part) for part in error.get("loc", ())],
            "msg": error.get("msg"),
            "type": error.get("type"),
        }
        for error in exc.errors()
    ]
    logger.info("request_validation_failed", path=request.url.path, issues=len(issues))
    return _error_response(ValidationError(extra={"issues": issues}))


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    """Storage failures surface as a generic internal error."""
    logger.error(
        "database_error",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        exc_info=True
    )
    return _error_response(Internal())


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """
    Global exception handler for unhandled errors.

    Logs the error and returns a generic error response.
    """
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        exc_info=True
    )

    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "error": str(exc) if settings.DEBUG else "An unexpected error occurred"
        }
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "devicehub.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
