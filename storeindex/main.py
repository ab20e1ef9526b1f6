"""
FastAPI application factory with middleware, CORS, and request tracing.
"""

import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from storeindex import __version__
from storeindex.config import get_settings
from storeindex.engine.defaults import get_index_config
from storeindex.errors import (
    ConfigurationError,
    IndexEngineError,
    MissingDataError,
    PersistenceError,
    UpstreamFetchError,
)
from storeindex.routers import metrics, snapshots, system
from storeindex.utils.logging import configure_logging, get_logger

# Configure logging at module level
configure_logging()
logger = get_logger(__name__)

_ERROR_STATUS = {
    UpstreamFetchError: 404,
    MissingDataError: 404,
    PersistenceError: 503,
    ConfigurationError: 500,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.
    Validates the engine configuration before serving any request.
    """
    settings = get_settings()

    logger.info(
        "application_startup",
        version=app.version,
        dev_mode=settings.dev_mode,
        db_path=settings.db_path,
    )

    # Raises ConfigurationError and aborts startup on a malformed config
    config = get_index_config()
    logger.info("engine_config_ready", config_version=config.config_version)

    yield

    logger.info("application_shutdown")


def create_app() -> FastAPI:
    """
    Application factory.
    Creates and configures FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Store Health Index API",
        description="Normalized, weighted store health indices with deltas, tiers and alerts",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )

    # Request tracing middleware
    @app.middleware("http")
    async def request_tracing_middleware(request: Request, call_next):
        """Add request ID to all requests and log their outcome."""
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        logger.info(
            "request_started",
            method=request.method,
            path=request.url.path,
            client=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id

            logger.info(
                "request_completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
            )

            return response
        except Exception as e:
            logger.error(
                "request_failed",
                method=request.method,
                path=request.url.path,
                error=str(e),
                exc_info=True,
            )
            return JSONResponse(
                status_code=500,
                content={
                    "success": False,
                    "error": "Internal server error",
                    "request_id": request_id,
                },
                headers={"X-Request-ID": request_id},
            )

    @app.exception_handler(IndexEngineError)
    async def index_engine_error_handler(request: Request, exc: IndexEngineError):
        """Map engine errors onto HTTP status codes."""
        status_code = next(
            (code for cls, code in _ERROR_STATUS.items() if isinstance(exc, cls)),
            500,
        )
        logger.warning(
            "engine_error",
            path=request.url.path,
            error_type=type(exc).__name__,
            error=str(exc),
            status_code=status_code,
        )
        return JSONResponse(
            status_code=status_code,
            content={"success": False, "error": str(exc), "error_type": type(exc).__name__},
        )

    # Health check endpoint
    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for load balancers and monitoring."""
        return {"status": "healthy", "version": app.version}

    app.include_router(snapshots.router, prefix="/api/v1/snapshots", tags=["Snapshots"])
    app.include_router(metrics.router, prefix="/api/v1/metrics", tags=["Metrics"])
    app.include_router(system.router, prefix="/api/v1/system", tags=["System"])

    logger.info("application_configured", routers_count=3)

    return app


# Create application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "storeindex.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
        log_level=settings.log_level.lower(),
    )
