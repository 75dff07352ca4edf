"""
OncoSafeRx Interaction & Dosing Engine - Main Application Entry Point

FastAPI service for oncology drug-drug interaction checks and
regimen dosing adjustments, with security, caching, and monitoring.
"""

import time
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from oncosafe.api import api_router
from oncosafe.config import get_settings
from oncosafe.core.cache import close_cache_service, get_cache_service
from oncosafe.core.errors import (
    EngineError,
    NotFoundError,
    SchemaViolationError,
    ValidationError,
)
from oncosafe.core.logging import get_logger, setup_logging
from oncosafe.core.rate_limit import limiter
from oncosafe.dependencies import close_vocabulary
from oncosafe.schemas.common import ErrorResponse
from oncosafe.services.reference_store import get_reference_store

# Setup logging
setup_logging()
logger = get_logger(__name__)

ERROR_STATUS = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    SchemaViolationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


def _error_response(status_code: int, error: str, message: str, details: dict) -> JSONResponse:
    body = ErrorResponse(error=error, message=message, details=details)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    settings = get_settings()

    # Startup
    logger.info(
        f"Starting {settings.APP_NAME} v{settings.APP_VERSION}",
        extra={"environment": "production" if not settings.DEBUG else "development"}
    )

    # Initialize Redis cache
    try:
        cache = await get_cache_service()
        logger.info(f"Redis connected: {cache.is_connected}")
    except Exception as e:
        logger.warning(f"Redis initialization failed: {e}")

    # Load reference data
    store = get_reference_store()
    if store.is_loaded:
        logger.info("Reference data loaded", extra=store.snapshot.summary())
    else:
        logger.warning("Serving without reference data until a reload succeeds")

    logger.info(
        f"Application started on {settings.HOST}:{settings.PORT}",
        extra={"debug": settings.DEBUG}
    )

    yield

    # Shutdown
    logger.info("Shutting down application...")

    await close_cache_service()
    await close_vocabulary()

    logger.info("Application shutdown complete")


def create_application() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Drug-drug interaction checks and regimen dosing adjustments",
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        openapi_url="/openapi.json" if settings.DEBUG else None,
        lifespan=lifespan
    )

    # Add rate limiting
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.FRONTEND_ORIGIN],
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining"]
    )

    # Add request timing middleware
    @app.middleware("http")
    async def add_timing_header(request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = f"{process_time:.4f}"
        return response

    @app.exception_handler(EngineError)
    async def engine_error_handler(request: Request, exc: EngineError):
        """Map engine errors to their HTTP status."""
        status_code = next(
            (code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)),
            status.HTTP_500_INTERNAL_SERVER_ERROR
        )
        logger.info(
            f"{exc.error_type}: {exc.message}",
            extra={"path": request.url.path, "status": status_code}
        )
        return _error_response(status_code, exc.error_type, exc.message, exc.details)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        """Malformed request bodies are reported like any other validation error."""
        return _error_response(
            status.HTTP_400_BAD_REQUEST,
            ValidationError.error_type,
            "Malformed request",
            {"errors": jsonable_encoder(exc.errors(), exclude={"ctx", "url"})}
        )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """
        Handle all unhandled exceptions.

        Returns sanitized error response without sensitive information.
        """
        logger.error(
            f"Unhandled exception: {type(exc).__name__}",
            extra={
                "path": request.url.path,
                "method": request.method
            },
            exc_info=exc
        )

        # Return sanitized error response
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "InternalServerError",
                "message": "An unexpected error occurred",
                "timestamp": datetime.utcnow().isoformat()
            }
        )

    # Include API routes
    app.include_router(api_router, prefix="/api/v1")

    # Root endpoint
    @app.get("/")
    async def root():
        """Root endpoint with service information."""
        return {
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "docs": "/docs" if settings.DEBUG else "Disabled in production",
            "health": "/api/v1/health"
        }

    return app


# Create application instance
app = create_application()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "oncosafe.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        workers=1 if settings.DEBUG else 4,
        log_level="debug" if settings.DEBUG else "info"
    )
