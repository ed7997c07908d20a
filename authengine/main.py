"""
Main FastAPI application entry point.
"""

import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import structlog
from fastapi import FastAPI, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from authengine.authentication.errors import FieldError, ValidationError
from authengine.authentication.routes import router as authentication_router
from authengine.authentication.service import ConfigurationService, create_configuration_service
from authengine.core.config import settings
from authengine.core.database import close_db, create_engine, create_session_factory, init_db


def configure_logging() -> None:
    """Configure structured logging."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if settings.log.format == "json" else structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()

logger = structlog.get_logger(__name__)

REQUEST_LOCATIONS = ("body", "query", "path")

PYDANTIC_REASONS = {
    "extra_forbidden": "unexpected parameter",
    "missing": "cannot be empty",
    "int_parsing": "an integer is expected",
    "int_type": "an integer is expected",
    "int_from_float": "an integer is expected",
    "string_type": "a character string is expected",
}


def request_field_errors(exc: RequestValidationError) -> ValidationError:
    """Render pydantic request errors the same way as service validation errors."""
    errors = []
    for error in exc.errors():
        loc = [str(part) for part in error["loc"] if part not in REQUEST_LOCATIONS]
        field = ".".join(loc) or "request"
        reason = PYDANTIC_REASONS.get(error["type"], error["msg"])
        errors.append(FieldError(field, reason))
    return ValidationError(errors)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Creates the database schema and the configuration singleton unless a
    configuration service was supplied to create_app.
    """
    logger.info("Starting application", version=settings.app.app_version, env=settings.app.app_env)

    engine = None
    if app.state.configuration_service is None:
        engine = create_engine()
        await init_db(engine)
        service = create_configuration_service(create_session_factory(engine))
        await service.provision()
        app.state.configuration_service = service
        logger.info("Database tables verified via init_db", sqlite=settings.database.is_sqlite)

    yield

    logger.info("Shutting down application")
    if engine is not None:
        await close_db(engine)


def create_app(configuration_service: Optional[ConfigurationService] = None) -> FastAPI:
    """Create the FastAPI application."""
    app = FastAPI(
        title=settings.app.app_name,
        version=settings.app.app_version,
        description="Authentication configuration API",
        lifespan=lifespan,
    )
    app.state.configuration_service = configuration_service

    # ============================================================================
    # Middleware
    # ============================================================================

    @app.middleware("http")
    async def log_requests(request, call_next):
        """Log all requests and add request ID."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        start_time = time.time()
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        logger.info(
            "Request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round((time.time() - start_time) * 1000, 2),
            request_id=request_id,
        )
        return response

    # ============================================================================
    # Exception Handlers
    # ============================================================================

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request, exc: StarletteHTTPException):
        """Handle HTTP exceptions."""
        if isinstance(exc.detail, dict):
            message = exc.detail.get("message")
            details = exc.detail.get("errors", [])
        else:
            message = exc.detail
            details = []

        return JSONResponse(
            status_code=exc.status_code,
            content={
                "success": False,
                "error": {
                    "code": exc.status_code,
                    "message": message,
                    "details": details,
                },
                "meta": {
                    "request_id": getattr(request.state, "request_id", None),
                },
            },
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request, exc: RequestValidationError):
        """Handle request validation errors."""
        error = request_field_errors(exc)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "success": False,
                "error": {
                    "code": status.HTTP_400_BAD_REQUEST,
                    "message": error.title,
                    "details": [str(e) for e in error.errors],
                },
                "meta": {
                    "request_id": getattr(request.state, "request_id", None),
                },
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request, exc: Exception):
        """Handle general exceptions."""
        logger.error(
            "Unhandled exception",
            path=request.url.path,
            error=str(exc),
            exc_info=exc,
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "error": {
                    "code": status.HTTP_500_INTERNAL_SERVER_ERROR,
                    "message": "An internal error occurred" if not settings.app.app_debug else str(exc),
                    "details": [],
                },
                "meta": {
                    "request_id": getattr(request.state, "request_id", None),
                },
            },
        )

    # ============================================================================
    # Routes
    # ============================================================================

    app.include_router(authentication_router, prefix="/api/v1")
    return app


app = create_app()
