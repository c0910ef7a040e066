"""
Main FastAPI application.
"""
import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from examhall.api.v1.api import api_router
from examhall.core.analytics import AnalyticsTracker
from examhall.core.config import settings
from examhall.core.error_responses import ErrorMessages
from examhall.core.error_tracking import capture_exception, init_sentry
from examhall.core.exceptions import AttemptError, StoreUnavailable, ValidationError
from examhall.core.graceful_failure import graceful_failure
from examhall.core.logging_config import setup_logging
from examhall.core.security import decode_token
from examhall.middleware import RequestLoggingMiddleware

# Initialize logging configuration at startup
setup_logging()

logger = logging.getLogger(__name__)


def _student_id_from_request(request: Request) -> str | None:
    """Best-effort caller id for error tracking; None when unauthenticated."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    payload = decode_token(auth_header[7:])
    return str(payload["user_id"]) if payload and payload.get("user_id") else None


def _track_error(request: Request, kind: str, message: str) -> None:
    with graceful_failure("track API error", logger):
        AnalyticsTracker.track_api_error(
            method=request.method,
            path=str(request.url.path),
            error_kind=kind,
            error_message=message,
            student_id=_student_id_from_request(request),
        )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan event handler.

    Initializes error tracking on startup.
    """
    init_sentry()
    logger.info(f"{settings.APP_NAME} {settings.APP_VERSION} starting (env={settings.ENV})")

    yield

    logger.info("Application shutting down")


# OpenAPI tags metadata
tags_metadata = [
    {
        "name": "health",
        "description": "Health check endpoints for monitoring application status",
    },
    {
        "name": "attempts",
        "description": "Start, answer, navigate, submit and review timed test attempts",
    },
    {
        "name": "results",
        "description": "Scores and statistics over completed attempts",
    },
]


def create_application() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        lifespan=lifespan,
        description=(
            "**Exam Hall API** - timed test attempts for enrolled students.\n\n"
            "This API provides:\n"
            "* Starting or resuming a timed attempt at a test\n"
            "* Saving answers while the attempt is open\n"
            "* Exactly-once scoring on submit or expiry\n"
            "* Results and per-test statistics\n\n"
            "## Authentication\n\n"
            "All attempt endpoints require a student JWT Bearer token issued by "
            "the authentication service."
        ),
        docs_url=f"{settings.API_V1_PREFIX}/docs",
        redoc_url=f"{settings.API_V1_PREFIX}/redoc",
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
        openapi_tags=tags_metadata,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )

    # Configure Request Logging
    app.add_middleware(RequestLoggingMiddleware)

    # Include API router
    app.include_router(api_router, prefix=settings.API_V1_PREFIX)

    @app.exception_handler(AttemptError)
    async def attempt_error_handler(request: Request, exc: AttemptError):
        """
        Map domain errors to their HTTP status with a stable ``kind``.
        """
        _track_error(request, exc.kind, exc.detail)

        if isinstance(exc, StoreUnavailable):
            capture_exception(
                exc.__cause__ or exc,
                context={"path": str(request.url.path), "method": request.method},
            )

        headers = None
        if exc.status_code == status.HTTP_401_UNAUTHORIZED:
            headers = {"WWW-Authenticate": "Bearer"}

        return JSONResponse(
            status_code=exc.status_code, content=exc.to_dict(), headers=headers
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        """
        Handle request validation errors.
        """
        errors = [
            {
                "loc": list(error.get("loc", [])),
                "msg": str(error.get("msg", "")),
                "type": str(error.get("type", "")),
            }
            for error in exc.errors()
        ]

        _track_error(request, ValidationError.kind, str(errors))

        return JSONResponse(
            status_code=ValidationError.status_code,
            content={"detail": errors, "kind": ValidationError.kind},
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """
        Handle unexpected exceptions and track them.

        Generates a unique error_id (UUID) for each exception to enable
        support teams to trace specific errors in logs. The error_id is
        included in the response body and logged with the full exception.
        """
        error_id = str(uuid.uuid4())

        logger.exception(
            f"Unhandled exception [error_id={error_id}]: {exc}",
            extra={"error_id": error_id},
        )

        _track_error(request, exc.__class__.__name__, str(exc))
        capture_exception(
            exc,
            context={
                "path": str(request.url.path),
                "method": request.method,
                "error_id": error_id,
            },
        )

        # Return error response with tracking ID (don't leak internal details)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": ErrorMessages.INTERNAL_ERROR,
                "kind": "InternalError",
                "error_id": error_id,
            },
        )

    return app


app = create_application()


@app.get("/")
async def root():
    """
    Root endpoint.
    """
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": f"{settings.API_V1_PREFIX}/docs",
    }
