"""
Global exception handlers for FastAPI.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

import structlog

from focuscore.core.exceptions import (
    FocusCoreError,
    ConfigurationError,
    InvalidTransitionError,
    PersistenceError,
    SessionNotFoundError,
    SubscriptionError,
    ValidationError,
)

log = structlog.get_logger(__name__)


def setup_exception_handlers(app: FastAPI):
    """Register custom exception handlers with the FastAPI application.

    Sets up handlers for all FocusCoreError subclasses with appropriate
    HTTP status codes, plus handlers for configuration errors and generic exceptions.
    """

    @app.exception_handler(FocusCoreError)
    async def focus_core_error_handler(
        request: Request,
        exc: FocusCoreError,
    ) -> JSONResponse:
        """Handle FocusCoreError exceptions with appropriate HTTP status codes.

        Maps specific error types to HTTP status codes (404 for not found,
        400 for validation, 409 for a rejected transition, 503 when the
        store is unavailable) and returns consistent error response format.
        """
        log_ctx = log.bind(
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
        )

        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        content = {
            "error": {
                "type": type(exc).__name__,
                "message": exc.message,
            }
        }

        if isinstance(exc, SessionNotFoundError):
            status_code = status.HTTP_404_NOT_FOUND
        elif isinstance(exc, ValidationError):
            status_code = status.HTTP_400_BAD_REQUEST
        elif isinstance(exc, InvalidTransitionError):
            status_code = status.HTTP_409_CONFLICT
            content["error"]["current_status"] = exc.current_status
        elif isinstance(exc, (PersistenceError, SubscriptionError)):
            status_code = status.HTTP_503_SERVICE_UNAVAILABLE

        log_ctx.warning(
            "request_error",
            message=exc.message,
            status_code=status_code,
        )

        return JSONResponse(status_code=status_code, content=content)

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(
        request: Request,
        exc: ConfigurationError,
    ) -> JSONResponse:
        """Handle configuration errors with HTTP 500 status."""
        log.error(
            "configuration_error",
            path=request.url.path,
            message=exc.message,
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": {
                    "type": "ConfigurationError",
                    "message": "Server configuration error",
                }
            },
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Handle all unhandled exceptions with HTTP 500 status.

        Catches any exception not handled by specific handlers, logs the error
        with full context, and returns a generic 500 Internal Server Error response.
        """
        log_ctx = log.bind(
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
        )

        log_ctx.error(
            "unhandled_exception",
            message=str(exc),
            exc_info=exc,
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": {
                    "type": "InternalServerError",
                    "message": "An unexpected error occurred",
                }
            },
        )
