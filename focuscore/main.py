"""
FastAPI application entry point.

Run with: uvicorn focuscore.main:app --reload
"""

from contextlib import asynccontextmanager
import uuid

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from focuscore import __version__
from focuscore.core.config import settings
from focuscore.core.logging import configure_logging, log_context
from focuscore.engine import FocusEngine
from focuscore.api.routes import health, metrics, notifications, sessions
from focuscore.api.exception_handlers import setup_exception_handlers

# Configure logging before anything else
configure_logging()
log = structlog.get_logger(__name__)


# =============================================================================
# Correlation ID Middleware
# =============================================================================


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """
    Middleware that adds a unique correlation ID to each request.

    - Generates a UUID4 request_id for each incoming request
    - Binds it (and the X-User-Id header, when present) to structlog context
    - Adds X-Request-ID header to responses
    """

    async def dispatch(self, request: Request, call_next):
        """Process request and add correlation ID."""
        request_id = str(uuid.uuid4())

        with log_context(request_id=request_id, user_id=request.headers.get("x-user-id")):
            response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Builds the engine (and its backend) on startup and releases the
    achievement subscription and backend on shutdown.
    """
    log.info(
        "application_starting",
        debug=settings.debug,
        backend=settings.backend,
        database_path=str(settings.database_path),
    )

    engine = await FocusEngine.from_settings(settings)
    app.state.engine = engine

    log.info("application_started")

    try:
        yield
    finally:
        log.info("application_shutting_down")
        await engine.close()


# Create FastAPI application
app = FastAPI(
    title="Focus Core",
    description="Focus session and engagement tracking engine",
    version=__version__,
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS middleware for development
if settings.debug:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.add_middleware(CorrelationIDMiddleware)

setup_exception_handlers(app)

app.include_router(health.router, tags=["system"])
app.include_router(sessions.router)
app.include_router(metrics.router)
app.include_router(notifications.router)


@app.get("/")
async def root():
    """Root endpoint with basic info."""
    return {"name": "Focus Core", "version": __version__, "status": "running"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "focuscore.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
