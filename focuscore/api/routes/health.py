"""
Health check endpoints.

Provides system health information for monitoring.
"""

from fastapi import APIRouter, HTTPException
import structlog

from focuscore import __version__
from focuscore.api.dependencies import EngineDep
from focuscore.core.config import settings

log = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(engine: EngineDep):
    """
    Health check endpoint.

    Returns:
        System health status including record store connectivity.
    """
    store_health = await engine.health()

    overall_status = "healthy" if store_health["status"] == "healthy" else "unhealthy"

    return {
        "status": overall_status,
        "version": __version__,
        "debug": settings.debug,
        "components": {
            "store": store_health,
            "notifications": {"state": engine.notifier.state.value},
        },
    }


@router.get("/health/live")
async def liveness():
    """
    Kubernetes-style liveness probe.

    Returns 200 if the application is running.
    """
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness(engine: EngineDep):
    """
    Kubernetes-style readiness probe.

    Returns 200 if the application is ready to serve requests.
    """
    store_health = await engine.health()

    if store_health["status"] != "healthy":
        log.warning("readiness_failed", error=store_health.get("error"))
        raise HTTPException(status_code=503, detail="Record store not ready")

    return {"status": "ready"}
