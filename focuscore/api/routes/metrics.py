"""
Metrics API routes.

Energy metric capture and aggregated views for the current user.
"""

from fastapi import APIRouter, status
import structlog

from focuscore.api.dependencies import (
    CurrentUserDep,
    EngineDep,
    RequiredUserDep,
    TimeRangeDep,
    unwrap,
)
from focuscore.api.schemas import MetricListResponse
from focuscore.domain.models.metrics import (
    EnergyMetric,
    EnergyMetricCreate,
    EnergySummary,
    SessionStats,
)

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/metrics", tags=["metrics"])


@router.get("/energy", response_model=MetricListResponse)
async def list_energy_metrics(
    engine: EngineDep,
    user_id: CurrentUserDep,
    time_range: TimeRangeDep,
):
    """Energy metrics for the current user, optionally within [start, end)."""
    metrics = unwrap(await engine.get_metrics(user_id, time_range))
    return MetricListResponse(metrics=metrics, total=len(metrics))


@router.post(
    "/energy",
    response_model=EnergyMetric,
    status_code=status.HTTP_201_CREATED,
)
async def create_energy_metric(
    request: EnergyMetricCreate,
    engine: EngineDep,
    user_id: RequiredUserDep,
):
    """Record a new energy metric."""
    return unwrap(await engine.create_metric(user_id, request))


@router.get("/energy/summary", response_model=EnergySummary)
async def energy_summary(
    engine: EngineDep,
    user_id: CurrentUserDep,
    time_range: TimeRangeDep,
):
    """Average energy scores over the range."""
    return unwrap(await engine.summarize_energy(user_id, time_range))


@router.get("/sessions", response_model=SessionStats)
async def session_stats(
    engine: EngineDep,
    user_id: CurrentUserDep,
    time_range: TimeRangeDep,
):
    """Session counts, focus time and average focus quality over the range."""
    return unwrap(await engine.get_session_stats(user_id, time_range))


@router.get("/status")
async def metrics_status(engine: EngineDep):
    """Progress flags for UI binding."""
    return {"is_loading": engine.is_loading, "is_updating": engine.is_updating}
