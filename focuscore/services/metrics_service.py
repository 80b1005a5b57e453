"""
Metrics aggregation engine.

Turns raw energy-metric rows and completed sessions into time-ranged
views for display. Reads are pulled on demand through a MetricsCache;
writes invalidate every cached view of the writing user once the row
is persisted (and never otherwise).

Progress flags ``is_loading`` / ``is_updating`` are exposed for UI
binding and stay true while any read / write is in flight.
"""

from contextlib import contextmanager
from statistics import fmean
from typing import Iterator, List, Optional

import structlog

from focuscore.core.config import MetricsConfig, engine_config
from focuscore.domain.models.metrics import (
    EnergyMetric,
    EnergyMetricCreate,
    EnergySummary,
    SessionStats,
    TimeRange,
)
from focuscore.domain.models.session import SessionMode, SessionStatus
from focuscore.persistence.repositories.metric_repo import EnergyMetricRepository
from focuscore.persistence.repositories.session_repo import SessionRepository
from focuscore.services.metrics_cache import CacheKey, MetricsCache

log = structlog.get_logger(__name__)

VIEW_METRICS = "metrics"
VIEW_ENERGY_SUMMARY = "energy_summary"
VIEW_SESSION_STATS = "session_stats"


def _mean(values: List[float]) -> Optional[float]:
    return round(fmean(values), 2) if values else None


class MetricsService:
    """Read-through aggregation over energy metrics and sessions."""

    def __init__(
        self,
        metric_repo: EnergyMetricRepository,
        session_repo: SessionRepository,
        cache: Optional[MetricsCache] = None,
        config: Optional[MetricsConfig] = None,
    ):
        self.metric_repo = metric_repo
        self.session_repo = session_repo
        config = config or engine_config.metrics
        self.cache = cache or MetricsCache(max_entries=config.cache_max_entries)
        self._loading = 0
        self._updating = 0

    @property
    def is_loading(self) -> bool:
        return self._loading > 0

    @property
    def is_updating(self) -> bool:
        return self._updating > 0

    @contextmanager
    def _reading(self) -> Iterator[None]:
        self._loading += 1
        try:
            yield
        finally:
            self._loading -= 1

    @contextmanager
    def _writing(self) -> Iterator[None]:
        self._updating += 1
        try:
            yield
        finally:
            self._updating -= 1

    # ------------------------------------------------------------------
    # Raw metrics
    # ------------------------------------------------------------------

    async def get_metrics(
        self, user_id: Optional[str], time_range: Optional[TimeRange] = None
    ) -> List[EnergyMetric]:
        """
        Energy metrics for a user, oldest first.

        Returns an empty list when the user has no rows or is not yet
        resolved; never a missing-user error.
        """
        if not user_id:
            return []

        key = CacheKey(user_id=user_id, time_range=time_range, view=VIEW_METRICS)
        cached = self.cache.get(key)
        if cached is not None:
            return list(cached)

        generation = self.cache.generation(user_id)
        with self._reading():
            metrics = await self.metric_repo.list_for_user(user_id, time_range)
        self.cache.put(key, tuple(metrics), generation=generation)
        log.debug("metrics_loaded", user_id=user_id, count=len(metrics))
        return metrics

    async def create_metric(self, user_id: str, payload: EnergyMetricCreate) -> EnergyMetric:
        """
        Append a metric row, then invalidate the user's cached views.

        If the insert raises, the cache is left untouched.
        """
        with self._writing():
            metric = await self.metric_repo.create(user_id, payload)
        dropped = self.cache.invalidate_user(user_id)
        log.info(
            "metric_created",
            user_id=user_id,
            metric_id=metric.id,
            cache_entries_dropped=dropped,
        )
        return metric

    def invalidate_user(self, user_id: str) -> int:
        """Drop cached views for a user (e.g. after a session terminal transition)."""
        return self.cache.invalidate_user(user_id)

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    async def summarize_energy(
        self, user_id: Optional[str], time_range: Optional[TimeRange] = None
    ) -> EnergySummary:
        if not user_id:
            return EnergySummary(user_id="")

        key = CacheKey(user_id=user_id, time_range=time_range, view=VIEW_ENERGY_SUMMARY)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        generation = self.cache.generation(user_id)
        metrics = await self.get_metrics(user_id, time_range)
        summary = EnergySummary(
            user_id=user_id,
            count=len(metrics),
            average_physical=_mean([m.physical_energy for m in metrics]),
            average_mental=_mean([m.mental_energy for m in metrics]),
            average_emotional=_mean([m.emotional_energy for m in metrics]),
            average_sleep_quality=_mean(
                [m.sleep_quality for m in metrics if m.sleep_quality is not None]
            ),
        )
        self.cache.put(key, summary, generation=generation)
        return summary

    async def get_session_stats(
        self, user_id: Optional[str], time_range: Optional[TimeRange] = None
    ) -> SessionStats:
        """
        Session statistics over sessions started within the range.

        Durations and focus quality are taken from completed sessions
        only; the result does not depend on row arrival order.
        """
        if not user_id:
            return SessionStats(user_id="")

        key = CacheKey(user_id=user_id, time_range=time_range, view=VIEW_SESSION_STATS)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        generation = self.cache.generation(user_id)
        with self._reading():
            sessions = await self.session_repo.list_in_range(user_id, time_range)

        by_status = {status: 0 for status in SessionStatus}
        for session in sessions:
            by_status[session.status] += 1

        completed = [
            s
            for s in sessions
            if s.status is SessionStatus.COMPLETED and s.duration_seconds is not None
        ]
        durations = [s.duration_seconds for s in completed]
        focus_seconds = sum(
            s.duration_seconds for s in completed if s.initial_mode is SessionMode.FOCUS
        )
        ratings = [
            s.focus_quality_rating for s in completed if s.focus_quality_rating is not None
        ]

        stats = SessionStats(
            user_id=user_id,
            total_sessions=len(sessions),
            active_sessions=by_status[SessionStatus.ACTIVE],
            completed_sessions=by_status[SessionStatus.COMPLETED],
            cancelled_sessions=by_status[SessionStatus.CANCELLED],
            skipped_sessions=by_status[SessionStatus.SKIPPED],
            total_focus_seconds=focus_seconds,
            average_duration_seconds=_mean(durations) or 0.0,
            average_focus_quality=_mean(ratings),
        )
        self.cache.put(key, stats, generation=generation)
        return stats
