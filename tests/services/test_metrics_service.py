"""Tests for the metrics aggregation engine and its cache."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from focuscore.core.config import MetricsConfig, SessionConfig
from focuscore.core.exceptions import PersistenceError, ValidationError
from focuscore.domain.models.metrics import EnergyMetricCreate, TimeRange
from focuscore.domain.models.session import SessionMode
from focuscore.engine import FocusEngine
from focuscore.services.metrics_cache import CacheKey, MetricsCache
from focuscore.services.metrics_service import MetricsService
from focuscore.services.session_service import SessionStateMachine


def _payload(physical=5, mental=6, emotional=7, sleep=None, recorded_at=None):
    return EnergyMetricCreate(
        physical_energy=physical,
        mental_energy=mental,
        emotional_energy=emotional,
        sleep_quality=sleep,
        recorded_at=recorded_at,
    )


@pytest.fixture
def service(metric_repo, session_repo):
    return MetricsService(
        metric_repo,
        session_repo,
        cache=MetricsCache(max_entries=32),
        config=MetricsConfig(),
    )


class TestMetricsCache:
    def test_keys_distinguish_views_and_ranges(self, clock):
        cache = MetricsCache()
        window = TimeRange(clock.now, clock.now + timedelta(days=1))
        cache.put(CacheKey("u1"), "all")
        cache.put(CacheKey("u1", window), "day")
        cache.put(CacheKey("u1", window, view="energy_summary"), "summary")

        assert cache.get(CacheKey("u1")) == "all"
        assert cache.get(CacheKey("u1", window)) == "day"
        assert cache.get(CacheKey("u1", window, view="energy_summary")) == "summary"

    def test_equal_ranges_share_a_key(self, clock):
        cache = MetricsCache()
        cache.put(CacheKey("u1", TimeRange(clock.now, clock.now + timedelta(hours=1))), 1)

        same = CacheKey("u1", TimeRange(clock.now, clock.now + timedelta(hours=1)))
        assert cache.get(same) == 1

    def test_invalidate_single_key(self):
        cache = MetricsCache()
        cache.put(CacheKey("u1"), 1)

        assert cache.invalidate(CacheKey("u1")) is True
        assert cache.invalidate(CacheKey("u1")) is False
        assert cache.get(CacheKey("u1")) is None

    def test_invalidate_user_keeps_other_users(self):
        cache = MetricsCache()
        cache.put(CacheKey("u1"), 1)
        cache.put(CacheKey("u1", view="session_stats"), 2)
        cache.put(CacheKey("u2"), 3)

        assert cache.invalidate_user("u1") == 2
        assert len(cache) == 1
        assert CacheKey("u2") in cache

    def test_evicts_least_recently_used(self):
        cache = MetricsCache(max_entries=2)
        cache.put(CacheKey("a"), 1)
        cache.put(CacheKey("b"), 2)
        cache.get(CacheKey("a"))
        cache.put(CacheKey("c"), 3)

        assert CacheKey("a") in cache
        assert CacheKey("b") not in cache
        assert CacheKey("c") in cache

    def test_put_skipped_after_invalidation(self):
        cache = MetricsCache()
        generation = cache.generation("u1")
        cache.invalidate_user("u1")

        assert cache.put(CacheKey("u1"), "stale", generation=generation) is False
        assert CacheKey("u1") not in cache
        assert cache.put(CacheKey("u1"), "fresh", generation=cache.generation("u1")) is True

    def test_other_users_keep_generation(self):
        cache = MetricsCache()
        generation = cache.generation("u2")
        cache.invalidate_user("u1")

        assert cache.put(CacheKey("u2"), 1, generation=generation) is True

    def test_clear_advances_every_generation(self):
        cache = MetricsCache()
        generation = cache.generation("u1")
        cache.clear()

        assert cache.generation("u1") != generation


class TestGetMetrics:
    async def test_unknown_user_returns_empty(self, service):
        assert await service.get_metrics("nobody") == []

    @pytest.mark.parametrize("user_id", [None, ""])
    async def test_unresolved_user_returns_empty(self, service, user_id):
        assert await service.get_metrics(user_id) == []

    async def test_reads_are_cached(self, service, metric_repo):
        await service.create_metric("user-1", _payload())
        metric_repo.list_for_user = AsyncMock(wraps=metric_repo.list_for_user)

        first = await service.get_metrics("user-1")
        second = await service.get_metrics("user-1")

        assert len(first) == len(second) == 1
        assert metric_repo.list_for_user.await_count == 1

    async def test_create_invalidates_cached_view(self, service, clock):
        window = TimeRange(clock.now - timedelta(hours=1), clock.now + timedelta(hours=1))
        await service.create_metric("user-1", _payload(recorded_at=clock.now))
        assert len(await service.get_metrics("user-1", window)) == 1

        await service.create_metric(
            "user-1", _payload(recorded_at=clock.now + timedelta(minutes=5))
        )

        assert len(await service.get_metrics("user-1", window)) == 2

    async def test_time_range_is_half_open(self, service, clock):
        await service.create_metric("user-1", _payload(recorded_at=clock.now))
        await service.create_metric(
            "user-1", _payload(recorded_at=clock.now + timedelta(hours=1))
        )

        window = TimeRange(clock.now, clock.now + timedelta(hours=1))
        metrics = await service.get_metrics("user-1", window)

        assert [m.recorded_at for m in metrics] == [clock.now]

    async def test_failed_create_leaves_cache(self, metric_repo, session_repo):
        service = MetricsService(metric_repo, session_repo, cache=MetricsCache())
        service.cache.put(CacheKey("user-1"), ("cached",))
        metric_repo.create = AsyncMock(side_effect=PersistenceError("insert failed"))

        with pytest.raises(PersistenceError):
            await service.create_metric("user-1", _payload())

        assert CacheKey("user-1") in service.cache
        assert service.is_updating is False

    async def test_progress_flags(self, service, metric_repo):
        gate = asyncio.Event()
        original = metric_repo.list_for_user

        async def slow_list(*args, **kwargs):
            await gate.wait()
            return await original(*args, **kwargs)

        metric_repo.list_for_user = slow_list
        task = asyncio.create_task(service.get_metrics("user-1"))
        await asyncio.sleep(0)

        assert service.is_loading is True
        gate.set()
        await task
        assert service.is_loading is False


class TestAggregates:
    async def test_energy_summary(self, service):
        await service.create_metric("user-1", _payload(physical=4, mental=6, emotional=8, sleep=7))
        await service.create_metric("user-1", _payload(physical=6, mental=8, emotional=6))

        summary = await service.summarize_energy("user-1")

        assert summary.count == 2
        assert summary.average_physical == 5.0
        assert summary.average_mental == 7.0
        assert summary.average_emotional == 7.0
        assert summary.average_sleep_quality == 7.0

    async def test_energy_summary_for_empty_user(self, service):
        summary = await service.summarize_energy("nobody")

        assert summary.count == 0
        assert summary.average_physical is None

    async def test_session_stats(self, service, session_repo, clock):
        machine = SessionStateMachine(session_repo, config=SessionConfig(), clock=clock)
        focus = await machine.start("user-1", SessionMode.FOCUS)
        await machine.complete(focus.id, clock.now + timedelta(seconds=1500), focus_quality_rating=4)
        rest = await machine.start("user-1", SessionMode.SHORT_BREAK)
        await machine.complete(rest.id, clock.now + timedelta(seconds=300))
        dropped = await machine.start("user-1", SessionMode.FOCUS)
        await machine.cancel(dropped.id, clock.now + timedelta(seconds=60))
        await machine.start("user-1", SessionMode.FOCUS)

        stats = await service.get_session_stats("user-1")

        assert stats.total_sessions == 4
        assert stats.completed_sessions == 2
        assert stats.cancelled_sessions == 1
        assert stats.active_sessions == 1
        assert stats.total_focus_seconds == 1500
        assert stats.average_duration_seconds == 900.0
        assert stats.average_focus_quality == 4.0

    async def test_invalidate_user_refreshes_stats(self, service, session_repo, clock):
        machine = SessionStateMachine(session_repo, config=SessionConfig(), clock=clock)
        assert (await service.get_session_stats("user-1")).total_sessions == 0

        await machine.start("user-1", SessionMode.FOCUS)
        assert (await service.get_session_stats("user-1")).total_sessions == 0

        service.invalidate_user("user-1")
        assert (await service.get_session_stats("user-1")).total_sessions == 1

    def test_malformed_range_rejected(self, clock):
        with pytest.raises(ValidationError):
            TimeRange(clock.now, clock.now)


def _hold_after(repo, name):
    """Let the repo call finish its select, then park until released."""
    original = getattr(repo, name)
    loaded = asyncio.Event()
    release = asyncio.Event()

    async def held(*args, **kwargs):
        rows = await original(*args, **kwargs)
        loaded.set()
        await release.wait()
        return rows

    setattr(repo, name, held)
    return loaded, release, original


class TestConcurrentInvalidation:
    async def test_read_spanning_create_is_not_cached(self, service, metric_repo):
        loaded, release, original = _hold_after(metric_repo, "list_for_user")

        reader = asyncio.create_task(service.get_metrics("user-1"))
        await loaded.wait()
        metric_repo.list_for_user = original
        await service.create_metric("user-1", _payload())
        release.set()

        assert await reader == []
        assert len(await service.get_metrics("user-1")) == 1

    async def test_summary_spanning_create_is_not_cached(self, service, metric_repo):
        loaded, release, original = _hold_after(metric_repo, "list_for_user")

        reader = asyncio.create_task(service.summarize_energy("user-1"))
        await loaded.wait()
        metric_repo.list_for_user = original
        await service.create_metric("user-1", _payload(mental=9))
        release.set()

        assert (await reader).count == 0
        assert (await service.summarize_energy("user-1")).average_mental == 9.0

    async def test_stats_spanning_transition_is_not_cached(self, backend, engine_config, clock):
        engine = FocusEngine(backend, config=engine_config)
        engine.sessions._clock = clock
        try:
            started = await engine.start_session("user-1", SessionMode.FOCUS)
            loaded, release, original = _hold_after(engine.session_repo, "list_in_range")

            reader = asyncio.create_task(engine.get_session_stats("user-1"))
            await loaded.wait()
            engine.session_repo.list_in_range = original
            completed = await engine.complete_session(
                started.value.id, clock.now + timedelta(seconds=1500), 4
            )
            assert completed.ok
            release.set()

            assert (await reader).value.active_sessions == 1
            stats = await engine.get_session_stats("user-1")
            assert stats.value.active_sessions == 0
            assert stats.value.completed_sessions == 1
        finally:
            await engine.close()
