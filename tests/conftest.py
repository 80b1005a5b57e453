"""
Shared test fixtures.

Persistence-backed fixtures run against a temporary SQLite database with
an in-process change feed, the same wiring the sqlite backend uses.
"""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from focuscore.core.config import (
    EngineConfig,
    MetricsConfig,
    NotificationConfig,
    SessionConfig,
    ToolUsageConfig,
)
from focuscore.persistence.change_feed import LocalChangeFeed
from focuscore.persistence.database import SqliteRecordStore, init_database
from focuscore.persistence.repositories import (
    EnergyMetricRepository,
    SessionRepository,
    ToolUsageRepository,
)
from focuscore.persistence.store import BackendClient

T0 = datetime(2025, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock returning both wall and monotonic readings."""

    def __init__(self, now: datetime = T0, monotonic: float = 1000.0):
        self.now = now
        self.monotonic = monotonic

    def __call__(self) -> datetime:
        return self.now

    def tick(self) -> float:
        return self.monotonic

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)
        self.monotonic += seconds


class RecordingSleep:
    """asyncio.sleep stand-in that records requested delays."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
async def db_path():
    """Create and initialize a temporary database."""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "test.db"
        await init_database(path)
        yield path


@pytest.fixture
def feed():
    return LocalChangeFeed()


@pytest.fixture
def store(db_path, feed):
    return SqliteRecordStore(db_path, feed=feed)


@pytest.fixture
def backend(store, feed):
    return BackendClient(store=store, feed=feed)


@pytest.fixture
def session_repo(store):
    return SessionRepository(store)


@pytest.fixture
def metric_repo(store):
    return EnergyMetricRepository(store)


@pytest.fixture
def tool_usage_repo(store):
    return ToolUsageRepository(store)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def engine_config():
    """Engine configuration with defaults and fast reconnects."""
    return EngineConfig(
        session=SessionConfig(),
        tool_usage=ToolUsageConfig(min_duration_seconds=5),
        notifications=NotificationConfig(
            reconnect_base_delay_seconds=1.0,
            reconnect_max_delay_seconds=4.0,
            reconnect_max_attempts=3,
            dedup_window=100,
        ),
        metrics=MetricsConfig(cache_max_entries=32),
    )
