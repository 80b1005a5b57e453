"""
Change feed implementations.

- LocalChangeFeed: in-process fan-out of inserts made through a local
  record store (SQLite backend).
- PollingChangeFeed: turns periodic range queries against any
  RecordStore into insert events (hosted REST backend).

Both deliver to listener callbacks synchronously; a listener that
raises is logged and skipped so one bad consumer cannot stall the feed.
"""

import asyncio
import itertools
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

import structlog

from focuscore.core.exceptions import SubscriptionError
from focuscore.domain.models.session import ensure_utc
from focuscore.persistence.store import (
    ErrorCallback,
    InsertCallback,
    Query,
    RecordStore,
    Row,
)

log = structlog.get_logger(__name__)


def _matches(row: Row, filters: Row) -> bool:
    return all(row.get(column) == value for column, value in filters.items())


# =============================================================================
# In-process feed
# =============================================================================


@dataclass
class _Listener:
    relation: str
    filters: Row
    on_insert: InsertCallback
    on_error: Optional[ErrorCallback]


class LocalSubscription:
    """Subscription handle returned by LocalChangeFeed."""

    def __init__(self, feed: "LocalChangeFeed", listener_id: int):
        self._feed = feed
        self.listener_id = listener_id

    @property
    def active(self) -> bool:
        return self.listener_id in self._feed._listeners

    async def unsubscribe(self) -> None:
        self._feed._listeners.pop(self.listener_id, None)


class LocalChangeFeed:
    """Fan-out of locally published inserts to filtered listeners."""

    def __init__(self):
        self._listeners: Dict[int, _Listener] = {}
        self._ids = itertools.count(1)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def subscribe(
        self,
        relation: str,
        filters: Row,
        on_insert: InsertCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> LocalSubscription:
        listener_id = next(self._ids)
        self._listeners[listener_id] = _Listener(
            relation=relation,
            filters=dict(filters),
            on_insert=on_insert,
            on_error=on_error,
        )
        log.debug(
            "feed_listener_added",
            relation=relation,
            listener_id=listener_id,
            filters=filters,
        )
        return LocalSubscription(self, listener_id)

    def publish(self, relation: str, row: Row) -> int:
        """Deliver an insert to matching listeners. Returns delivery count."""
        delivered = 0
        for listener_id, listener in list(self._listeners.items()):
            if listener.relation != relation or not _matches(row, listener.filters):
                continue
            try:
                listener.on_insert(dict(row))
                delivered += 1
            except Exception as e:
                log.error(
                    "feed_listener_failed",
                    relation=relation,
                    listener_id=listener_id,
                    error=str(e),
                )
        return delivered

    def disconnect(self, relation: str, error: Optional[Exception] = None) -> None:
        """Drop every listener on ``relation`` and report the disconnect."""
        error = error or SubscriptionError(f"Change feed for {relation} disconnected")
        for listener_id, listener in list(self._listeners.items()):
            if listener.relation != relation:
                continue
            del self._listeners[listener_id]
            log.warning("feed_listener_disconnected", relation=relation, listener_id=listener_id)
            if listener.on_error is not None:
                listener.on_error(error)


# =============================================================================
# Polling feed
# =============================================================================


def _parse_timestamp(value) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    return ensure_utc(datetime.fromisoformat(str(value)))


class PollingSubscription:
    """Background poller delivering rows newer than the last seen one."""

    def __init__(
        self,
        store: RecordStore,
        relation: str,
        filters: Row,
        on_insert: InsertCallback,
        on_error: Optional[ErrorCallback],
        interval_seconds: float,
        time_column: str,
        since: datetime,
        sleep: Callable[[float], object],
        seen_limit: int = 1000,
    ):
        self._store = store
        self._relation = relation
        self._filters = dict(filters)
        self._on_insert = on_insert
        self._on_error = on_error
        self._interval = interval_seconds
        self._time_column = time_column
        self._since = since
        self._sleep = sleep
        self._seen: "OrderedDict[str, None]" = OrderedDict()
        self._seen_limit = seen_limit
        self._task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        self._task = asyncio.create_task(self._run())

    async def poll_once(self) -> int:
        """Run one poll and deliver new rows. Returns delivery count."""
        rows = await self._store.select(
            Query(
                relation=self._relation,
                equals=self._filters,
                range_column=self._time_column,
                range_start=self._since,
                order_by=self._time_column,
            )
        )
        delivered = 0
        for row in rows:
            key = str(row.get("id") or row)
            if key in self._seen:
                continue
            self._seen[key] = None
            if len(self._seen) > self._seen_limit:
                self._seen.popitem(last=False)

            stamp = _parse_timestamp(row.get(self._time_column))
            if stamp is not None and stamp > self._since:
                self._since = stamp

            try:
                self._on_insert(dict(row))
                delivered += 1
            except Exception as e:
                log.error("feed_listener_failed", relation=self._relation, error=str(e))
        return delivered

    async def _run(self) -> None:
        try:
            while True:
                await self._sleep(self._interval)
                await self.poll_once()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.warning(
                "feed_poll_failed",
                relation=self._relation,
                error=str(e),
                error_type=type(e).__name__,
            )
            if self._on_error is not None:
                self._on_error(
                    SubscriptionError(f"Polling feed for {self._relation} failed: {e}")
                )

    async def unsubscribe(self) -> None:
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


class PollingChangeFeed:
    """ChangeFeed built from periodic range queries on a RecordStore."""

    def __init__(
        self,
        store: RecordStore,
        interval_seconds: float = 5.0,
        time_column: str = "created_at",
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        sleep: Callable[[float], object] = asyncio.sleep,
    ):
        self.store = store
        self.interval_seconds = interval_seconds
        self.time_column = time_column
        self._clock = clock
        self._sleep = sleep

    async def subscribe(
        self,
        relation: str,
        filters: Row,
        on_insert: InsertCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> PollingSubscription:
        subscription = PollingSubscription(
            store=self.store,
            relation=relation,
            filters=filters,
            on_insert=on_insert,
            on_error=on_error,
            interval_seconds=self.interval_seconds,
            time_column=self.time_column,
            since=ensure_utc(self._clock()),
            sleep=self._sleep,
        )
        subscription.start()
        log.debug("feed_poller_started", relation=relation, filters=filters)
        return subscription
