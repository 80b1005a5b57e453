"""
Achievement notification trigger.

Listens for server-computed inserts on the achievement_progress relation
for the current user and turns each into exactly one notification.

States:
    unsubscribed ──attach(user)──▶ subscribed
    subscribed   ──detach()──────▶ unsubscribed

The feed callback only enqueues rows; a consumer task turns them into
notifications in arrival order. Each attach gets a fresh generation
token, so callbacks from a released listener, and handles from a
previous attach, are ignored.

When the feed reports a disconnect, the dead listener is released and a
new one is opened with exponential backoff. After the configured number
of attempts the notifier gives up and returns to unsubscribed.
"""

import asyncio
import inspect
import itertools
from collections import OrderedDict, deque
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Deque,
    List,
    Optional,
    Protocol,
)

import pydantic
import structlog

from focuscore.core.config import NotificationConfig, engine_config
from focuscore.core.exceptions import SubscriptionError, ValidationError
from focuscore.domain.models.achievement import (
    AchievementNotification,
    AchievementProgressEvent,
)
from focuscore.persistence.store import ACHIEVEMENT_PROGRESS, ChangeFeed, FeedSubscription, Row

log = structlog.get_logger(__name__)


class NotifierState(str, Enum):
    UNSUBSCRIBED = "unsubscribed"
    SUBSCRIBED = "subscribed"


class NotificationSink(Protocol):
    """Receives user-facing notifications. May be sync or async."""

    def __call__(self, notification: AchievementNotification) -> Optional[Awaitable[None]]:
        ...


class NotificationInbox:
    """In-memory sink keeping the most recent notifications."""

    def __init__(self, maxlen: int = 100):
        self._items: Deque[AchievementNotification] = deque(maxlen=maxlen)

    def __call__(self, notification: AchievementNotification) -> None:
        self._items.append(notification)

    def __len__(self) -> int:
        return len(self._items)

    @property
    def items(self) -> List[AchievementNotification]:
        return list(self._items)

    def drain(self, user_id: Optional[str] = None) -> List[AchievementNotification]:
        """Pop pending notifications, optionally only those for one user."""
        if user_id is None:
            drained = list(self._items)
            self._items.clear()
            return drained
        drained = [n for n in self._items if n.user_id == user_id]
        kept = [n for n in self._items if n.user_id != user_id]
        self._items.clear()
        self._items.extend(kept)
        return drained


@dataclass(frozen=True)
class SubscriptionHandle:
    """Proof of one successful attach; pass it back to detach."""

    user_id: str
    token: int


class AchievementNotifier:
    """Scoped subscription to a user's achievement progress inserts."""

    def __init__(
        self,
        feed: ChangeFeed,
        sink: NotificationSink,
        config: Optional[NotificationConfig] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.feed = feed
        self.sink = sink
        self.config = config or engine_config.notifications
        self._sleep = sleep
        self._tokens = itertools.count(1)

        self._token: Optional[int] = None
        self._handle: Optional[SubscriptionHandle] = None
        self._subscription: Optional[FeedSubscription] = None
        self._queue: Optional[asyncio.Queue] = None
        self._consumer: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None

        # Dedup identities already turned into notifications
        self._seen: "OrderedDict[str, None]" = OrderedDict()
        self._seen_user: Optional[str] = None

    @property
    def state(self) -> NotifierState:
        if self._handle is None:
            return NotifierState.UNSUBSCRIBED
        return NotifierState.SUBSCRIBED

    @property
    def user_id(self) -> Optional[str]:
        return self._handle.user_id if self._handle else None

    @property
    def reconnecting(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def attach(self, user_id: str) -> SubscriptionHandle:
        """
        Start delivering notifications for ``user_id``.

        Returns the existing handle when already subscribed for the same
        user. A different user replaces the current subscription.

        Raises:
            ValidationError: Missing user id
            SubscriptionError: The listener could not be opened
        """
        if not user_id:
            raise ValidationError("Cannot attach notifications without a user")

        if self._handle is not None:
            if self._handle.user_id == user_id:
                log.debug("achievement_attach_noop", user_id=user_id)
                return self._handle
            log.info(
                "achievement_user_switch",
                previous_user_id=self._handle.user_id,
                user_id=user_id,
            )
            await self._teardown()

        if self._seen_user != user_id:
            self._seen = OrderedDict()
            self._seen_user = user_id

        token = next(self._tokens)
        self._token = token
        self._queue = asyncio.Queue(maxsize=self.config.queue_maxsize)
        try:
            self._subscription = await self._subscribe(user_id, token)
        except Exception as e:
            self._token = None
            self._queue = None
            log.error("achievement_subscribe_failed", user_id=user_id, error=str(e))
            if isinstance(e, SubscriptionError):
                raise
            raise SubscriptionError(f"Could not subscribe to achievements: {e}") from e

        self._consumer = asyncio.create_task(self._consume(self._queue, user_id))
        self._handle = SubscriptionHandle(user_id=user_id, token=token)
        log.info("achievement_attached", user_id=user_id, token=token)
        return self._handle

    async def detach(self, handle: Optional[SubscriptionHandle] = None) -> bool:
        """
        Release the listener and stop the consumer.

        Returns:
            True if a subscription was released, False for a no-op
            (already unsubscribed, or a stale handle)
        """
        if self._handle is None:
            log.debug("achievement_detach_noop", reason="unsubscribed")
            return False
        if handle is not None and handle != self._handle:
            log.warning(
                "achievement_detach_stale_handle",
                handle_user_id=handle.user_id,
                current_user_id=self._handle.user_id,
            )
            return False

        user_id = self._handle.user_id
        await self._teardown()
        log.info("achievement_detached", user_id=user_id)
        return True

    @asynccontextmanager
    async def attached(self, user_id: str) -> AsyncIterator[SubscriptionHandle]:
        """Scope a subscription; detach runs on every exit path."""
        handle = await self.attach(user_id)
        try:
            yield handle
        finally:
            await self.detach(handle)

    async def wait_idle(self) -> None:
        """Wait until every queued event has been processed."""
        if self._queue is not None:
            await self._queue.join()

    # ------------------------------------------------------------------
    # Feed plumbing
    # ------------------------------------------------------------------

    async def _subscribe(self, user_id: str, token: int) -> FeedSubscription:
        return await self.feed.subscribe(
            ACHIEVEMENT_PROGRESS,
            {"user_id": user_id},
            on_insert=lambda row: self._on_insert(token, row),
            on_error=lambda error: self._on_feed_error(token, error),
        )

    def _on_insert(self, token: int, row: Row) -> None:
        if token != self._token or self._queue is None:
            return
        try:
            self._queue.put_nowait(row)
        except asyncio.QueueFull:
            log.warning("achievement_queue_full", row_id=row.get("id"))

    def _on_feed_error(self, token: int, error: Exception) -> None:
        if token != self._token:
            return
        log.warning(
            "achievement_feed_disconnected",
            user_id=self.user_id,
            error=str(error),
            error_type=type(error).__name__,
        )
        if self.reconnecting:
            return
        self._reconnect_task = asyncio.create_task(self._reconnect(token))

    async def _reconnect(self, token: int) -> None:
        user_id = self.user_id
        dead, self._subscription = self._subscription, None
        await self._release(dead)

        for attempt in range(self.config.reconnect_max_attempts):
            delay = min(
                self.config.reconnect_base_delay_seconds * (2**attempt),
                self.config.reconnect_max_delay_seconds,
            )
            await self._sleep(delay)
            if token != self._token:
                return
            try:
                subscription = await self._subscribe(user_id, token)
            except Exception as e:
                log.warning(
                    "achievement_reconnect_failed",
                    user_id=user_id,
                    attempt=attempt + 1,
                    delay_seconds=delay,
                    error=str(e),
                )
                continue
            if token != self._token:
                await self._release(subscription)
                return
            self._subscription = subscription
            log.info("achievement_reconnected", user_id=user_id, attempt=attempt + 1)
            return

        log.error(
            "achievement_reconnect_exhausted",
            user_id=user_id,
            attempts=self.config.reconnect_max_attempts,
        )
        self._reconnect_task = None
        await self._teardown()

    async def _release(self, subscription: Optional[FeedSubscription]) -> None:
        if subscription is None:
            return
        try:
            await subscription.unsubscribe()
        except Exception as e:
            log.warning("achievement_unsubscribe_failed", error=str(e))

    async def _teardown(self) -> None:
        self._token = None
        self._handle = None

        reconnect, self._reconnect_task = self._reconnect_task, None
        if reconnect is not None and reconnect is not asyncio.current_task():
            reconnect.cancel()
            try:
                await reconnect
            except asyncio.CancelledError:
                pass

        subscription, self._subscription = self._subscription, None
        await self._release(subscription)

        consumer, self._consumer = self._consumer, None
        if consumer is not None:
            consumer.cancel()
            try:
                await consumer
            except asyncio.CancelledError:
                pass
        self._queue = None

    # ------------------------------------------------------------------
    # Consumer
    # ------------------------------------------------------------------

    async def _consume(self, queue: asyncio.Queue, user_id: str) -> None:
        while True:
            row = await queue.get()
            try:
                await self._deliver(user_id, row)
            finally:
                queue.task_done()

    async def _deliver(self, user_id: str, row: Row) -> None:
        if row.get("user_id") != user_id:
            log.debug("achievement_event_ignored", reason="other_user")
            return
        try:
            event = AchievementProgressEvent.model_validate(row)
        except pydantic.ValidationError as e:
            log.warning("achievement_event_malformed", error=str(e))
            return

        key = event.dedup_key
        if key in self._seen:
            log.debug("achievement_event_duplicate", event_key=key)
            return
        self._seen[key] = None
        while len(self._seen) > self.config.dedup_window:
            self._seen.popitem(last=False)

        notification = AchievementNotification.from_event(event)
        try:
            result = self.sink(notification)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            log.warning(
                "achievement_notification_failed",
                user_id=user_id,
                event_key=key,
                error=str(e),
                error_type=type(e).__name__,
            )
            return
        log.info("achievement_notified", user_id=user_id, event_key=key)
