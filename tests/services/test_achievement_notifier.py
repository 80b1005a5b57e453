"""Tests for the achievement notification trigger."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from focuscore.core.config import NotificationConfig
from focuscore.core.exceptions import SubscriptionError, ValidationError
from focuscore.persistence.change_feed import LocalChangeFeed
from focuscore.persistence.store import ACHIEVEMENT_PROGRESS
from focuscore.services.achievement_service import (
    AchievementNotifier,
    NotificationInbox,
    NotifierState,
)


class FlakyFeed(LocalChangeFeed):
    """Local feed whose subscribe can be made to fail."""

    def __init__(self):
        super().__init__()
        self.fail = False
        self.subscribe_calls = 0

    async def subscribe(self, relation, filters, on_insert, on_error=None):
        self.subscribe_calls += 1
        if self.fail:
            raise SubscriptionError("realtime channel unavailable")
        return await super().subscribe(relation, filters, on_insert, on_error)


class BroadcastFeed(LocalChangeFeed):
    """Feed that ignores subscription filters, like a misconfigured channel."""

    def publish(self, relation, row):
        delivered = 0
        for listener in list(self._listeners.values()):
            if listener.relation == relation:
                listener.on_insert(dict(row))
                delivered += 1
        return delivered


def _event(event_id, user_id="user-u", progress=50, completed=False, **extra):
    row = {
        "id": event_id,
        "user_id": user_id,
        "achievement_id": "streak-7",
        "name": "Seven day streak",
        "progress": progress,
        "completed": completed,
    }
    row.update(extra)
    return row


async def _settle(notifier):
    while notifier.reconnecting:
        await asyncio.sleep(0)
    await notifier.wait_idle()


@pytest.fixture
def notification_config():
    return NotificationConfig(
        reconnect_base_delay_seconds=1.0,
        reconnect_max_delay_seconds=4.0,
        reconnect_max_attempts=3,
        dedup_window=100,
    )


@pytest.fixture
def inbox():
    return NotificationInbox()


@pytest.fixture
def flaky_feed():
    return FlakyFeed()


@pytest.fixture
async def notifier(flaky_feed, inbox, notification_config, recording_sleep):
    notifier = AchievementNotifier(
        flaky_feed, inbox, config=notification_config, sleep=recording_sleep
    )
    yield notifier
    await notifier.detach()


class TestLifecycle:
    async def test_attach_subscribes(self, notifier, flaky_feed):
        handle = await notifier.attach("user-u")

        assert notifier.state is NotifierState.SUBSCRIBED
        assert notifier.user_id == "user-u"
        assert handle.user_id == "user-u"
        assert flaky_feed.listener_count == 1

    async def test_attach_same_user_is_noop(self, notifier, flaky_feed):
        first = await notifier.attach("user-u")
        second = await notifier.attach("user-u")

        assert first == second
        assert flaky_feed.subscribe_calls == 1
        assert flaky_feed.listener_count == 1

    async def test_attach_requires_user(self, notifier):
        with pytest.raises(ValidationError):
            await notifier.attach("")

    async def test_detach_releases_listener(self, notifier, flaky_feed):
        await notifier.attach("user-u")

        assert await notifier.detach() is True
        assert notifier.state is NotifierState.UNSUBSCRIBED
        assert flaky_feed.listener_count == 0

    async def test_detach_when_unsubscribed_is_noop(self, notifier):
        assert await notifier.detach() is False

    async def test_user_switch_replaces_listener(self, notifier, flaky_feed, inbox):
        await notifier.attach("user-u")
        await notifier.attach("user-v")

        assert flaky_feed.listener_count == 1
        flaky_feed.publish(ACHIEVEMENT_PROGRESS, _event("e1", user_id="user-u"))
        flaky_feed.publish(ACHIEVEMENT_PROGRESS, _event("e2", user_id="user-v"))
        await _settle(notifier)

        assert [n.user_id for n in inbox.items] == ["user-v"]

    async def test_stale_handle_cannot_detach_newer_subscription(self, notifier):
        old = await notifier.attach("user-u")
        await notifier.detach(old)
        await notifier.attach("user-u")

        assert await notifier.detach(old) is False
        assert notifier.state is NotifierState.SUBSCRIBED

    async def test_attached_scope_detaches_on_error(self, notifier, flaky_feed):
        with pytest.raises(RuntimeError):
            async with notifier.attached("user-u"):
                assert flaky_feed.listener_count == 1
                raise RuntimeError("context torn down")

        assert notifier.state is NotifierState.UNSUBSCRIBED
        assert flaky_feed.listener_count == 0

    async def test_initial_subscribe_failure_raises(self, notifier, flaky_feed):
        flaky_feed.fail = True

        with pytest.raises(SubscriptionError):
            await notifier.attach("user-u")

        assert notifier.state is NotifierState.UNSUBSCRIBED


class TestDelivery:
    async def test_two_events_for_user_one_for_other(self, inbox, notification_config):
        feed = BroadcastFeed()
        notifier = AchievementNotifier(feed, inbox, config=notification_config)
        await notifier.attach("user-u")

        feed.publish(ACHIEVEMENT_PROGRESS, _event("e1"))
        feed.publish(ACHIEVEMENT_PROGRESS, _event("e2", progress=100, completed=True))
        feed.publish(ACHIEVEMENT_PROGRESS, _event("e3", user_id="user-v"))
        await notifier.wait_idle()
        await notifier.detach()

        assert len(inbox) == 2
        assert all(n.user_id == "user-u" for n in inbox.items)
        assert inbox.items[0].title == "Achievement progress: Seven day streak"
        assert inbox.items[1].title == "Achievement unlocked: Seven day streak"

    async def test_redelivery_after_reattach_not_duplicated(self, notifier, flaky_feed, inbox):
        await notifier.attach("user-u")
        flaky_feed.publish(ACHIEVEMENT_PROGRESS, _event("e1"))
        await _settle(notifier)
        await notifier.detach()

        await notifier.attach("user-u")
        flaky_feed.publish(ACHIEVEMENT_PROGRESS, _event("e1"))
        flaky_feed.publish(ACHIEVEMENT_PROGRESS, _event("e2"))
        await _settle(notifier)

        assert [n.event_key for n in inbox.items] == ["id:e1", "id:e2"]

    async def test_composite_key_without_id(self, notifier, flaky_feed, inbox):
        await notifier.attach("user-u")
        flaky_feed.publish(ACHIEVEMENT_PROGRESS, _event(None, progress=30))
        flaky_feed.publish(ACHIEVEMENT_PROGRESS, _event(None, progress=30))
        flaky_feed.publish(ACHIEVEMENT_PROGRESS, _event(None, progress=60))
        await _settle(notifier)

        assert [n.event_key for n in inbox.items] == [
            "user-u:streak-7:30",
            "user-u:streak-7:60",
        ]

    async def test_no_delivery_after_detach(self, notifier, flaky_feed, inbox):
        await notifier.attach("user-u")
        await notifier.detach()

        assert flaky_feed.publish(ACHIEVEMENT_PROGRESS, _event("e1")) == 0
        assert len(inbox) == 0

    async def test_sink_failure_keeps_listener(self, flaky_feed, notification_config):
        received = []

        def sink(notification):
            if notification.event_key == "id:bad":
                raise RuntimeError("toast renderer crashed")
            received.append(notification)

        notifier = AchievementNotifier(flaky_feed, sink, config=notification_config)
        await notifier.attach("user-u")
        flaky_feed.publish(ACHIEVEMENT_PROGRESS, _event("bad"))
        flaky_feed.publish(ACHIEVEMENT_PROGRESS, _event("good"))
        await _settle(notifier)
        await notifier.detach()

        assert [n.event_key for n in received] == ["id:good"]

    async def test_async_sink_is_awaited(self, flaky_feed, notification_config):
        sink = AsyncMock()
        notifier = AchievementNotifier(flaky_feed, sink, config=notification_config)
        await notifier.attach("user-u")
        flaky_feed.publish(ACHIEVEMENT_PROGRESS, _event("e1"))
        await _settle(notifier)
        await notifier.detach()

        sink.assert_awaited_once()

    async def test_store_insert_reaches_notifier(self, store, feed, inbox, notification_config):
        notifier = AchievementNotifier(feed, inbox, config=notification_config)
        async with notifier.attached("user-u"):
            await store.insert(
                ACHIEVEMENT_PROGRESS,
                {
                    "user_id": "user-u",
                    "achievement_id": "first-focus",
                    "name": "First focus",
                    "progress": 100,
                    "completed": True,
                },
            )
            await notifier.wait_idle()

        assert len(inbox) == 1
        assert inbox.items[0].title == "Achievement unlocked: First focus"


class TestReconnect:
    async def test_disconnect_resubscribes_with_backoff(
        self, notifier, flaky_feed, inbox, recording_sleep
    ):
        await notifier.attach("user-u")

        flaky_feed.disconnect(ACHIEVEMENT_PROGRESS)
        await _settle(notifier)

        assert recording_sleep.delays == [1.0]
        assert notifier.state is NotifierState.SUBSCRIBED
        assert flaky_feed.listener_count == 1

        flaky_feed.publish(ACHIEVEMENT_PROGRESS, _event("e1"))
        await _settle(notifier)
        assert len(inbox) == 1

    async def test_reconnect_retries_then_succeeds(self, notifier, flaky_feed, recording_sleep):
        await notifier.attach("user-u")
        flaky_feed.fail = True

        async def recover_after_two(delay):
            recording_sleep.delays.append(delay)
            if len(recording_sleep.delays) == 3:
                flaky_feed.fail = False

        notifier._sleep = recover_after_two
        flaky_feed.disconnect(ACHIEVEMENT_PROGRESS)
        await _settle(notifier)

        assert recording_sleep.delays == [1.0, 2.0, 4.0]
        assert notifier.state is NotifierState.SUBSCRIBED

    async def test_reconnect_gives_up_after_max_attempts(
        self, notifier, flaky_feed, recording_sleep
    ):
        await notifier.attach("user-u")
        flaky_feed.fail = True

        flaky_feed.disconnect(ACHIEVEMENT_PROGRESS)
        await _settle(notifier)

        assert recording_sleep.delays == [1.0, 2.0, 4.0]
        assert notifier.state is NotifierState.UNSUBSCRIBED
        assert flaky_feed.listener_count == 0

    async def test_delay_is_capped(self, flaky_feed, inbox, recording_sleep):
        config = NotificationConfig(
            reconnect_base_delay_seconds=1.0,
            reconnect_max_delay_seconds=3.0,
            reconnect_max_attempts=4,
        )
        notifier = AchievementNotifier(flaky_feed, inbox, config=config, sleep=recording_sleep)
        await notifier.attach("user-u")
        flaky_feed.fail = True

        flaky_feed.disconnect(ACHIEVEMENT_PROGRESS)
        await _settle(notifier)

        assert recording_sleep.delays == [1.0, 2.0, 3.0, 3.0]

    async def test_detach_during_reconnect_stops_it(self, notifier, flaky_feed):
        await notifier.attach("user-u")
        gate = asyncio.Event()

        async def blocked_sleep(delay):
            await gate.wait()

        notifier._sleep = blocked_sleep
        flaky_feed.disconnect(ACHIEVEMENT_PROGRESS)
        await asyncio.sleep(0)
        assert notifier.reconnecting

        await notifier.detach()

        assert notifier.reconnecting is False
        assert flaky_feed.listener_count == 0
