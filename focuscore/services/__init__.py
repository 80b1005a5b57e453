"""Engine components: session state machine, metrics, tool tracking, notifications."""

from focuscore.services.achievement_service import (
    AchievementNotifier,
    NotificationInbox,
    NotificationSink,
    NotifierState,
    SubscriptionHandle,
)
from focuscore.services.metrics_cache import CacheKey, MetricsCache
from focuscore.services.metrics_service import MetricsService
from focuscore.services.session_service import SessionStateMachine
from focuscore.services.tool_usage_service import ToolUsageTracker

__all__ = [
    "AchievementNotifier",
    "CacheKey",
    "MetricsCache",
    "MetricsService",
    "NotificationInbox",
    "NotificationSink",
    "NotifierState",
    "SessionStateMachine",
    "SubscriptionHandle",
    "ToolUsageTracker",
]
