"""Domain models package."""

from .session import Session, SessionMode, SessionStatus, TERMINAL_STATUSES
from .results import Outcome, OperationResult, TransitionResult
from .metrics import (
    EnergyMetric,
    EnergyMetricCreate,
    EnergySummary,
    SessionStats,
    TimeRange,
)
from .tool_usage import ToolActivation, ToolUsageEvent
from .achievement import AchievementNotification, AchievementProgressEvent

__all__ = [
    "Session",
    "SessionMode",
    "SessionStatus",
    "TERMINAL_STATUSES",
    "Outcome",
    "OperationResult",
    "TransitionResult",
    "EnergyMetric",
    "EnergyMetricCreate",
    "EnergySummary",
    "SessionStats",
    "TimeRange",
    "ToolActivation",
    "ToolUsageEvent",
    "AchievementNotification",
    "AchievementProgressEvent",
]
