"""Repository implementations."""

from focuscore.persistence.repositories.session_repo import SessionRepository
from focuscore.persistence.repositories.metric_repo import EnergyMetricRepository
from focuscore.persistence.repositories.tool_usage_repo import ToolUsageRepository

__all__ = [
    "SessionRepository",
    "EnergyMetricRepository",
    "ToolUsageRepository",
]
