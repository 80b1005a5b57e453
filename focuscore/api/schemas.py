"""
API request/response schemas.

Pydantic models for API validation and serialization.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from focuscore.domain.models.achievement import AchievementNotification
from focuscore.domain.models.metrics import EnergyMetric
from focuscore.domain.models.results import Outcome
from focuscore.domain.models.session import Session, SessionMode


# ============ SESSION SCHEMAS ============


class SessionStartRequest(BaseModel):
    """Request to start a new session."""

    initial_mode: SessionMode = Field(default=SessionMode.FOCUS)
    task_id: Optional[str] = None


class SessionCompleteRequest(BaseModel):
    """Request to complete an active session."""

    end_time: datetime
    focus_quality_rating: Optional[int] = None


class SessionCancelRequest(BaseModel):
    """Request to cancel an active session."""

    end_time: datetime
    notes: Optional[str] = Field(default=None, max_length=2000)


class SessionSkipRequest(BaseModel):
    """Request to skip an active session."""

    end_time: datetime


class SessionTransitionResponse(BaseModel):
    """Session after a lifecycle call, with how the call resolved."""

    outcome: Outcome
    session: Session


class SessionListResponse(BaseModel):
    """List of sessions response."""

    sessions: List[Session]
    total: int


# ============ METRICS SCHEMAS ============


class MetricListResponse(BaseModel):
    """Energy metrics for the current user."""

    metrics: List[EnergyMetric]
    total: int


# ============ NOTIFICATION SCHEMAS ============


class NotificationStatusResponse(BaseModel):
    """Achievement subscription state."""

    state: str
    user_id: Optional[str] = None


class NotificationListResponse(BaseModel):
    """Pending achievement notifications."""

    notifications: List[AchievementNotification]
    total: int
