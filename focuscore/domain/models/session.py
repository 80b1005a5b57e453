"""Session domain models for focus/break lifecycle management.

Core Models:
    - SessionMode: Classification fixed at creation (focus, shortBreak, longBreak)
    - SessionStatus: Lifecycle status (one initial, three terminal)
    - Session: One timed focus/break interval as stored in the sessions relation

Session Lifecycle:
    1. Created by SessionStateMachine.start() with status=active
    2. Mutated exactly once by a terminal transition (complete/cancel/skip)
    3. Never mutated again; terminal statuses are absorbing
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class SessionMode(str, Enum):
    """Session classification."""

    FOCUS = "focus"
    SHORT_BREAK = "shortBreak"
    LONG_BREAK = "longBreak"


class SessionStatus(str, Enum):
    """Session lifecycle status."""

    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {SessionStatus.COMPLETED, SessionStatus.CANCELLED, SessionStatus.SKIPPED}
)


def ensure_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime. Naive values are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def compute_duration_seconds(start_time: datetime, end_time: datetime) -> int:
    """Whole seconds between start and end, rounded to the nearest second."""
    delta = ensure_utc(end_time) - ensure_utc(start_time)
    return int(round(delta.total_seconds()))


class Session(BaseModel):
    """One timed focus/break interval.

    Invariants:
        - end_time is set iff status is terminal
        - duration_seconds == end_time - start_time (whole seconds, >= 0)
        - focus_quality_rating only on completed focus sessions
    """

    id: str
    user_id: str
    initial_mode: SessionMode
    status: SessionStatus = SessionStatus.ACTIVE
    start_time: datetime
    end_time: Optional[datetime] = None
    duration_seconds: Optional[int] = Field(default=None, ge=0)
    task_id: Optional[str] = None
    notes: Optional[str] = None
    focus_quality_rating: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("start_time", "end_time", "created_at", "updated_at")
    @classmethod
    def normalize_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v) if v is not None else None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal
