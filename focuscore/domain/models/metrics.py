"""Energy metric and aggregate models.

EnergyMetric rows are immutable point-in-time measurements; corrections
are new rows. Aggregates (EnergySummary, SessionStats) are derived on
read and only ever cached transiently.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from focuscore.core.exceptions import ValidationError
from focuscore.domain.models.session import ensure_utc


@dataclass(frozen=True)
class TimeRange:
    """Half-open time interval ``[start, end)``.

    Frozen and hashable so it can be part of a cache key.
    """

    start: datetime
    end: datetime

    def __post_init__(self):
        start = ensure_utc(self.start)
        end = ensure_utc(self.end)
        if start >= end:
            raise ValidationError(
                f"Malformed time range: start {start.isoformat()} "
                f"is not before end {end.isoformat()}"
            )
        object.__setattr__(self, "start", start)
        object.__setattr__(self, "end", end)

    def contains(self, value: datetime) -> bool:
        value = ensure_utc(value)
        return self.start <= value < self.end


class EnergyMetricCreate(BaseModel):
    """Payload for a new energy measurement."""

    physical_energy: int = Field(..., ge=1, le=10)
    mental_energy: int = Field(..., ge=1, le=10)
    emotional_energy: int = Field(..., ge=1, le=10)
    sleep_quality: Optional[int] = Field(default=None, ge=1, le=10)
    notes: Optional[str] = Field(default=None, max_length=1000)
    recorded_at: Optional[datetime] = Field(
        default=None, description="Measurement time (defaults to now)"
    )


class EnergyMetric(BaseModel):
    """A stored energy measurement owned by a user."""

    id: str
    user_id: str
    physical_energy: int
    mental_energy: int
    emotional_energy: int
    sleep_quality: Optional[int] = None
    notes: Optional[str] = None
    recorded_at: datetime
    created_at: Optional[datetime] = None

    @field_validator("recorded_at", "created_at")
    @classmethod
    def normalize_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v) if v is not None else None


class EnergySummary(BaseModel):
    """Averages over a user's energy measurements in a time range."""

    user_id: str
    count: int = 0
    average_physical: Optional[float] = None
    average_mental: Optional[float] = None
    average_emotional: Optional[float] = None
    average_sleep_quality: Optional[float] = None


class SessionStats(BaseModel):
    """Aggregate statistics over a user's sessions in a time range."""

    user_id: str
    total_sessions: int = 0
    active_sessions: int = 0
    completed_sessions: int = 0
    cancelled_sessions: int = 0
    skipped_sessions: int = 0
    total_focus_seconds: int = 0
    average_duration_seconds: float = 0.0
    average_focus_quality: Optional[float] = None
