"""Tool usage models.

A ToolActivation is the in-memory acquisition record for one tool view;
a ToolUsageEvent is the row appended when a long-enough activation is
released.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from focuscore.domain.models.session import ensure_utc


@dataclass
class ToolActivation:
    """One tool activation lifetime, from view entered to view left."""

    user_id: Optional[str]
    tool_name: str
    tool_type: str
    acquired_at: float  # monotonic clock reading
    settings: Optional[Dict[str, Any]] = None
    released: bool = field(default=False)


class ToolUsageEvent(BaseModel):
    """One persisted engagement record."""

    id: Optional[str] = None
    user_id: Optional[str] = None
    tool_name: str
    tool_type: str
    session_duration: int = Field(..., ge=0, description="Whole seconds")
    settings: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None

    @field_validator("settings", mode="before")
    @classmethod
    def parse_settings(cls, v: Any) -> Any:
        # SQLite hands JSON columns back as text
        if isinstance(v, str):
            return json.loads(v) if v else None
        return v

    @field_validator("created_at")
    @classmethod
    def normalize_timestamp(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v) if v is not None else None
