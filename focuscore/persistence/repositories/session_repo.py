"""Session repository for record store operations."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog

from focuscore.domain.models.metrics import TimeRange
from focuscore.domain.models.session import Session, SessionMode, SessionStatus
from focuscore.persistence.store import SESSIONS, Query, RecordStore, Row

log = structlog.get_logger(__name__)


class SessionRepository:
    """Repository for session rows."""

    def __init__(self, store: RecordStore):
        self.store = store

    async def create(
        self,
        user_id: str,
        initial_mode: SessionMode,
        start_time: datetime,
        task_id: Optional[str] = None,
    ) -> Session:
        """Insert a new active session."""
        row = await self.store.insert(
            SESSIONS,
            {
                "user_id": user_id,
                "initial_mode": initial_mode,
                "status": SessionStatus.ACTIVE,
                "start_time": start_time,
                "end_time": None,
                "duration_seconds": None,
                "task_id": task_id,
                "updated_at": datetime.now(timezone.utc),
            },
        )
        return self._row_to_session(row)

    async def get(self, session_id: str) -> Optional[Session]:
        """Get a session by ID."""
        row = await self.store.get(SESSIONS, session_id)
        return self._row_to_session(row) if row else None

    async def finish_if_active(
        self, session_id: str, values: Dict[str, Any]
    ) -> Optional[Session]:
        """
        Apply a terminal update only while the session is still active.

        Returns:
            The updated session, or None if the row was no longer active
        """
        values = dict(values, updated_at=datetime.now(timezone.utc))
        row = await self.store.update(
            SESSIONS, session_id, values, match={"status": SessionStatus.ACTIVE}
        )
        return self._row_to_session(row) if row else None

    async def list_recent(self, user_id: str, limit: int = 10) -> List[Session]:
        """List a user's most recent sessions, newest first."""
        rows = await self.store.select(
            Query(
                relation=SESSIONS,
                equals={"user_id": user_id},
                order_by="start_time",
                descending=True,
                limit=limit,
            )
        )
        return [self._row_to_session(row) for row in rows]

    async def list_in_range(
        self, user_id: str, time_range: Optional[TimeRange] = None
    ) -> List[Session]:
        """List a user's sessions whose start_time falls in the range."""
        rows = await self.store.select(
            Query(
                relation=SESSIONS,
                equals={"user_id": user_id},
                range_column="start_time" if time_range else None,
                range_start=time_range.start if time_range else None,
                range_end=time_range.end if time_range else None,
                order_by="start_time",
            )
        )
        return [self._row_to_session(row) for row in rows]

    def _row_to_session(self, row: Row) -> Session:
        """Convert a store row to a Session model."""
        return Session(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            initial_mode=row["initial_mode"],
            status=row["status"],
            start_time=row["start_time"],
            end_time=row.get("end_time"),
            duration_seconds=row.get("duration_seconds"),
            task_id=row.get("task_id"),
            notes=row.get("notes"),
            focus_quality_rating=row.get("focus_quality_rating"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )
