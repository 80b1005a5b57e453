"""Tool usage log repository."""

from datetime import datetime
from typing import List, Optional

from focuscore.domain.models.tool_usage import ToolUsageEvent
from focuscore.persistence.store import TOOL_USAGE_LOGS, Query, RecordStore


class ToolUsageRepository:
    """Write-mostly access to tool_usage_logs rows."""

    def __init__(self, store: RecordStore):
        self.store = store

    async def append(self, event: ToolUsageEvent, created_at: datetime) -> ToolUsageEvent:
        row = await self.store.insert(
            TOOL_USAGE_LOGS,
            {
                "user_id": event.user_id,
                "tool_name": event.tool_name,
                "tool_type": event.tool_type,
                "session_duration": event.session_duration,
                "settings": event.settings,
                "created_at": created_at,
            },
        )
        return ToolUsageEvent.model_validate(row)

    async def list_for_user(
        self, user_id: Optional[str], limit: Optional[int] = None
    ) -> List[ToolUsageEvent]:
        rows = await self.store.select(
            Query(
                relation=TOOL_USAGE_LOGS,
                equals={"user_id": user_id},
                order_by="created_at",
                descending=True,
                limit=limit,
            )
        )
        return [ToolUsageEvent.model_validate(row) for row in rows]
