"""Achievement progress models.

Progress rows are computed server-side; the client only observes their
inserts through the change feed and turns them into notifications.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class AchievementProgressEvent(BaseModel):
    """An insert observed on the achievement_progress relation."""

    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    user_id: str
    achievement_id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    progress: Optional[int] = None
    completed: Optional[bool] = None
    created_at: Optional[datetime] = None

    @property
    def dedup_key(self) -> str:
        """Identity used to recognise redelivered events.

        The row id when the store provides one, otherwise the composite
        of user, achievement and progress value.
        """
        if self.id:
            return f"id:{self.id}"
        return f"{self.user_id}:{self.achievement_id}:{self.progress}"


class AchievementNotification(BaseModel):
    """User-facing toast derived from one progress event."""

    user_id: str
    event_key: str
    title: str
    body: str

    @classmethod
    def from_event(cls, event: AchievementProgressEvent) -> "AchievementNotification":
        name = event.name or event.achievement_id or "Achievement"
        if event.completed:
            title = f"Achievement unlocked: {name}"
            body = event.description or "Nice work, keep it up!"
        else:
            title = f"Achievement progress: {name}"
            if event.progress is not None:
                body = f"You're {event.progress}% of the way there."
            else:
                body = event.description or "You made progress."
        return cls(
            user_id=event.user_id,
            event_key=event.dedup_key,
            title=title,
            body=body,
        )
