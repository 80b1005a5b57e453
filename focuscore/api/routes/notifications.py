"""
Achievement notification routes.

Attach/detach the achievement listener for the current user and drain
the notifications it has produced.
"""

from fastapi import APIRouter, status
import structlog

from focuscore.api.dependencies import CurrentUserDep, EngineDep, RequiredUserDep
from focuscore.api.schemas import NotificationListResponse, NotificationStatusResponse

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _status(engine) -> NotificationStatusResponse:
    return NotificationStatusResponse(
        state=engine.notifier.state.value, user_id=engine.notifier.user_id
    )


@router.get("/subscription", response_model=NotificationStatusResponse)
async def subscription_status(engine: EngineDep):
    return _status(engine)


@router.post(
    "/subscription",
    response_model=NotificationStatusResponse,
    status_code=status.HTTP_201_CREATED,
)
async def attach(engine: EngineDep, user_id: RequiredUserDep):
    """Subscribe to achievement progress for the current user."""
    await engine.attach_achievement_notifications(user_id)
    return _status(engine)


@router.delete("/subscription", response_model=NotificationStatusResponse)
async def detach(engine: EngineDep):
    """Release the achievement subscription."""
    await engine.detach_achievement_notifications()
    return _status(engine)


@router.get("", response_model=NotificationListResponse)
async def drain_notifications(engine: EngineDep, user_id: CurrentUserDep):
    """Pop pending notifications for the current user."""
    if engine.inbox is None or not user_id:
        return NotificationListResponse(notifications=[], total=0)
    notifications = engine.inbox.drain(user_id)
    return NotificationListResponse(notifications=notifications, total=len(notifications))
