"""Dependency injection for API routes."""

from datetime import datetime
from typing import Annotated, Optional

from fastapi import Depends, Header, Query, Request

from focuscore.core.exceptions import ConfigurationError, ValidationError
from focuscore.domain.models.metrics import TimeRange
from focuscore.domain.models.results import OperationResult, T
from focuscore.engine import FocusEngine


def get_engine(request: Request) -> FocusEngine:
    """FastAPI dependency injection for the FocusEngine.

    The engine is built once in the application lifespan and shared by
    every request.
    """
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise ConfigurationError("Focus engine is not initialized")
    return engine


def get_current_user_id(
    x_user_id: Annotated[Optional[str], Header()] = None,
) -> Optional[str]:
    """Current user from the X-User-Id header (None when not yet resolved)."""
    if x_user_id is None:
        return None
    return x_user_id.strip() or None


def require_user_id(
    user_id: Annotated[Optional[str], Depends(get_current_user_id)],
) -> str:
    """Current user for calls that cannot run anonymously."""
    if not user_id:
        raise ValidationError("X-User-Id header is required")
    return user_id


def get_time_range(
    start: Annotated[Optional[datetime], Query()] = None,
    end: Annotated[Optional[datetime], Query()] = None,
) -> Optional[TimeRange]:
    """Optional [start, end) range from query parameters."""
    if start is None and end is None:
        return None
    if start is None or end is None:
        raise ValidationError("Both start and end are required for a time range")
    return TimeRange(start=start, end=end)


def unwrap(result: OperationResult[T]) -> T:
    """Return the value of a successful result, or raise its error."""
    if not result.ok:
        raise result.error
    return result.value


# Type aliases for dependency injection
EngineDep = Annotated[FocusEngine, Depends(get_engine)]
CurrentUserDep = Annotated[Optional[str], Depends(get_current_user_id)]
RequiredUserDep = Annotated[str, Depends(require_user_id)]
TimeRangeDep = Annotated[Optional[TimeRange], Depends(get_time_range)]
