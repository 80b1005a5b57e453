"""
Session API routes.

Endpoints for the focus/break session lifecycle.
"""

from typing import Optional

from fastapi import APIRouter, Query, status
import structlog

from focuscore.api.dependencies import (
    CurrentUserDep,
    EngineDep,
    RequiredUserDep,
    unwrap,
)
from focuscore.api.schemas import (
    SessionCancelRequest,
    SessionCompleteRequest,
    SessionListResponse,
    SessionSkipRequest,
    SessionStartRequest,
    SessionTransitionResponse,
)
from focuscore.core.exceptions import SessionNotFoundError
from focuscore.domain.models.results import OperationResult
from focuscore.domain.models.session import Session

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])


def _transition_response(result: OperationResult[Session]) -> SessionTransitionResponse:
    session = unwrap(result)
    return SessionTransitionResponse(outcome=result.outcome, session=session)


@router.post(
    "",
    response_model=SessionTransitionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def start_session(
    request: SessionStartRequest,
    engine: EngineDep,
    user_id: RequiredUserDep,
):
    """Start a new active session for the current user."""
    result = await engine.start_session(user_id, request.initial_mode, request.task_id)
    return _transition_response(result)


@router.get("", response_model=SessionListResponse)
async def list_sessions(
    engine: EngineDep,
    user_id: CurrentUserDep,
    limit: Optional[int] = Query(default=None, ge=1, le=100),
):
    """Most recent sessions for the current user, newest first."""
    if not user_id:
        return SessionListResponse(sessions=[], total=0)
    sessions = unwrap(await engine.list_recent_sessions(user_id, limit))
    return SessionListResponse(sessions=sessions, total=len(sessions))


@router.get("/{session_id}", response_model=Session)
async def get_session(session_id: str, engine: EngineDep, user_id: CurrentUserDep):
    """Fetch one session owned by the current user."""
    session = unwrap(await engine.get_session(session_id))
    if user_id and session.user_id != user_id:
        raise SessionNotFoundError(f"Session {session_id} not found")
    return session


@router.post("/{session_id}/complete", response_model=SessionTransitionResponse)
async def complete_session(
    session_id: str,
    request: SessionCompleteRequest,
    engine: EngineDep,
):
    """Complete an active session. Repeating the same call is a no-op."""
    result = await engine.complete_session(
        session_id, request.end_time, request.focus_quality_rating
    )
    return _transition_response(result)


@router.post("/{session_id}/cancel", response_model=SessionTransitionResponse)
async def cancel_session(
    session_id: str,
    request: SessionCancelRequest,
    engine: EngineDep,
):
    """Cancel an active session."""
    result = await engine.cancel_session(session_id, request.end_time, request.notes)
    return _transition_response(result)


@router.post("/{session_id}/skip", response_model=SessionTransitionResponse)
async def skip_session(
    session_id: str,
    request: SessionSkipRequest,
    engine: EngineDep,
):
    """Skip an active session."""
    result = await engine.skip_session(session_id, request.end_time)
    return _transition_response(result)
