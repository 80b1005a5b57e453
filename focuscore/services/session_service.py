"""
Focus session state machine.

Governs one session's lifecycle:

    active ──complete──▶ completed
           ──cancel────▶ cancelled
           ──skip──────▶ skipped

Terminal statuses are absorbing. A repeat of the exact terminal call
that produced the current state resolves to a NOOP outcome (client
retries after a network timeout are expected); anything else against a
terminal session raises InvalidTransitionError without touching the
stored row.

The terminal write is a conditional update (status must still be
active), so of two racing callers only one applies; the other re-reads
the row and resolves to NOOP or InvalidTransitionError.
"""

from datetime import datetime, timezone
from typing import Callable, List, Optional

import structlog

from focuscore.core.config import SessionConfig, engine_config
from focuscore.core.exceptions import (
    InvalidTransitionError,
    SessionNotFoundError,
    ValidationError,
)
from focuscore.domain.models.results import Outcome, TransitionResult
from focuscore.domain.models.session import (
    Session,
    SessionMode,
    SessionStatus,
    compute_duration_seconds,
    ensure_utc,
)
from focuscore.persistence.repositories.session_repo import SessionRepository

log = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionStateMachine:
    """Start and terminate focus/break sessions against the record store."""

    def __init__(
        self,
        session_repo: SessionRepository,
        config: Optional[SessionConfig] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.repo = session_repo
        self.config = config or engine_config.session
        self._clock = clock

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def start(
        self,
        user_id: str,
        initial_mode: SessionMode | str,
        task_id: Optional[str] = None,
    ) -> Session:
        """
        Create and persist a new active session.

        Raises:
            ValidationError: Missing user or unknown mode
            PersistenceError: The insert did not succeed (caller owns retry)
        """
        if not user_id:
            raise ValidationError("Cannot start a session without a user")
        try:
            mode = SessionMode(initial_mode)
        except ValueError:
            raise ValidationError(
                f"Unknown session mode: {initial_mode!r}. "
                f"Expected one of {[m.value for m in SessionMode]}"
            ) from None

        session = await self.repo.create(
            user_id=user_id,
            initial_mode=mode,
            start_time=ensure_utc(self._clock()),
            task_id=task_id,
        )
        log.info(
            "session_started",
            session_id=session.id,
            user_id=user_id,
            initial_mode=mode.value,
            task_id=task_id,
        )
        return session

    # ------------------------------------------------------------------
    # Terminal transitions
    # ------------------------------------------------------------------

    async def complete(
        self,
        session_id: str,
        end_time: datetime,
        focus_quality_rating: Optional[int] = None,
    ) -> TransitionResult:
        """
        Mark an active session completed.

        A rating is only accepted on focus sessions and must lie within
        the configured bounds; anything else is rejected with
        ValidationError before the store is written.
        """
        if focus_quality_rating is not None:
            self._validate_rating(focus_quality_rating)
        return await self._transition(
            session_id,
            SessionStatus.COMPLETED,
            end_time,
            focus_quality_rating=focus_quality_rating,
        )

    async def cancel(
        self, session_id: str, end_time: datetime, notes: Optional[str] = None
    ) -> TransitionResult:
        """Mark an active session cancelled, optionally with notes."""
        return await self._transition(
            session_id, SessionStatus.CANCELLED, end_time, notes=notes
        )

    async def skip(self, session_id: str, end_time: datetime) -> TransitionResult:
        """Mark an active session skipped."""
        return await self._transition(session_id, SessionStatus.SKIPPED, end_time)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, session_id: str) -> Session:
        session = await self.repo.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session {session_id} not found")
        return session

    async def list_recent(self, user_id: str, limit: Optional[int] = None) -> List[Session]:
        if not user_id:
            return []
        return await self.repo.list_recent(user_id, limit or self.config.recent_limit)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _validate_rating(self, rating: int) -> None:
        if isinstance(rating, bool) or not isinstance(rating, int):
            raise ValidationError(f"Focus quality rating must be an integer, got {rating!r}")
        if not self.config.rating_min <= rating <= self.config.rating_max:
            raise ValidationError(
                f"Focus quality rating {rating} outside "
                f"{self.config.rating_min}-{self.config.rating_max}"
            )

    async def _transition(
        self,
        session_id: str,
        target: SessionStatus,
        end_time: datetime,
        focus_quality_rating: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> TransitionResult:
        if end_time is None:
            raise ValidationError("end_time is required for a terminal transition")
        end_time = ensure_utc(end_time)

        session = await self.get(session_id)

        if focus_quality_rating is not None and session.initial_mode is not SessionMode.FOCUS:
            raise ValidationError(
                f"Focus quality rating only applies to focus sessions "
                f"(session {session_id} is {session.initial_mode.value})"
            )

        if session.is_terminal:
            return self._resolve_repeat(session, target, end_time, focus_quality_rating, notes)

        if end_time < session.start_time:
            raise ValidationError(
                f"end_time {end_time.isoformat()} precedes start_time "
                f"{session.start_time.isoformat()}"
            )

        values = {
            "status": target,
            "end_time": end_time,
            "duration_seconds": compute_duration_seconds(session.start_time, end_time),
            "focus_quality_rating": focus_quality_rating,
        }
        if target is SessionStatus.CANCELLED and notes is not None:
            values["notes"] = notes

        updated = await self.repo.finish_if_active(session_id, values)
        if updated is None:
            # Another caller finished the session between our read and write
            current = await self.get(session_id)
            return self._resolve_repeat(current, target, end_time, focus_quality_rating, notes)

        log.info(
            "session_transitioned",
            session_id=session_id,
            user_id=updated.user_id,
            status=target.value,
            duration_seconds=updated.duration_seconds,
            focus_quality_rating=updated.focus_quality_rating,
        )
        return TransitionResult(session=updated, outcome=Outcome.APPLIED)

    def _resolve_repeat(
        self,
        session: Session,
        target: SessionStatus,
        end_time: datetime,
        focus_quality_rating: Optional[int],
        notes: Optional[str],
    ) -> TransitionResult:
        identical = (
            session.status is target
            and session.end_time == end_time
            and session.focus_quality_rating == focus_quality_rating
            and (target is not SessionStatus.CANCELLED or session.notes == notes)
        )
        if identical:
            log.info(
                "session_transition_noop",
                session_id=session.id,
                status=session.status.value,
            )
            return TransitionResult(session=session, outcome=Outcome.NOOP)

        log.warning(
            "session_transition_rejected",
            session_id=session.id,
            current_status=session.status.value,
            requested_status=target.value,
        )
        raise InvalidTransitionError(
            f"Session {session.id} is already {session.status.value}; "
            f"cannot transition to {target.value}",
            current_status=session.status.value,
        )
