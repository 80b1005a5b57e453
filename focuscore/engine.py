"""
FocusEngine: the public entry points of the focus engine.

Wires the four components over one injected BackendClient and adapts
their exceptions to OperationResult values, so callers (UI layers, the
HTTP API) never see a FocusCoreError escape a session or metrics call.

The components never call each other. The engine alone coordinates the
one cross-cutting effect: after a session write is applied, the
writing user's cached metrics views are invalidated.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Awaitable, Dict, List, Optional, TypeVar

import structlog

from focuscore.core.config import EngineConfig, Settings, engine_config as default_config
from focuscore.core.exceptions import FocusCoreError, PersistenceError
from focuscore.core.logging import log_context
from focuscore.domain.models.metrics import (
    EnergyMetric,
    EnergyMetricCreate,
    EnergySummary,
    SessionStats,
    TimeRange,
)
from focuscore.domain.models.results import OperationResult, TransitionResult
from focuscore.domain.models.session import Session, SessionMode
from focuscore.domain.models.tool_usage import ToolActivation
from focuscore.persistence.backend import create_backend
from focuscore.persistence.database import SqliteRecordStore, check_database_health
from focuscore.persistence.repositories import (
    EnergyMetricRepository,
    SessionRepository,
    ToolUsageRepository,
)
from focuscore.persistence.store import SESSIONS, BackendClient, Query
from focuscore.services.achievement_service import (
    AchievementNotifier,
    NotificationInbox,
    NotificationSink,
    SubscriptionHandle,
)
from focuscore.services.metrics_cache import MetricsCache
from focuscore.services.metrics_service import MetricsService
from focuscore.services.session_service import SessionStateMachine
from focuscore.services.tool_usage_service import ToolUsageTracker

log = structlog.get_logger(__name__)

T = TypeVar("T")


class FocusEngine:
    """Facade over the session, metrics, tool usage and notification components."""

    def __init__(
        self,
        backend: BackendClient,
        config: Optional[EngineConfig] = None,
        sink: Optional[NotificationSink] = None,
    ):
        self.backend = backend
        self.config = config or default_config

        self.session_repo = SessionRepository(backend.store)
        self.metric_repo = EnergyMetricRepository(backend.store)
        self.tool_usage_repo = ToolUsageRepository(backend.store)

        self.sessions = SessionStateMachine(self.session_repo, config=self.config.session)
        self.metrics = MetricsService(
            self.metric_repo,
            self.session_repo,
            cache=MetricsCache(max_entries=self.config.metrics.cache_max_entries),
            config=self.config.metrics,
        )
        self.tools = ToolUsageTracker(self.tool_usage_repo, config=self.config.tool_usage)

        self.inbox: Optional[NotificationInbox] = None
        if sink is None:
            self.inbox = NotificationInbox()
            sink = self.inbox
        self.notifier = AchievementNotifier(
            backend.feed, sink, config=self.config.notifications
        )

    @classmethod
    async def from_settings(
        cls,
        settings: Optional[Settings] = None,
        config: Optional[EngineConfig] = None,
        sink: Optional[NotificationSink] = None,
    ) -> "FocusEngine":
        """Build the configured backend and an engine over it."""
        backend = await create_backend(settings)
        return cls(backend, config=config, sink=sink)

    async def close(self) -> None:
        """Detach notifications and release backend resources."""
        await self.notifier.detach()
        await self.backend.aclose()
        log.info("engine_closed")

    async def __aenter__(self) -> "FocusEngine":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Result adaptation
    # ------------------------------------------------------------------

    async def _guard(
        self, operation: str, call: Awaitable[T], **context: Any
    ) -> OperationResult[T]:
        try:
            with log_context(operation=operation, **context):
                value = await call
        except FocusCoreError as e:
            log.warning(
                "engine_operation_failed",
                operation=operation,
                **context,
                error=e.message,
                error_type=type(e).__name__,
            )
            return OperationResult.failure(e)
        return OperationResult.success(value)

    async def _transition(
        self, operation: str, session_id: str, call: Awaitable[TransitionResult]
    ) -> OperationResult[Session]:
        result = await self._guard(operation, call, session_id=session_id)
        if not result.ok:
            return result
        transition: TransitionResult = result.value
        if transition.applied:
            self.metrics.invalidate_user(transition.session.user_id)
        return OperationResult.success(transition.session, outcome=transition.outcome)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def start_session(
        self,
        user_id: str,
        initial_mode: SessionMode | str,
        task_id: Optional[str] = None,
    ) -> OperationResult[Session]:
        result = await self._guard(
            "start_session", self.sessions.start(user_id, initial_mode, task_id), user_id=user_id
        )
        if result.ok:
            self.metrics.invalidate_user(user_id)
        return result

    async def complete_session(
        self,
        session_id: str,
        end_time: datetime,
        focus_quality_rating: Optional[int] = None,
    ) -> OperationResult[Session]:
        return await self._transition(
            "complete_session",
            session_id,
            self.sessions.complete(session_id, end_time, focus_quality_rating),
        )

    async def cancel_session(
        self, session_id: str, end_time: datetime, notes: Optional[str] = None
    ) -> OperationResult[Session]:
        return await self._transition(
            "cancel_session", session_id, self.sessions.cancel(session_id, end_time, notes)
        )

    async def skip_session(self, session_id: str, end_time: datetime) -> OperationResult[Session]:
        return await self._transition(
            "skip_session", session_id, self.sessions.skip(session_id, end_time)
        )

    async def get_session(self, session_id: str) -> OperationResult[Session]:
        return await self._guard("get_session", self.sessions.get(session_id))

    async def list_recent_sessions(
        self, user_id: str, limit: Optional[int] = None
    ) -> OperationResult[List[Session]]:
        return await self._guard(
            "list_recent_sessions", self.sessions.list_recent(user_id, limit)
        )

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    @property
    def is_loading(self) -> bool:
        return self.metrics.is_loading

    @property
    def is_updating(self) -> bool:
        return self.metrics.is_updating

    async def get_metrics(
        self, user_id: Optional[str], time_range: Optional[TimeRange] = None
    ) -> OperationResult[List[EnergyMetric]]:
        return await self._guard("get_metrics", self.metrics.get_metrics(user_id, time_range))

    async def create_metric(
        self, user_id: str, payload: EnergyMetricCreate
    ) -> OperationResult[EnergyMetric]:
        return await self._guard("create_metric", self.metrics.create_metric(user_id, payload))

    async def summarize_energy(
        self, user_id: Optional[str], time_range: Optional[TimeRange] = None
    ) -> OperationResult[EnergySummary]:
        return await self._guard(
            "summarize_energy", self.metrics.summarize_energy(user_id, time_range)
        )

    async def get_session_stats(
        self, user_id: Optional[str], time_range: Optional[TimeRange] = None
    ) -> OperationResult[SessionStats]:
        return await self._guard(
            "get_session_stats", self.metrics.get_session_stats(user_id, time_range)
        )

    # ------------------------------------------------------------------
    # Tool usage
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def record_tool_usage(
        self,
        tool_name: str,
        tool_type: str,
        settings: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None,
    ) -> AsyncIterator[ToolActivation]:
        """
        Scope one tool activation.

        The user defaults to the one notifications are attached for.
        """
        async with self.tools.track(
            user_id or self.notifier.user_id, tool_name, tool_type, settings
        ) as activation:
            yield activation

    # ------------------------------------------------------------------
    # Achievement notifications
    # ------------------------------------------------------------------

    async def attach_achievement_notifications(self, user_id: str) -> SubscriptionHandle:
        """
        Raises:
            ValidationError: Missing user id
            SubscriptionError: The listener could not be opened
        """
        return await self.notifier.attach(user_id)

    async def detach_achievement_notifications(
        self, handle: Optional[SubscriptionHandle] = None
    ) -> bool:
        return await self.notifier.detach(handle)

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    async def health(self) -> Dict[str, Any]:
        store = self.backend.store
        if isinstance(store, SqliteRecordStore):
            return await check_database_health(store.db_path)
        try:
            await store.select(Query(relation=SESSIONS, limit=1))
        except PersistenceError as e:
            return {"status": "unhealthy", "error": e.message}
        return {"status": "healthy"}
