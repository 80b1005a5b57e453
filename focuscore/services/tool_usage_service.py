"""
Tool usage analytics tracker.

Measures how long a user keeps one tool view open. Activations shorter
than the configured threshold are accidental opens and are dropped;
longer ones are appended to the tool usage log. Tracking is best-effort
telemetry: submission failures are logged and never reach the caller.
"""

import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable, Dict, Optional

import structlog

from focuscore.core.config import ToolUsageConfig, engine_config
from focuscore.domain.models.tool_usage import ToolActivation, ToolUsageEvent
from focuscore.persistence.repositories.tool_usage_repo import ToolUsageRepository

log = structlog.get_logger(__name__)


class ToolUsageTracker:
    """Acquire/release pairs around a tool activation."""

    def __init__(
        self,
        repo: ToolUsageRepository,
        config: Optional[ToolUsageConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.repo = repo
        self.config = config or engine_config.tool_usage
        self._clock = clock
        self._wall_clock = wall_clock

    def acquire(
        self,
        user_id: Optional[str],
        tool_name: str,
        tool_type: str,
        settings: Optional[Dict[str, Any]] = None,
    ) -> ToolActivation:
        """Record that a tool view was entered."""
        return ToolActivation(
            user_id=user_id,
            tool_name=tool_name,
            tool_type=tool_type,
            acquired_at=self._clock(),
            settings=dict(settings) if settings else None,
        )

    async def release(self, activation: ToolActivation) -> Optional[ToolUsageEvent]:
        """
        Close an activation and persist it if it lasted long enough.

        Returns:
            The stored event, or None when the activation was too short,
            already released, or the append failed.
        """
        if activation.released:
            return None
        activation.released = True

        elapsed = max(0, round(self._clock() - activation.acquired_at))
        if elapsed < self.config.min_duration_seconds:
            log.debug(
                "tool_usage_discarded",
                tool_name=activation.tool_name,
                elapsed_seconds=elapsed,
                threshold_seconds=self.config.min_duration_seconds,
            )
            return None

        event = ToolUsageEvent(
            user_id=activation.user_id,
            tool_name=activation.tool_name,
            tool_type=activation.tool_type,
            session_duration=elapsed,
            settings=activation.settings,
        )
        try:
            stored = await self.repo.append(event, created_at=self._wall_clock())
        except Exception as e:
            log.warning(
                "tool_usage_submit_failed",
                tool_name=activation.tool_name,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

        log.info(
            "tool_usage_recorded",
            user_id=activation.user_id,
            tool_name=activation.tool_name,
            tool_type=activation.tool_type,
            session_duration=elapsed,
        )
        return stored

    @asynccontextmanager
    async def track(
        self,
        user_id: Optional[str],
        tool_name: str,
        tool_type: str,
        settings: Optional[Dict[str, Any]] = None,
    ) -> AsyncIterator[ToolActivation]:
        """Scope one activation; release runs on every exit path."""
        activation = self.acquire(user_id, tool_name, tool_type, settings)
        try:
            yield activation
        finally:
            await self.release(activation)
