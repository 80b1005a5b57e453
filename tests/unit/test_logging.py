"""Tests for logging configuration."""

import logging

import structlog

from focuscore.core.config import Settings
from focuscore.core.logging import (
    LOG_FILE_PREFIX,
    configure_logging,
    log_context,
    order_trace_keys,
)


def _settings(**overrides):
    return Settings(_env_file=None, **overrides)


class TestConfigureLogging:
    def test_creates_run_file_in_configured_dir(self, tmp_path):
        log_file = configure_logging(_settings(logs_dir=tmp_path))

        assert log_file.parent == tmp_path
        assert log_file.name.startswith(LOG_FILE_PREFIX)
        assert log_file.exists()

    def test_old_runs_are_culled(self, tmp_path):
        for i in range(6):
            (tmp_path / f"{LOG_FILE_PREFIX}2020010{i}_000000.log").write_text("")

        configure_logging(_settings(logs_dir=tmp_path, log_runs_to_keep=3))

        assert len(list(tmp_path.glob(f"{LOG_FILE_PREFIX}*.log"))) == 3

    def test_level_from_settings(self, tmp_path):
        configure_logging(_settings(logs_dir=tmp_path, log_level="WARNING"))

        assert logging.getLogger().level == logging.WARNING
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_reconfigure_replaces_handlers(self, tmp_path):
        configure_logging(_settings(logs_dir=tmp_path))
        configure_logging(_settings(logs_dir=tmp_path, debug=True))

        assert len(logging.getLogger().handlers) == 2
        structlog.get_logger("test").info("reconfigured")


class TestTraceContext:
    def test_trace_keys_follow_event(self):
        event_dict = {
            "event": "session_transitioned",
            "status": "completed",
            "operation": "complete_session",
            "user_id": "user-1",
            "session_id": "s1",
        }

        ordered = order_trace_keys(None, "info", event_dict)

        assert list(ordered) == ["event", "user_id", "session_id", "operation", "status"]

    def test_empty_trace_keys_dropped(self):
        ordered = order_trace_keys(None, "info", {"event": "x", "user_id": None})

        assert ordered == {"event": "x"}

    def test_log_context_binds_and_restores(self):
        with log_context(request_id="req-1", user_id=None):
            assert structlog.contextvars.get_contextvars() == {"request_id": "req-1"}
            with log_context(operation="start_session"):
                assert structlog.contextvars.get_contextvars()["operation"] == "start_session"
            assert "operation" not in structlog.contextvars.get_contextvars()

        assert structlog.contextvars.get_contextvars() == {}
