"""
structlog setup for the focus engine.

Every event carries whichever trace keys are bound for the current task
(request, user, session, engine operation), rendered first and in a fixed
order so one user's activity can be followed across components. Output
goes to the console and to a per-run file under ``settings.logs_dir``.
"""

import logging
from contextlib import contextmanager, suppress
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator, List, Optional

import structlog
from structlog.typing import EventDict, Processor, WrappedLogger

from focuscore.core.config import Settings, settings as default_settings

LOG_FILE_PREFIX = "focuscore_"

TRACE_KEYS = ("request_id", "user_id", "session_id", "operation")

# Per-request HTTP lines from the REST store and its polling feed.
QUIET_LOGGERS = ("httpx", "httpcore")


def order_trace_keys(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Move bound trace keys directly after the event name; drop empty ones."""
    ordered: EventDict = {"event": event_dict.pop("event", None)}
    for key in TRACE_KEYS:
        value = event_dict.pop(key, None)
        if value is not None:
            ordered[key] = value
    ordered.update(event_dict)
    return ordered


@contextmanager
def log_context(**values: Any) -> Iterator[None]:
    """Bind trace keys for the enclosed block. None values are not bound."""
    bound = {k: v for k, v in values.items() if v is not None}
    with structlog.contextvars.bound_contextvars(**bound):
        yield


def _cull_old_logs(logs_dir: Path, keep: int) -> None:
    runs = sorted(
        logs_dir.glob(f"{LOG_FILE_PREFIX}*.log"),
        key=lambda p: p.stat().st_mtime,
        reverse=True,
    )
    for stale in runs[keep:]:
        with suppress(OSError):
            stale.unlink()


def configure_logging(
    config: Optional[Settings] = None,
    logs_dir: Optional[Path] = None,
    log_runs_to_keep: Optional[int] = None,
) -> Path:
    """
    Configure structlog and the root handlers. Returns the run's log file.

    Safe to call again; existing root handlers are replaced.
    """
    config = config or default_settings
    logs_dir = logs_dir or config.logs_dir
    keep = log_runs_to_keep if log_runs_to_keep is not None else config.log_runs_to_keep
    level = logging.getLevelName(config.log_level)

    logs_dir.mkdir(parents=True, exist_ok=True)
    _cull_old_logs(logs_dir, keep=max(keep - 1, 0))
    log_file = logs_dir / f"{LOG_FILE_PREFIX}{datetime.now():%Y%m%d_%H%M%S}.log"

    processors: List[Processor] = [
        structlog.contextvars.merge_contextvars,
        order_trace_keys,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if config.debug:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        processors += [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]

    root = logging.getLogger()
    for handler in root.handlers[:]:
        handler.close()
        root.removeHandler(handler)
    root.setLevel(level)
    for handler in (logging.StreamHandler(), logging.FileHandler(log_file, mode="w")):
        handler.setFormatter(logging.Formatter("%(message)s"))
        root.addHandler(handler)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    return log_file
