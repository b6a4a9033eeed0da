"""
Luminax Logging
===============

Structured logging for the API process.

Records are emitted through a bounded queue (QueueHandler) and written by a
listener thread, so request handlers never block on console or file I/O.
Every record is enriched from a ContextVar with the request it belongs to:

    request_id  one id per HTTP request, echoed in the X-Request-ID header
    route       "METHOD /path"
    user_id     the authenticated learner, once known
    component   "api", "events", or the top-level package name
    operation   the service operation, if bound

Output
------
- JSON lines in production (or LOG_JSON=true); `extra={...}` fields are
  flattened into the top-level object.
- Human text in development, with extra fields appended as key=value pairs
  and level names coloured on a TTY.
- Optional daily rotating JSON file under LOGS_DIR (LOG_TO_FILE).

Public API: get_logger(), LogContext, set_log_context(), setup_logging(),
shutdown_logging(), get_logging_health().
"""

from __future__ import annotations

import json
import logging
import queue
import sys
import uuid
from contextvars import ContextVar, Token
from dataclasses import dataclass
from datetime import datetime, timezone
from logging import Logger
from logging.handlers import QueueHandler, QueueListener, TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Dict, List, Optional

from luminax.core.config.config import Config

_context: ContextVar[Dict[str, Any]] = ContextVar("luminax_log_context", default={})

CONTEXT_FIELDS = ("request_id", "route", "user_id", "component", "operation")

# Attributes every LogRecord carries; anything else on a record came from `extra`
_RECORD_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {
    "message",
    "asctime",
    "taskName",
    *CONTEXT_FIELDS,
}

_INITIALIZED_FLAG = "_luminax_logging_initialized"


# ============================================================================
# Settings
# ============================================================================


@dataclass(frozen=True, slots=True)
class LogSettings:
    level: int
    json_output: bool
    colors: bool
    to_file: bool
    logs_dir: Path
    file_name: str = "luminax.json.log"
    file_backups: int = 1
    queue_size: int = 10_000
    console_format: str = "%(asctime)s | %(levelname)-8s | %(name)-28s | %(message)s"
    date_format: str = "%H:%M:%S"

    @classmethod
    def from_config(cls) -> "LogSettings":
        json_output = Config.is_production() if Config.LOG_JSON is None else Config.LOG_JSON
        return cls(
            level=logging.getLevelNamesMapping().get(Config.LOG_LEVEL.upper(), logging.INFO),
            json_output=json_output,
            colors=not json_output and sys.stdout.isatty(),
            to_file=Config.LOG_TO_FILE,
            logs_dir=Path(Config.LOGS_DIR).resolve(),
        )


# ============================================================================
# Metrics
# ============================================================================


@dataclass(slots=True)
class LoggingMetrics:
    records_enqueued: int = 0
    records_dropped: int = 0
    listener_errors: int = 0


@dataclass(frozen=True, slots=True)
class LoggingHealth:
    initialized: bool
    queue_size: int
    queue_max_size: int
    records_enqueued: int
    records_dropped: int
    listener_errors: int


_metrics = LoggingMetrics()
_queue: Optional["queue.Queue[logging.LogRecord]"] = None
_listener: Optional[QueueListener] = None


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RECORD_ATTRS and not key.startswith("_")
    }


# ============================================================================
# Filter and formatters
# ============================================================================


class ContextFilter(logging.Filter):
    """Copy the bound request context onto the record in the emitting task."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        context = _context.get()
        for field in CONTEXT_FIELDS:
            # extra={"operation": ...} on the call wins over the bound context
            if getattr(record, field, None) is None:
                setattr(record, field, context.get(field))
        for key, value in context.items():
            if key not in _RECORD_ATTRS and not hasattr(record, key):
                setattr(record, key, value)
        if record.component is None:
            record.component = record.name.split(".", 1)[0]
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value

        for key, value in _extra_fields(record).items():
            payload[key if key not in payload else f"extra_{key}"] = value

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class ConsoleFormatter(logging.Formatter):
    LEVEL_COLORS = {
        "DEBUG": "\033[90m",
        "INFO": "\033[36m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[1;31m",
    }

    def __init__(self, fmt: str, datefmt: str, colors: bool) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._colors = colors

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        levelname = record.levelname
        if self._colors and levelname in self.LEVEL_COLORS:
            record.levelname = f"{self.LEVEL_COLORS[levelname]}{levelname}\033[0m"
        try:
            line = super().format(record)
        finally:
            record.levelname = levelname

        pairs = {
            "req": getattr(record, "request_id", None),
            "user": getattr(record, "user_id", None),
            **_extra_fields(record),
        }
        suffix = " ".join(f"{key}={value}" for key, value in pairs.items() if value is not None)
        if not suffix:
            return line
        # keep a traceback below the key=value suffix
        head, sep, tail = line.partition("\n")
        return f"{head} | {suffix}{sep}{tail}"


# ============================================================================
# Queue plumbing
# ============================================================================


class _BoundedQueueHandler(QueueHandler):
    def enqueue(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            _metrics.records_dropped += 1
            sys.stderr.write("luminax: log queue full, record dropped\n")
        else:
            _metrics.records_enqueued += 1


class _CountingQueueListener(QueueListener):
    def handleError(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        _metrics.listener_errors += 1
        sys.stderr.write("luminax: log handler failed while writing a record\n")


def _handlers(settings: LogSettings) -> List[logging.Handler]:
    console = logging.StreamHandler(sys.stdout)
    if settings.json_output:
        console.setFormatter(JSONFormatter())
    else:
        console.setFormatter(
            ConsoleFormatter(settings.console_format, settings.date_format, settings.colors)
        )
    handlers: List[logging.Handler] = [console]

    if settings.to_file:
        settings.logs_dir.mkdir(parents=True, exist_ok=True)
        rotating = TimedRotatingFileHandler(
            settings.logs_dir / settings.file_name,
            when="midnight",
            backupCount=settings.file_backups,
            encoding="utf-8",
            utc=True,
        )
        rotating.setFormatter(JSONFormatter())
        handlers.append(rotating)

    for handler in handlers:
        handler.setLevel(settings.level)
    return handlers


# ============================================================================
# Lifecycle
# ============================================================================


def setup_logging(settings: Optional[LogSettings] = None) -> None:
    """Install the queue handler on the root logger. Idempotent."""
    global _queue, _listener, _metrics

    root = logging.getLogger()
    if getattr(root, _INITIALIZED_FLAG, False):
        return

    settings = settings or LogSettings.from_config()
    _metrics = LoggingMetrics()
    _queue = queue.Queue(settings.queue_size)
    _listener = _CountingQueueListener(_queue, *_handlers(settings), respect_handler_level=True)
    _listener.start()

    # The filter runs on the emitting side so the ContextVar is still visible
    handler = _BoundedQueueHandler(_queue)
    handler.addFilter(ContextFilter())

    root.handlers.clear()
    root.setLevel(settings.level)
    root.addHandler(handler)

    # Request logging is done by the API middleware
    for noisy in ("sqlalchemy.engine", "httpx", "httpcore", "uvicorn.access", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    setattr(root, _INITIALIZED_FLAG, True)
    logging.getLogger(__name__).info(
        "Logging initialized",
        extra={
            "level": logging.getLevelName(settings.level),
            "json_output": settings.json_output,
            "to_file": settings.to_file,
        },
    )


def shutdown_logging() -> None:
    """Drain the queue and close handlers. Safe to call more than once."""
    global _queue, _listener

    root = logging.getLogger()
    if not getattr(root, _INITIALIZED_FLAG, False):
        return

    if _listener is not None:
        _listener.stop()
        for handler in _listener.handlers:
            handler.close()
        _listener = None

    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    setattr(root, _INITIALIZED_FLAG, False)
    _queue = None


def get_logging_health() -> LoggingHealth:
    return LoggingHealth(
        initialized=bool(getattr(logging.getLogger(), _INITIALIZED_FLAG, False)),
        queue_size=_queue.qsize() if _queue is not None else 0,
        queue_max_size=_queue.maxsize if _queue is not None else 0,
        records_enqueued=_metrics.records_enqueued,
        records_dropped=_metrics.records_dropped,
        listener_errors=_metrics.listener_errors,
    )


# ============================================================================
# Context
# ============================================================================


def get_logger(name: str) -> Logger:
    return logging.getLogger(name)


class LogContext:
    """
    Bind request context for the duration of a block; the previous context is
    restored on exit. A request id is generated when none is given.

    >>> async with LogContext(route="POST /api/study/sessions", component="api"):
    ...     logger.info("recording session")
    """

    def __init__(self, request_id: Optional[str] = None, **fields: Any) -> None:
        self.context: Dict[str, Any] = {
            **_context.get(),
            **{key: value for key, value in fields.items() if value is not None},
            "request_id": request_id or uuid.uuid4().hex[:12],
        }
        self._token: Optional[Token[Dict[str, Any]]] = None

    def __enter__(self) -> "LogContext":
        self._token = _context.set(self.context)
        return self

    def __exit__(self, *exc_info: Any) -> None:
        if self._token is not None:
            _context.reset(self._token)
            self._token = None

    async def __aenter__(self) -> "LogContext":
        return self.__enter__()

    async def __aexit__(self, *exc_info: Any) -> None:
        self.__exit__(*exc_info)


def set_log_context(**fields: Any) -> None:
    """
    Add fields to the current context (e.g. the user id once the bearer token
    is verified). Lasts until the enclosing LogContext exits.
    """
    updated = dict(_context.get())
    updated.update({key: value for key, value in fields.items() if value is not None})
    _context.set(updated)


setup_logging()
