"""
emailgate Logging Subsystem

Purpose
-------
Single place where the process-wide logging stack is assembled. Every module
obtains its logger through `get_logger(__name__)` and never configures
handlers on its own.

Features
--------
- Structured JSON records for production aggregation.
- Human-readable (optionally colored) console output in development.
- Verification context (user, guild, phase, command) carried through
  asyncio tasks with ContextVars and stamped onto every record.
- Handlers run on a background QueueListener thread so file writes never
  block the event loop.
- A bounded queue that drops records instead of stalling under a log storm.
- A daily-rotated JSON file kept as a short local backup.

Public API
----------
- setup_logging() / shutdown_logging()
- get_logger(name)
- LogContext (sync and async context manager)
- set_log_context() / clear_log_context()
- get_logging_health()

Notes
-----
`setup_logging()` is idempotent and is called explicitly from the bootstrap
once configuration has been loaded, so log level and format reflect the
environment rather than import-time defaults.
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
from typing import Any, Dict, Optional

from emailgate.core.config.config import Config


_log_context: ContextVar[Dict[str, Any]] = ContextVar("emailgate_log_context", default={})

_INIT_FLAG = "_emailgate_logging_initialized"

_CONTEXT_FIELDS = (
    "user_id",
    "guild_id",
    "command",
    "phase",
    "correlation_id",
    "component",
    "operation",
)


# ============================================================================
# Settings
# ============================================================================


@dataclass(frozen=True, slots=True)
class LoggerSettings:
    """Formatting constants plus live views over Config."""

    CONSOLE_FORMAT: str = "%(asctime)s | %(levelname)-8s | %(name)-36s | %(message)s"
    DATE_FORMAT: str = "%Y-%m-%d %H:%M:%S"
    FILE_BASENAME: str = "emailgate.json.log"
    FILE_BACKUP_COUNT: int = 1
    QUEUE_MAX_SIZE: int = 10_000

    @property
    def environment(self) -> str:
        return str(getattr(Config, "ENVIRONMENT", "development")).lower()

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def logs_dir(self) -> Path:
        return Path(Config.LOGS_DIR).resolve()

    @property
    def level(self) -> int:
        name = getattr(Config, "LOG_LEVEL", "INFO")
        if not isinstance(name, str):
            return logging.INFO
        return getattr(logging, name.upper(), logging.INFO)

    @property
    def use_json(self) -> bool:
        flag = getattr(Config, "LOG_JSON", None)
        return self.is_production if flag is None else bool(flag)

    @property
    def use_colors(self) -> bool:
        return not self.use_json and sys.stdout.isatty()


LOGGER_SETTINGS = LoggerSettings()


# ============================================================================
# Health
# ============================================================================


@dataclass(slots=True)
class LoggingMetrics:
    records_enqueued: int = 0
    records_dropped: int = 0
    handler_errors: int = 0


@dataclass(frozen=True, slots=True)
class LoggingHealth:
    initialized: bool
    queue_size: int
    queue_max_size: int
    records_enqueued: int
    records_dropped: int
    handler_errors: int


_metrics = LoggingMetrics()
_queue: Optional["queue.Queue[logging.LogRecord]"] = None
_listener: Optional[QueueListener] = None


# ============================================================================
# Filters & Formatters
# ============================================================================


class ContextFilter(logging.Filter):
    """Copies the active LogContext onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        context = _log_context.get({})
        for field in _CONTEXT_FIELDS:
            if getattr(record, field, None) is None:
                setattr(record, field, context.get(field, "N/A"))
        if record.component == "N/A":
            record.component = record.name.rsplit(".", 1)[-1]
        return True


class ColoredFormatter(logging.Formatter):
    LEVEL_COLORS: Dict[str, str] = {
        "DEBUG": "\033[90m",
        "INFO": "\033[94m",
        "WARNING": "\033[93m",
        "ERROR": "\033[91m",
        "CRITICAL": "\033[1;91m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        levelname = record.levelname
        color = self.LEVEL_COLORS.get(levelname)
        if color:
            record.levelname = f"{color}{levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


class JSONFormatter(logging.Formatter):
    """One JSON object per line; `extra=` keys are nested under "extra"."""

    _RESERVED = frozenset(
        logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
    ) | {"message", "asctime", "taskName"} | set(_CONTEXT_FIELDS)

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }

        for field in _CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value not in (None, "N/A"):
                payload[field] = value

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in self._RESERVED and not key.startswith("_")
        }
        if extra:
            payload["extra"] = extra

        return json.dumps(payload, ensure_ascii=False, default=str)


# ============================================================================
# Queue plumbing
# ============================================================================


class BoundedQueueHandler(QueueHandler):
    def enqueue(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        _metrics.records_enqueued += 1
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            _metrics.records_dropped += 1
            sys.stderr.write("emailgate: log queue full, record dropped\n")


class CountingQueueListener(QueueListener):
    def handleError(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        _metrics.handler_errors += 1
        sys.stderr.write("emailgate: log handler failed while emitting a record\n")


def _console_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(LOGGER_SETTINGS.level)
    if LOGGER_SETTINGS.use_json:
        handler.setFormatter(JSONFormatter())
    elif LOGGER_SETTINGS.use_colors:
        handler.setFormatter(
            ColoredFormatter(LOGGER_SETTINGS.CONSOLE_FORMAT, LOGGER_SETTINGS.DATE_FORMAT)
        )
    else:
        handler.setFormatter(
            logging.Formatter(LOGGER_SETTINGS.CONSOLE_FORMAT, LOGGER_SETTINGS.DATE_FORMAT)
        )
    return handler


def _file_handler() -> logging.Handler:
    LOGGER_SETTINGS.logs_dir.mkdir(parents=True, exist_ok=True)
    handler = TimedRotatingFileHandler(
        filename=str(LOGGER_SETTINGS.logs_dir / LOGGER_SETTINGS.FILE_BASENAME),
        when="midnight",
        backupCount=LOGGER_SETTINGS.FILE_BACKUP_COUNT,
        encoding="utf-8",
        utc=True,
    )
    handler.setLevel(LOGGER_SETTINGS.level)
    handler.setFormatter(JSONFormatter())
    return handler


# ============================================================================
# Lifecycle
# ============================================================================


def setup_logging() -> None:
    global _queue, _listener, _metrics

    root = logging.getLogger()
    if getattr(root, _INIT_FLAG, False):
        return

    _metrics = LoggingMetrics()

    root.setLevel(LOGGER_SETTINGS.level)
    root.handlers.clear()
    root.filters.clear()

    _queue = queue.Queue(LOGGER_SETTINGS.QUEUE_MAX_SIZE)
    _listener = CountingQueueListener(
        _queue, _console_handler(), _file_handler(), respect_handler_level=True
    )
    _listener.start()

    # Filter on the handler so records from child loggers are enriched too
    queue_handler = BoundedQueueHandler(_queue)
    queue_handler.setLevel(LOGGER_SETTINGS.level)
    queue_handler.addFilter(ContextFilter())
    root.addHandler(queue_handler)

    for noisy in ("discord", "discord.http", "discord.gateway", "aiosmtplib", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    setattr(root, _INIT_FLAG, True)

    logging.getLogger(__name__).info(
        "Logging initialized",
        extra={
            "environment": LOGGER_SETTINGS.environment,
            "level": logging.getLevelName(LOGGER_SETTINGS.level),
            "json": LOGGER_SETTINGS.use_json,
            "logs_dir": str(LOGGER_SETTINGS.logs_dir),
        },
    )


def shutdown_logging() -> None:
    global _queue, _listener

    root = logging.getLogger()
    if not getattr(root, _INIT_FLAG, False):
        return

    if _listener is not None:
        _listener.stop()
        _listener = None

    for handler in list(root.handlers):
        handler.flush()
        handler.close()
        root.removeHandler(handler)

    setattr(root, _INIT_FLAG, False)
    _queue = None


def get_logging_health() -> LoggingHealth:
    return LoggingHealth(
        initialized=bool(getattr(logging.getLogger(), _INIT_FLAG, False)),
        queue_size=_queue.qsize() if _queue is not None else 0,
        queue_max_size=_queue.maxsize if _queue is not None else 0,
        records_enqueued=_metrics.records_enqueued,
        records_dropped=_metrics.records_dropped,
        handler_errors=_metrics.handler_errors,
    )


# ============================================================================
# Public API
# ============================================================================


def get_logger(name: str) -> Logger:
    return logging.getLogger(name)


class LogContext:
    """
    Scoped logging context.

    Usage
    -----
    >>> async with LogContext(user_id=1, guild_id=2, command="verify"):
    ...     logger.info("Verification started")
    """

    def __init__(
        self,
        user_id: Optional[int] = None,
        guild_id: Optional[int] = None,
        command: Optional[str] = None,
        phase: Optional[str] = None,
        component: Optional[str] = None,
        operation: Optional[str] = None,
        correlation_id: Optional[str] = None,
        **extra: Any,
    ) -> None:
        context = dict(_log_context.get({}))
        updates = {
            "user_id": str(user_id) if user_id is not None else None,
            "guild_id": str(guild_id) if guild_id is not None else None,
            "command": command,
            "phase": phase,
            "component": component,
            "operation": operation,
        }
        context.update({k: v for k, v in updates.items() if v is not None})
        context["correlation_id"] = (
            correlation_id or context.get("correlation_id") or uuid.uuid4().hex[:8]
        )
        context.update(extra)
        self.context = context
        self._token: Optional[Token[Dict[str, Any]]] = None

    def __enter__(self) -> "LogContext":
        self._token = _log_context.set(self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _log_context.reset(self._token)
            self._token = None

    async def __aenter__(self) -> "LogContext":
        return self.__enter__()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.__exit__(exc_type, exc_val, exc_tb)


def set_log_context(**fields: Any) -> None:
    """Merge fields into the current context without a scope."""
    current = dict(_log_context.get({}))
    for key, value in fields.items():
        if value is None:
            continue
        current[key] = str(value) if key in ("user_id", "guild_id") else value
    _log_context.set(current)


def clear_log_context() -> None:
    _log_context.set({})
