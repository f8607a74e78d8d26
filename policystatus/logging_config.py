"""
Structured logging for policystatus.

Log calls carry keyword fields next to the message. The fields travel on
the stdlib ``logging.LogRecord`` as ``structured_fields`` and are rendered
by JSONFormatter or TextFormatter, together with any fields set on the
current context. A ``policy`` field is pulled out and shown on its own, so
every line about one policy can be found by name.

Usage:
    from policystatus.logging_config import configure_logging, get_logger

    configure_logging(level="INFO", json_output=True)

    log = get_logger(__name__).with_fields(policy="br1-policy")
    log.info("setPolicySuccess", ready_nodes=3)
    # {"ts": "...", "level": "INFO", "logger": "...", "msg": "setPolicySuccess",
    #  "policy": "br1-policy", "ready_nodes": 3}

    with LogContext(reconcile_id="r42"):
        log.info("enactments count: ...")  # also carries reconcile_id

Environment:
    POLICYSTATUS_LOG_LEVEL: default level (INFO)
    POLICYSTATUS_LOG_FORMAT: "json" (default) or "text"
    POLICYSTATUS_LOG_FILE: optional path of a rotating log file
    POLICYSTATUS_LOG_MAX_BYTES / POLICYSTATUS_LOG_BACKUP_COUNT: rotation
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import os
import sys
import threading
from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

LOG_LEVEL = os.environ.get("POLICYSTATUS_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.environ.get("POLICYSTATUS_LOG_FORMAT", "json")
LOG_FILE = os.environ.get("POLICYSTATUS_LOG_FILE", "")
LOG_MAX_BYTES = int(os.environ.get("POLICYSTATUS_LOG_MAX_BYTES", 10 * 1024 * 1024))
LOG_BACKUP_COUNT = int(os.environ.get("POLICYSTATUS_LOG_BACKUP_COUNT", 5))

PACKAGE_LOGGER = "policystatus"

# Fields added to every record emitted in the current context
_log_context: ContextVar[Dict[str, Any]] = ContextVar("policystatus_log_context", default={})


@dataclass
class LogRecord:
    """One rendered log line before it is turned into JSON or text."""

    timestamp: str
    level: str
    logger: str
    message: str
    fields: Dict[str, Any] = field(default_factory=dict)
    policy: Optional[str] = None
    exception: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "ts": self.timestamp,
            "level": self.level,
            "logger": self.logger,
            "msg": self.message,
        }
        if self.policy:
            out["policy"] = self.policy
        out.update(self.fields)
        if self.exception:
            out["exception"] = self.exception
        return out

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    def to_text(self) -> str:
        head = f"{self.timestamp} [{self.level}] [{self.logger}]"
        if self.policy:
            head += f" [{self.policy}]"
        line = f"{head} {self.message}"
        if self.fields:
            line += " " + " ".join(f"{k}={v}" for k, v in self.fields.items())
        if self.exception:
            line += "\n" + self.exception.get("traceback", "")
        return line


class _StructuredFormatter(logging.Formatter):
    """Builds a LogRecord from a stdlib record; subclasses render it."""

    def _build(self, record: logging.LogRecord, timestamp: str, logger_name: str) -> LogRecord:
        fields = {**_log_context.get(), **getattr(record, "structured_fields", {})}
        policy = fields.pop("policy", None)
        return LogRecord(
            timestamp=timestamp,
            level=record.levelname,
            logger=logger_name,
            message=record.getMessage(),
            fields=fields,
            policy=None if policy is None else str(policy),
        )


class JSONFormatter(_StructuredFormatter):
    """One JSON object per line, UTC timestamps with a ``Z`` suffix."""

    def format(self, record: logging.LogRecord) -> str:
        now = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        out = self._build(record, now, record.name)
        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            out.exception = {
                "type": exc_type.__name__ if exc_type else "Unknown",
                "message": str(exc_value) if exc_value else "",
                "traceback": self.formatException(record.exc_info),
            }
        return out.to_json()


class TextFormatter(_StructuredFormatter):
    """Single-line text with the short logger name, for terminals."""

    def format(self, record: logging.LogRecord) -> str:
        now = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        out = self._build(record, now, record.name.rsplit(".", 1)[-1])
        if record.exc_info:
            out.exception = {"traceback": self.formatException(record.exc_info)}
        return out.to_text()


class StructuredLogger:
    """
    Logger that attaches keyword fields to each record.

    Instances are cheap and immutable: ``with_fields`` returns a new logger
    with extra bound fields instead of changing this one, so a caller can
    scope a logger to one policy for a single update without affecting
    other callers.
    """

    def __init__(self, name: str, fields: Optional[Dict[str, Any]] = None):
        self._name = name
        self._logger = logging.getLogger(name)
        self._fields: Dict[str, Any] = dict(fields or {})

    @property
    def name(self) -> str:
        return self._name

    @property
    def fields(self) -> Dict[str, Any]:
        return dict(self._fields)

    def with_fields(self, **fields: Any) -> StructuredLogger:
        return StructuredLogger(self._name, {**self._fields, **fields})

    def isEnabledFor(self, level: int) -> bool:
        return self._logger.isEnabledFor(level)

    def _log(self, level: int, message: str, exc_info: bool = False, **fields: Any) -> None:
        if self._logger.isEnabledFor(level):
            self._logger.log(
                level,
                message,
                exc_info=exc_info,
                extra={"structured_fields": {**self._fields, **fields}},
            )

    def debug(self, message: str, **fields: Any) -> None:
        self._log(logging.DEBUG, message, **fields)

    def info(self, message: str, **fields: Any) -> None:
        self._log(logging.INFO, message, **fields)

    def warning(self, message: str, **fields: Any) -> None:
        self._log(logging.WARNING, message, **fields)

    def error(self, message: str, exc_info: bool = False, **fields: Any) -> None:
        self._log(logging.ERROR, message, exc_info=exc_info, **fields)

    def exception(self, message: str, **fields: Any) -> None:
        """Log at ERROR with the active exception's traceback."""
        self._log(logging.ERROR, message, exc_info=True, **fields)


class LogContext:
    """Add fields to every record logged inside the ``with`` block."""

    def __init__(self, **fields: Any):
        self._fields = fields
        self._token: Optional[Token[Dict[str, Any]]] = None

    def __enter__(self) -> LogContext:
        self._token = _log_context.set({**_log_context.get(), **self._fields})
        return self

    def __exit__(self, *exc: Any) -> None:
        if self._token is not None:
            _log_context.reset(self._token)
            self._token = None


def set_context(**fields: Any) -> None:
    _log_context.set({**_log_context.get(), **fields})


def get_context() -> Dict[str, Any]:
    return _log_context.get()


def clear_context() -> None:
    _log_context.set({})


_loggers: Dict[str, StructuredLogger] = {}
_loggers_lock = threading.Lock()


def get_logger(name: str) -> StructuredLogger:
    """Return the cached StructuredLogger for ``name``, without bound fields."""
    with _loggers_lock:
        if name not in _loggers:
            _loggers[name] = StructuredLogger(name)
        return _loggers[name]


def configure_logging(
    level: str | None = None,
    json_output: bool | None = None,
    log_file: str | None = None,
    propagate: bool = True,
) -> None:
    """
    Install policystatus formatting on the root logger.

    Replaces the root handlers with a stderr handler and, when a log file is
    given or set in the environment, a rotating file handler. Arguments left
    as None fall back to the POLICYSTATUS_LOG_* environment variables.

    Args:
        level: Level name such as "DEBUG" or "INFO".
        json_output: JSON lines when True, text when False.
        log_file: Path of a rotating log file.
        propagate: Whether the "policystatus" logger propagates to root.
    """
    log_level = getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO)
    if json_output is None:
        json_output = LOG_FORMAT == "json"
    formatter = JSONFormatter() if json_output else TextFormatter()

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    path = log_file or LOG_FILE
    if path:
        handlers.append(
            logging.handlers.RotatingFileHandler(
                path, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT
            )
        )

    root = logging.getLogger()
    for old in root.handlers[:]:
        root.removeHandler(old)
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(log_level)
        root.addHandler(handler)
    root.setLevel(log_level)

    package = logging.getLogger(PACKAGE_LOGGER)
    package.setLevel(log_level)
    package.propagate = propagate


__all__ = [
    "LogRecord",
    "JSONFormatter",
    "TextFormatter",
    "StructuredLogger",
    "LogContext",
    "set_context",
    "get_context",
    "clear_context",
    "get_logger",
    "configure_logging",
]
