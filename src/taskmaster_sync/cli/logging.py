"""
Logging - Structured log output for the CLI.

Two formats:
- text: human readable, optionally coloured, for terminals
- json: one JSON object per line, for log aggregation

Components log through ``logging.getLogger("<ComponentName>")``; this module
only configures handlers and formatters on the root logger.
"""

from __future__ import annotations

import json
import logging
import sys
import traceback
from datetime import datetime, timezone
from typing import Any


# Attributes every LogRecord has; anything else was passed via ``extra``.
_STANDARD_RECORD_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "message",
        "asctime",
    }
)

NOISY_LOGGERS = ("urllib3", "requests")


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {k: v for k, v in record.__dict__.items() if k not in _STANDARD_RECORD_ATTRS and not k.startswith("_")}


class JSONFormatter(logging.Formatter):
    """
    Format records as single-line JSON objects.

    Output shape::

        {"timestamp": "2026-01-15T10:30:00.123Z", "level": "INFO",
         "logger": "SyncOrchestrator", "message": "...", "context": {...}}
    """

    def __init__(
        self,
        static_fields: dict[str, Any] | None = None,
        include_timestamp: bool = True,
        include_level: bool = True,
        include_logger: bool = True,
        include_location: bool = False,
    ):
        super().__init__()
        self.static_fields = static_fields or {}
        self.include_timestamp = include_timestamp
        self.include_level = include_level
        self.include_logger = include_logger
        self.include_location = include_location

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {}

        if self.include_timestamp:
            ts = datetime.fromtimestamp(record.created, tz=timezone.utc)
            entry["timestamp"] = ts.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ts.microsecond // 1000:03d}Z"
        if self.include_level:
            entry["level"] = record.levelname
        if self.include_logger:
            entry["logger"] = record.name

        entry["message"] = record.getMessage()
        entry.update(self.static_fields)

        if self.include_location:
            entry["location"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }

        context = _extra_fields(record)
        if context:
            entry["context"] = context

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, exc_tb = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc_value),
                "traceback": "".join(traceback.format_exception(exc_type, exc_value, exc_tb)),
            }

        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable formatter: ``HH:MM:SS LEVEL    logger: message``."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[2m",
        logging.INFO: "\033[36m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[1m\033[31m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True, include_context: bool = False):
        super().__init__(datefmt="%H:%M:%S")
        self.use_colors = use_colors
        self.include_context = include_context

    def format(self, record: logging.LogRecord) -> str:
        level = f"{record.levelname:<8}"
        if self.use_colors:
            level = f"{self.LEVEL_COLORS.get(record.levelno, '')}{level}{self.RESET}"

        line = f"{self.formatTime(record, self.datefmt)} {level} {record.name}: {record.getMessage()}"

        if self.include_context:
            context = _extra_fields(record)
            if context:
                line += " " + " ".join(f"{k}={v!r}" for k, v in sorted(context.items()))

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class ContextLogger:
    """
    Logger wrapper that attaches fixed context to every record.

    ``bind()`` returns a new wrapper; the original is left untouched.
    """

    def __init__(self, name: str, context: dict[str, Any] | None = None):
        self._logger = logging.getLogger(name)
        self._context = dict(context or {})

    def bind(self, **context: Any) -> ContextLogger:
        return ContextLogger(self._logger.name, {**self._context, **context})

    def _log(self, level: int, msg: str, *args: Any, **kwargs: Any) -> None:
        extra = {**self._context, **kwargs.pop("extra", {})}
        self._logger.log(level, msg, *args, extra=extra, **kwargs)

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.ERROR, msg, *args, **kwargs)

    def critical(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.CRITICAL, msg, *args, **kwargs)


def setup_logging(
    level: int = logging.INFO,
    log_format: str = "text",
    static_fields: dict[str, Any] | None = None,
    log_file: str | None = None,
) -> None:
    """
    Configure the root logger.

    Existing root handlers are replaced. Logs go to stderr so they never mix
    with command output on stdout.

    Args:
        level: Root log level
        log_format: "text" or "json"
        static_fields: Fields added to every JSON record
        log_file: Optional file receiving the same records, never coloured
    """
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    root.setLevel(level)

    def make_formatter(use_colors: bool) -> logging.Formatter:
        if log_format == "json":
            return JSONFormatter(static_fields=static_fields)
        return TextFormatter(use_colors=use_colors)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(make_formatter(use_colors=sys.stderr.isatty()))
    root.addHandler(console)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(make_formatter(use_colors=False))
        root.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str, **context: Any) -> ContextLogger:
    return ContextLogger(name, context)
