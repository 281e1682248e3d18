"""Structured logging for CrispSync services.

Provides JSON-formatted logging with sync context support
(website, session, fingerprint, page) for easier debugging of
ingestion runs and log aggregation. A plain-text mode keeps the
context fields as trailing ``key=value`` pairs.
"""

import json
import logging
import sys
import traceback
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Optional


# Cache for logger instances
_loggers: dict[str, "StructuredLogger"] = {}

# Default configuration
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_SERVICE_NAME = "crispsync"

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Attributes every LogRecord carries; anything else came in through ``extra``
RESERVED_FIELDS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "message", "asctime", "taskName",
})


def extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    """Collect the structured fields attached to a log record.

    Args:
        record: Log record to inspect

    Returns:
        Fields passed through ``extra``, with values json cannot encode
        converted to strings
    """
    fields: dict[str, Any] = {}
    for key, value in record.__dict__.items():
        if key in RESERVED_FIELDS or key.startswith("_"):
            continue
        try:
            json.dumps(value)
            fields[key] = value
        except (TypeError, ValueError):
            fields[key] = str(value)
    return fields


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging.

    Formats log records as JSON for easier parsing and analysis.
    """

    def __init__(self, service_name: str = DEFAULT_SERVICE_NAME):
        """Initialize JSON formatter.

        Args:
            service_name: Name of the service for log identification
        """
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON string representation of the log record
        """
        log_entry = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
        }

        # Add source location for warnings and errors
        if record.levelno >= logging.WARNING:
            log_entry["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            log_entry["exception"] = "".join(
                traceback.format_exception(*record.exc_info)
            )

        log_entry.update(extra_fields(record))
        return json.dumps(log_entry)


class KeyValueFormatter(logging.Formatter):
    """Human-readable formatter that keeps the structured fields.

    Renders the usual text line followed by ``key=value`` pairs, sorted
    by key, so a local run still shows which website, session or page a
    line belongs to.
    """

    def __init__(self, fmt: str = TEXT_FORMAT):
        super().__init__(fmt)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = extra_fields(record)
        if not fields:
            return line
        pairs = " ".join(f"{key}={fields[key]}" for key in sorted(fields))
        return f"{line} {pairs}"


@dataclass
class SyncContext:
    """Identifiers attached to every log line of one sync operation.

    Backfill pages, message fetches and event handling each build one of
    these so their log lines can be correlated by website and session.
    """

    website_id: Optional[str] = None
    session_id: Optional[str] = None
    fingerprint: Optional[int] = None
    page: Optional[int] = None
    extra: dict[str, Any] = field(default_factory=dict)

    def with_fields(self, **changes: Any) -> "SyncContext":
        """Copy of this context with some identifiers changed.

        Args:
            **changes: Identifier fields to override (``page``, ``session_id``...)

        Returns:
            New SyncContext; this one is left untouched
        """
        changes.setdefault("extra", dict(self.extra))
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        """Convert context to dictionary for logging.

        Returns:
            Dictionary with the identifiers that are set
        """
        result: dict[str, Any] = {}

        if self.website_id:
            result["website_id"] = self.website_id
        if self.session_id:
            result["session_id"] = self.session_id
        if self.fingerprint is not None:
            result["fingerprint"] = self.fingerprint
        if self.page is not None:
            result["page"] = self.page

        result.update(self.extra)

        return result


class StructuredLogger:
    """Structured logger with context support.

    Wraps the standard logging module with support for
    structured keyword fields and sync context.
    """

    def __init__(self, name: str):
        """Initialize structured logger.

        Args:
            name: Logger name (typically module name)
        """
        self.name = name
        self._logger = logging.getLogger(name)

    def _log(
        self,
        level: int,
        msg: str,
        context: Optional[SyncContext] = None,
        exc_info: bool = False,
        **kwargs: Any,
    ) -> None:
        """Internal logging method.

        Args:
            level: Log level
            msg: Log message
            context: Optional sync context
            exc_info: Whether to include exception info
            **kwargs: Additional fields to include in log
        """
        # Explicit keyword fields win over context identifiers
        extra = context.to_dict() if context else {}
        extra.update(kwargs)
        self._logger.log(level, msg, exc_info=exc_info, extra=extra)

    def debug(
        self,
        msg: str,
        context: Optional[SyncContext] = None,
        **kwargs: Any,
    ) -> None:
        """Log debug message."""
        self._log(logging.DEBUG, msg, context, **kwargs)

    def info(
        self,
        msg: str,
        context: Optional[SyncContext] = None,
        **kwargs: Any,
    ) -> None:
        """Log info message."""
        self._log(logging.INFO, msg, context, **kwargs)

    def warning(
        self,
        msg: str,
        context: Optional[SyncContext] = None,
        **kwargs: Any,
    ) -> None:
        """Log warning message."""
        self._log(logging.WARNING, msg, context, **kwargs)

    def error(
        self,
        msg: str,
        context: Optional[SyncContext] = None,
        exc_info: bool = False,
        **kwargs: Any,
    ) -> None:
        """Log error message."""
        self._log(logging.ERROR, msg, context, exc_info=exc_info, **kwargs)


def get_logger(name: str) -> StructuredLogger:
    """Get or create a structured logger.

    Args:
        name: Logger name (typically module name)

    Returns:
        StructuredLogger instance
    """
    if name not in _loggers:
        _loggers[name] = StructuredLogger(name)
    return _loggers[name]


def configure_logging(
    level: str = DEFAULT_LOG_LEVEL,
    json_format: bool = True,
    service_name: str = DEFAULT_SERVICE_NAME,
) -> None:
    """Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Whether to use JSON format
        service_name: Service name for log identification

    Raises:
        ValueError: If ``level`` is not a known level name
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # One handler only, even when called again
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    if json_format:
        handler.setFormatter(JsonFormatter(service_name=service_name))
    else:
        handler.setFormatter(KeyValueFormatter())

    root_logger.addHandler(handler)
