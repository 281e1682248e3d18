"""Observability package for logging and metrics."""

from crispsync_core.observability.logging import (
    StructuredLogger,
    JsonFormatter,
    KeyValueFormatter,
    SyncContext,
    get_logger,
    configure_logging,
)
from crispsync_core.observability.metrics import (
    MetricsCollector,
    get_metrics,
)

__all__ = [
    "StructuredLogger",
    "JsonFormatter",
    "KeyValueFormatter",
    "SyncContext",
    "get_logger",
    "configure_logging",
    "MetricsCollector",
    "get_metrics",
]
