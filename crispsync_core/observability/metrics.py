"""In-process metrics for CrispSync ingestion.

Counters track records written and events handled; gauges track
point-in-time values such as the event queue depth.
"""

import threading
from typing import Any, Optional


class MetricsCollector:
    """Thread-safe metrics collector.

    Collects and stores metrics in memory for later retrieval.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._counters: dict[str, float] = {}
        self._gauges: dict[str, float] = {}

    def _make_key(self, name: str, labels: Optional[dict[str, str]] = None) -> str:
        if not labels:
            return name

        # Sort labels for consistent key generation
        label_str = ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
        return f"{name}{{{label_str}}}"

    def increment(
        self,
        name: str,
        value: float = 1.0,
        labels: Optional[dict[str, str]] = None,
    ) -> None:
        """Increment a counter metric."""
        key = self._make_key(name, labels)
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + value

    def set_gauge(
        self,
        name: str,
        value: float,
        labels: Optional[dict[str, str]] = None,
    ) -> None:
        """Set a gauge metric value."""
        key = self._make_key(name, labels)
        with self._lock:
            self._gauges[key] = value

    def get(
        self,
        name: str,
        labels: Optional[dict[str, str]] = None,
    ) -> float:
        """Get a metric value, or 0 if it was never recorded."""
        key = self._make_key(name, labels)
        with self._lock:
            if key in self._counters:
                return self._counters[key]
            if key in self._gauges:
                return self._gauges[key]
            return 0

    def get_all(self) -> dict[str, Any]:
        """Get all metrics as a dictionary."""
        with self._lock:
            return {
                "counters": dict(self._counters),
                "gauges": dict(self._gauges),
            }

    def reset(self) -> None:
        """Reset all metrics to zero."""
        with self._lock:
            self._counters.clear()
            self._gauges.clear()


_metrics = MetricsCollector()


def get_metrics() -> MetricsCollector:
    """Get the process-wide metrics collector."""
    return _metrics
