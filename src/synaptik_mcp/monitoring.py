"""
Remote Call Monitoring

Tracks latency and error counts of calls made to the Synaptik API so slow or
failing endpoints show up in the logs and in the server info snapshot.
"""

import logging
from collections import defaultdict, deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Any, Optional

import psutil

# Keep last 1000 calls for trending
METRICS_HISTORY_SIZE = 1000
SLOW_CALL_THRESHOLD_MS = 1000.0

logger = logging.getLogger(__name__)


@dataclass
class CallMetric:
    """Single remote call measurement."""
    timestamp: datetime
    operation: str
    duration_ms: float
    ok: bool


class CallMonitor:
    """
    Collects per-operation call timings for the Synaptik API client.

    Features:
    - Bounded history of recent calls
    - Slow call warnings
    - Per-operation error counts
    """

    def __init__(self, history_size: int = METRICS_HISTORY_SIZE,
                 slow_threshold_ms: float = SLOW_CALL_THRESHOLD_MS):
        self.calls: deque = deque(maxlen=history_size)
        self.slow_threshold_ms = slow_threshold_ms
        self.error_counts: Dict[str, int] = defaultdict(int)
        self.start_time = datetime.now(timezone.utc)

    def record_call(self, operation: str, duration_ms: float, ok: bool = True):
        """
        Record one remote call.

        Args:
            operation: Logical operation name (e.g. "link_tasks")
            duration_ms: Wall time of the call in milliseconds
            ok: Whether the call produced a usable response
        """
        self.calls.append(CallMetric(
            timestamp=datetime.now(timezone.utc),
            operation=operation,
            duration_ms=duration_ms,
            ok=ok,
        ))
        if not ok:
            self.error_counts[operation] += 1

        if duration_ms > self.slow_threshold_ms:
            logger.warning(f"Slow Synaptik call: {operation} took {duration_ms:.2f}ms")

    def get_average_call_time(self, operation: Optional[str] = None) -> float:
        """Average duration of recent calls, optionally for one operation."""
        durations = [m.duration_ms for m in self.calls if operation is None or m.operation == operation]
        if not durations:
            return 0.0
        return sum(durations) / len(durations)

    def get_p95_call_time(self) -> float:
        if not self.calls:
            return 0.0
        durations = sorted(m.duration_ms for m in self.calls)
        index = max(0, int(round(0.95 * len(durations))) - 1)
        return durations[index]

    def get_memory_usage_mb(self) -> float:
        """Get current process memory usage in MB."""
        try:
            return psutil.Process().memory_info().rss / (1024 * 1024)
        except Exception as e:
            logger.warning(f"Failed to get memory usage: {e}")
            return 0.0

    def get_summary(self) -> Dict[str, Any]:
        """Snapshot of call statistics for diagnostics."""
        return {
            "count": len(self.calls),
            "errors": sum(self.error_counts.values()),
            "errors_by_operation": dict(self.error_counts),
            "avg_ms": round(self.get_average_call_time(), 2),
            "p95_ms": round(self.get_p95_call_time(), 2),
            "memory_mb": round(self.get_memory_usage_mb(), 1),
            "since": self.start_time.isoformat(),
        }

    def reset(self):
        self.calls.clear()
        self.error_counts.clear()
        self.start_time = datetime.now(timezone.utc)


# Global call monitor instance
call_monitor = CallMonitor()


def get_call_monitor() -> CallMonitor:
    """Get the global call monitor instance."""
    return call_monitor
