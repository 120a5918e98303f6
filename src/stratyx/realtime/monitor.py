"""
Performance monitoring for the real-time pipeline.

Provides:
- PerformanceMonitor: bounded ring buffer of operation durations with
  avg/min/max/p95 summaries and a degraded-health check
- time_operation: context manager that records how long a block took
"""

from __future__ import annotations

import logging
import time
from collections import deque
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

import numpy as np

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 1000
DEFAULT_SLOW_THRESHOLD_MS = 500.0
DEGRADED_WINDOW = 20
MIN_SAMPLES_FOR_HEALTH = 10


@dataclass(frozen=True)
class OperationTiming:
    """Timing result for a single operation."""

    name: str
    duration_ms: float
    finished_at: float


@dataclass(frozen=True)
class OperationStats:
    avg: float
    min: float
    max: float
    p95: float
    count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "avg": round(self.avg, 3),
            "min": round(self.min, 3),
            "max": round(self.max, 3),
            "p95": round(self.p95, 3),
            "count": self.count,
        }


EMPTY_STATS = OperationStats(avg=0.0, min=0.0, max=0.0, p95=0.0, count=0)


class PerformanceMonitor:
    """Collects operation durations for health checks.

    Oldest timings are evicted once ``capacity`` is reached. Operations slower
    than ``slow_threshold_ms`` are logged as warnings but never raised.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY, slow_threshold_ms: float = DEFAULT_SLOW_THRESHOLD_MS):
        self.slow_threshold_ms = slow_threshold_ms
        self._timings: deque[OperationTiming] = deque(maxlen=capacity)
        self.slow_operations = 0

    def track(self, name: str, duration_ms: float) -> None:
        """Record one operation duration."""
        self._timings.append(OperationTiming(name=name, duration_ms=duration_ms, finished_at=time.time()))
        if duration_ms > self.slow_threshold_ms:
            self.slow_operations += 1
            logger.warning(f"Slow operation: {name} took {duration_ms:.2f}ms")

    @contextmanager
    def time_operation(self, name: str) -> Generator[None, None, None]:
        """Context manager to time a block; the duration is recorded even if it raises."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.track(name, (time.perf_counter() - start) * 1000)

    def _durations(self, name: str | None = None) -> np.ndarray:
        return np.array(
            [t.duration_ms for t in self._timings if name is None or t.name == name], dtype=float
        )

    def stats(self, name: str | None = None) -> OperationStats:
        """Summary for one operation name, or all operations when name is None."""
        durations = self._durations(name)
        if durations.size == 0:
            return EMPTY_STATS

        return OperationStats(
            avg=float(durations.mean()),
            min=float(durations.min()),
            max=float(durations.max()),
            p95=float(np.sort(durations)[int(durations.size * 0.95)]),
            count=int(durations.size),
        )

    def operation_names(self) -> list[str]:
        return list(dict.fromkeys(t.name for t in self._timings))

    def is_degraded(self, threshold_ms: float | None = None) -> bool:
        """True when the trailing 20-operation average exceeds the threshold."""
        if len(self._timings) < MIN_SAMPLES_FOR_HEALTH:
            return False
        threshold = self.slow_threshold_ms if threshold_ms is None else threshold_ms
        recent = [t.duration_ms for t in list(self._timings)[-DEGRADED_WINDOW:]]
        return sum(recent) / len(recent) > threshold

    def summary(self) -> dict[str, Any]:
        return {
            "overall": self.stats().to_dict(),
            "operations": {name: self.stats(name).to_dict() for name in self.operation_names()},
            "slowOperations": self.slow_operations,
            "degraded": self.is_degraded(),
        }

    def __len__(self) -> int:
        return len(self._timings)

    def clear(self) -> None:
        self._timings.clear()
        self.slow_operations = 0
