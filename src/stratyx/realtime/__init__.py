"""
Stratyx Realtime - Delivery layer and performance monitoring.
"""

from stratyx.realtime.monitor import OperationStats, PerformanceMonitor
from stratyx.realtime.sync import ConnectionState, EventSource, RealTimeSyncService, SyncStatus

__all__: list[str] = [
    "OperationStats",
    "PerformanceMonitor",
    "ConnectionState",
    "EventSource",
    "RealTimeSyncService",
    "SyncStatus",
]
