"""optinfer.monitoring: 推論性能のモニタリング."""

from .performance_monitor import (
    AlertType,
    MetricsRecord,
    PerformanceAlert,
    PerformanceMonitor,
    PerformanceStatistics,
)

__all__ = [
    "AlertType",
    "MetricsRecord",
    "PerformanceAlert",
    "PerformanceMonitor",
    "PerformanceStatistics",
]
