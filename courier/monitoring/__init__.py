from .health_monitor import (
    CheckStatus,
    ConnectionSnapshot,
    HealthMonitor,
    HealthReport,
    HealthStatus,
)
from .system_metrics import SystemMetrics

__all__ = [
    "CheckStatus",
    "ConnectionSnapshot",
    "HealthMonitor",
    "HealthReport",
    "HealthStatus",
    "SystemMetrics",
]
