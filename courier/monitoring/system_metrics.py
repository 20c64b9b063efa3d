"""
System Metrics Sampling

Thin wrapper over psutil so the health monitor can be fed fake readings in
tests. cpu_percent(interval=None) is non-blocking: the first call after
construction primes the counter and returns 0.0.
"""

import time
from typing import Any

import psutil


class SystemMetrics:
    """Samples host and process resource usage."""

    def __init__(self):
        self._process = psutil.Process()
        self._started_at = time.time()
        psutil.cpu_percent(interval=None)

    def memory(self) -> dict[str, Any]:
        vm = psutil.virtual_memory()
        rss = self._process.memory_info().rss
        return {
            "system_percent": float(vm.percent),
            "system_total_mb": round(vm.total / (1024 * 1024), 1),
            "system_available_mb": round(vm.available / (1024 * 1024), 1),
            "process_rss_mb": round(rss / (1024 * 1024), 1),
            "process_percent": round(float(self._process.memory_percent()), 2),
        }

    def cpu_percent(self) -> float:
        return float(psutil.cpu_percent(interval=None))

    def uptime_seconds(self) -> float:
        return time.time() - self._started_at
