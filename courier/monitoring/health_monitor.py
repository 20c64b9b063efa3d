#!/usr/bin/env python3
"""
Health Monitor Module

Periodic diagnostic snapshot of the courier:
- Connection state (pushed by the lifecycle manager on every transition)
- Backend reachability and probe latency
- Host and process memory
- Delivery queue depth and dead letters

Classification (first match wins):
    unhealthy  connection down, or backend probe failed
    degraded   system memory > HEALTH_MEMORY_DEGRADED_PERCENT,
               or dead letters > HEALTH_DEAD_LETTER_DEGRADED_COUNT
    healthy    otherwise

On an unhealthy poll one high-priority alert with a fixed id is queued to the
operator. The queue ignores ids already pending, so a long outage produces a
single alert rather than one per poll.

Author: Senior Solution Architect
Date: 2025-12-05
"""

import asyncio
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from courier.core.config.constants import HEALTH_ALERT_ID, HEALTH_ALERT_TEXT, Stage
from courier.core.config.settings import HealthSettings, get_settings
from courier.core.logging import get_logger
from courier.delivery import DeliveryQueue, MessagePriority, QueuedMessage
from courier.monitoring.system_metrics import SystemMetrics

logger = get_logger(__name__)


class HealthStatus(str, Enum):
    """Health status enumeration."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class CheckStatus(str, Enum):
    """Outcome of a single diagnostic check."""
    PASS = "pass"
    WARNING = "warning"
    FAIL = "fail"


@dataclass
class ConnectionSnapshot:
    """Connection facts the lifecycle manager publishes on every transition."""

    state: str = "disconnected"
    connected: bool = False
    reconnect_attempts: int = 0
    last_connected_at: str | None = None
    last_disconnect_reason: str | None = None
    gave_up: bool = False


@dataclass
class HealthReport:
    """Recomputed on each poll; never persisted."""

    status: HealthStatus
    uptime_seconds: float
    memory: dict[str, Any]
    queue: dict[str, Any]
    connection: dict[str, Any]
    backend: dict[str, Any]
    timestamp: str = field(default_factory=lambda: datetime.utcnow().isoformat() + "Z")

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


class HealthMonitor:
    """
    Health classification, diagnostics and operator alerting.

    STAGE-H: Health check orchestration

    Usage:
        monitor = HealthMonitor(queue, backend_client)
        report = await monitor.generate_report()
        diagnostics = await monitor.run_diagnostics()
        monitor.start_monitoring()
    """

    def __init__(
        self,
        queue: DeliveryQueue,
        backend=None,
        settings: HealthSettings | None = None,
        metrics: SystemMetrics | None = None,
        operator_destination: str | None = None,
    ):
        self._settings = settings or get_settings().health
        self._queue = queue
        self._backend = backend
        self._metrics = metrics or SystemMetrics()
        self._operator_destination = operator_destination
        self._connection = ConnectionSnapshot()
        self._monitor_task: asyncio.Task | None = None
        self._last_report: HealthReport | None = None

        logger.info("Health monitor initialized", stage=Stage.HEALTH)

    def update_connection(self, snapshot: ConnectionSnapshot) -> None:
        self._connection = snapshot

    @property
    def last_report(self) -> HealthReport | None:
        return self._last_report

    async def probe_backend(self) -> dict[str, Any]:
        """
        One live backend round-trip, bounded by HEALTH_PROBE_TIMEOUT_SECONDS.

        STAGE-H.1: Backend probe
        """
        if self._backend is None:
            return {"reachable": False, "configured": False, "latency_ms": None}

        started = time.perf_counter()
        try:
            await asyncio.wait_for(
                self._backend.health_check(), timeout=self._settings.HEALTH_PROBE_TIMEOUT_SECONDS
            )
        except Exception as e:
            logger.warning(
                "Backend probe failed",
                error=str(e),
                error_type=type(e).__name__,
                stage=Stage.HEALTH,
            )
            return {"reachable": False, "configured": True, "latency_ms": None, "error": str(e)}

        latency_ms = round((time.perf_counter() - started) * 1000, 2)
        return {"reachable": True, "configured": True, "latency_ms": latency_ms}

    def classify(
        self, connection: ConnectionSnapshot, backend: dict[str, Any],
        memory: dict[str, Any], queue: dict[str, Any],
    ) -> HealthStatus:
        if not connection.connected:
            return HealthStatus.UNHEALTHY
        if backend.get("configured", True) and not backend.get("reachable"):
            return HealthStatus.UNHEALTHY
        if memory["system_percent"] > self._settings.HEALTH_MEMORY_DEGRADED_PERCENT:
            return HealthStatus.DEGRADED
        if queue["dead_letter_count"] > self._settings.HEALTH_DEAD_LETTER_DEGRADED_COUNT:
            return HealthStatus.DEGRADED
        return HealthStatus.HEALTHY

    async def generate_report(self) -> HealthReport:
        """
        Build a fresh HealthReport.

        STAGE-H.2: Health report
        """
        connection = self._connection
        backend = await self.probe_backend()
        memory = self._metrics.memory()
        queue = self._queue.status()

        report = HealthReport(
            status=self.classify(connection, backend, memory, queue),
            uptime_seconds=round(self._metrics.uptime_seconds(), 1),
            memory=memory,
            queue=queue,
            connection=asdict(connection),
            backend=backend,
        )
        self._last_report = report
        return report

    def _grade(self, value: float) -> CheckStatus:
        if value >= self._settings.DIAGNOSTIC_FAILURE_PERCENT:
            return CheckStatus.FAIL
        if value >= self._settings.DIAGNOSTIC_WARNING_PERCENT:
            return CheckStatus.WARNING
        return CheckStatus.PASS

    async def run_diagnostics(self) -> dict[str, Any]:
        """
        Checklist of connection, backend, memory, queue and CPU.

        STAGE-H.3: Diagnostics
        """
        connection = self._connection
        backend = await self.probe_backend()
        memory = self._metrics.memory()
        cpu = self._metrics.cpu_percent()
        queue = self._queue.status()

        dead_letters = queue["dead_letter_count"]
        if dead_letters == 0:
            queue_status = CheckStatus.PASS
        elif dead_letters < 5:
            queue_status = CheckStatus.WARNING
        else:
            queue_status = CheckStatus.FAIL

        if not backend["configured"]:
            backend_status, backend_message = CheckStatus.WARNING, "Backend not configured"
        elif backend["reachable"]:
            backend_status = CheckStatus.PASS
            backend_message = f"Backend reachable in {backend['latency_ms']}ms"
        else:
            backend_status, backend_message = CheckStatus.FAIL, "Backend unreachable"

        checks = [
            {
                "name": "connection",
                "status": (CheckStatus.PASS if connection.connected else CheckStatus.FAIL).value,
                "message": f"Connection is {connection.state}",
            },
            {
                "name": "backend",
                "status": backend_status.value,
                "message": backend_message,
            },
            {
                "name": "system_memory",
                "status": self._grade(memory["system_percent"]).value,
                "message": f"System memory at {memory['system_percent']:.1f}%",
            },
            {
                "name": "process_memory",
                "status": self._grade(memory["process_percent"]).value,
                "message": (
                    f"Process using {memory['process_rss_mb']}MB "
                    f"({memory['process_percent']:.1f}%)"
                ),
            },
            {
                "name": "message_queue",
                "status": queue_status.value,
                "message": f"{queue['size']} pending, {dead_letters} dead letters",
            },
            {
                "name": "cpu",
                "status": self._grade(cpu).value,
                "message": f"CPU at {cpu:.1f}%",
            },
        ]

        statuses = {check["status"] for check in checks}
        if CheckStatus.FAIL.value in statuses:
            overall = CheckStatus.FAIL
        elif CheckStatus.WARNING.value in statuses:
            overall = CheckStatus.WARNING
        else:
            overall = CheckStatus.PASS

        logger.info("Diagnostics completed", overall=overall.value, stage=Stage.DIAGNOSTICS)
        return {
            "overall": overall.value,
            "checks": checks,
            "timestamp": datetime.utcnow().isoformat() + "Z",
        }

    # ------------------------------------------------------------------
    # Periodic monitoring
    # ------------------------------------------------------------------

    async def poll_once(self) -> HealthReport:
        report = await self.generate_report()
        if report.status == HealthStatus.UNHEALTHY:
            logger.warning("Health check failed", status=report.status.value, stage=Stage.HEALTH)
            self._raise_alert(report)
        return report

    def _raise_alert(self, report: HealthReport) -> None:
        if not self._operator_destination:
            return
        self._queue.enqueue(QueuedMessage.create(
            self._operator_destination,
            HEALTH_ALERT_TEXT.format(status=report.status.value),
            priority=MessagePriority.HIGH,
            message_id=HEALTH_ALERT_ID,
        ))

    async def _monitor_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self.poll_once()
            except Exception as e:
                logger.error(
                    "Health poll failed",
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                    stage=Stage.HEALTH,
                )

    def start_monitoring(self, interval: float | None = None) -> None:
        if self._monitor_task is not None and not self._monitor_task.done():
            return
        interval = interval or self._settings.HEALTH_CHECK_INTERVAL_SECONDS
        self._monitor_task = asyncio.create_task(self._monitor_loop(interval), name="health-monitor")
        logger.info("Health monitoring started", interval_seconds=interval, stage=Stage.HEALTH)

    async def stop_monitoring(self) -> None:
        if self._monitor_task is None:
            return
        self._monitor_task.cancel()
        await asyncio.gather(self._monitor_task, return_exceptions=True)
        self._monitor_task = None
        logger.info("Health monitoring stopped", stage=Stage.HEALTH)
