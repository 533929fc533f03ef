"""
Health monitoring for macro-mcp server.

Tracks Python process memory, system memory percentage, host pool
utilization and the number of Office host processes alive on the machine.
A growing host process count while the pool is idle points to hosts that
survived their session's teardown.
"""

import psutil
from typing import Dict, List

from .logging_config import get_logger
from .session import host_pool

logger = get_logger(__name__)

HOST_PROCESS_NAMES = ("excel.exe", "winword.exe", "powerpnt.exe")


def count_host_processes() -> int:
    """Count running EXCEL.EXE, WINWORD.EXE and POWERPNT.EXE processes."""
    count = 0
    for process in psutil.process_iter(["name"]):
        name = (process.info.get("name") or "").lower()
        if name in HOST_PROCESS_NAMES:
            count += 1
    return count


class HealthMonitor:
    """
    Health monitor with configurable thresholds.

    Status logic:
    - UNHEALTHY: System memory above threshold OR active sessions >= limit
    - DEGRADED: System memory within 10 points of threshold, session failures,
      or host processes running while no session is active
    - HEALTHY: Otherwise
    """

    def __init__(
        self,
        memory_threshold_percent: float = 80.0,
        host_instance_limit: int = 5,
        pool=host_pool,
    ):
        """
        Args:
            memory_threshold_percent: System memory % threshold for unhealthy (default: 80%)
            host_instance_limit: Max active sessions before unhealthy (default: 5)
            pool: Host pool whose metrics are reported
        """
        self.memory_threshold_percent = memory_threshold_percent
        self.host_instance_limit = host_instance_limit
        self.pool = pool

        logger.debug(
            "health_monitor_initialized",
            memory_threshold=memory_threshold_percent,
            host_limit=host_instance_limit
        )

    def check_health(self) -> Dict:
        """
        Check server health and return metrics.

        Returns:
            Dictionary with keys status, process_memory_mb,
            system_memory_percent, host_pool, host_processes and alerts
        """
        process = psutil.Process()
        process_memory_mb = process.memory_info().rss / (1024 * 1024)
        system_memory_percent = psutil.virtual_memory().percent

        pool_metrics = self.pool.get_metrics()
        host_processes = count_host_processes()

        alerts: List[str] = []
        status = "healthy"

        if system_memory_percent > self.memory_threshold_percent:
            status = "unhealthy"
            alerts.append(
                f"System memory at {system_memory_percent:.1f}% "
                f"(threshold: {self.memory_threshold_percent:.1f}%)"
            )

        if pool_metrics["active_count"] >= self.host_instance_limit:
            status = "unhealthy"
            alerts.append(
                f"Active sessions at {pool_metrics['active_count']} "
                f"(limit: {self.host_instance_limit})"
            )

        if status == "healthy":
            degraded_threshold = self.memory_threshold_percent - 10
            if system_memory_percent > degraded_threshold:
                status = "degraded"
                alerts.append(
                    f"System memory at {system_memory_percent:.1f}% "
                    f"(warning threshold: {degraded_threshold:.1f}%)"
                )

            if pool_metrics["total_failed"] > 0:
                status = "degraded"
                alerts.append(
                    f"Failed sessions: {pool_metrics['total_failed']} (check logs for details)"
                )

            if pool_metrics["active_count"] == 0 and host_processes > 0:
                status = "degraded"
                alerts.append(
                    f"{host_processes} Office host process(es) running with no active session "
                    f"(user instances or hosts left behind by a failed quit)"
                )

        if status in ("degraded", "unhealthy"):
            logger.warning(
                "health_check_warning",
                status=status,
                process_memory_mb=process_memory_mb,
                system_memory_percent=system_memory_percent,
                sessions_active=pool_metrics["active_count"],
                sessions_failed=pool_metrics["total_failed"],
                host_processes=host_processes,
                alerts=alerts
            )

        return {
            "status": status,
            "process_memory_mb": process_memory_mb,
            "system_memory_percent": system_memory_percent,
            "host_pool": {
                "active_sessions": pool_metrics["active_count"],
                "total_created": pool_metrics["total_created"],
                "total_failed": pool_metrics["total_failed"],
                "pool_size": pool_metrics["pool_size"],
            },
            "host_processes": host_processes,
            "alerts": alerts,
        }


# Module-level singleton
health_monitor = HealthMonitor()
