"""
Monitoring MCP tool for macro-mcp server.
"""


def get_server_health() -> str:
    """
    Get server health metrics and status as a readable report.

    Returns:
        Formatted multi-line string with health metrics
    """
    from ..monitoring import health_monitor

    metrics = health_monitor.check_health()

    lines = [
        f"Server Health: {metrics['status'].upper()}",
        "",
        f"Process Memory: {metrics['process_memory_mb']:.1f} MB",
        f"System Memory: {metrics['system_memory_percent']:.1f}%",
        f"Office Host Processes: {metrics['host_processes']}",
        "",
        "Host Pool:",
        f"  Active sessions: {metrics['host_pool']['active_sessions']}",
        f"  Total created: {metrics['host_pool']['total_created']}",
        f"  Total failed: {metrics['host_pool']['total_failed']}",
        f"  Pool size limit: {metrics['host_pool']['pool_size']}",
    ]

    if metrics['alerts']:
        lines.append("")
        lines.append("Alerts:")
        for alert in metrics['alerts']:
            lines.append(f"  - {alert}")

    return "\n".join(lines)
