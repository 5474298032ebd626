"""
Process health status using psutil.

Builds the status record pushed to the backend's health endpoint.
"""
import time
from typing import Any
import psutil
import structlog

from .records import ServiceIdentity, isoformat, utcnow

logger = structlog.get_logger()


def collect_health_status(
    identity: ServiceIdentity,
    environment: str,
    started_at: float
) -> dict[str, Any]:
    """
    Collect health status for this process.

    Args:
        identity: Service identity
        environment: Deployment environment name
        started_at: Process start time (epoch seconds)

    Returns:
        Dict with status, uptime, memory and CPU usage
    """
    status: dict[str, Any] = {
        'status': 'healthy',
        'timestamp': isoformat(utcnow()),
        'service': identity.service,
        'version': identity.version,
        'environment': environment,
        'uptime_s': round(time.time() - started_at, 3),
    }

    try:
        process = psutil.Process()
        mem = process.memory_info()
        status['memory'] = {
            'rss': mem.rss,
            'vms': mem.vms,
            'percent': round(process.memory_percent(), 2),
        }
        # Non-blocking; compares against the previous call
        status['cpu_percent'] = process.cpu_percent(interval=None)
        status['threads'] = process.num_threads()

    except psutil.Error as e:
        logger.error("health_metrics_collection_failed", error=str(e))
        status['error'] = str(e)
        status['memory'] = {}

    return status
