"""
System health and monitoring API routes
"""

from fastapi import APIRouter
from datetime import datetime, timezone
from collections import Counter
import logging

from ..health import calculate_device_health

logger = logging.getLogger(__name__)


def create_system_routes(server):
    """Create system monitoring routes"""
    router = APIRouter(prefix="/api", tags=["system"])

    @router.get("/system/health")
    async def system_health():
        """Service status and device counts"""
        try:
            devices = server.devices()
            roles = Counter(d.role.value for d in devices)
            health = Counter(calculate_device_health(d).level.value for d in devices)

            return {
                "status": "healthy" if server.is_running else "starting",
                "discovery": {
                    "listening": server.discovery.is_open,
                    "port": server.discovery.port
                },
                "log_receiver": {
                    "port": server.log_receiver.port,
                    "active_streams": len(server.log_receiver.active_streams)
                },
                "devices": {
                    "total": len(devices),
                    "by_role": dict(roles),
                    "by_health": dict(health)
                },
                "timestamp": datetime.now(timezone.utc).isoformat()
            }

        except Exception as e:
            logger.error(f"Error building health report: {e}")
            return {
                "status": "unhealthy",
                "error": str(e),
                "timestamp": datetime.now(timezone.utc).isoformat()
            }

    @router.get("/system/config")
    async def effective_config():
        """Effective configuration after defaults"""
        return server.config

    return router
