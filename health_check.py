"""
Health and status endpoints for monitoring the relay process.
"""
import logging
import time
import psutil
import os
from datetime import datetime, timezone
from aiohttp import web

from config import settings
from monitoring_integration import RelayMonitoring

logger = logging.getLogger(__name__)


class HealthCheck:
    """Health endpoints mounted on the relay's HTTP application"""

    def __init__(self, monitoring: RelayMonitoring, mode: str = None):
        self.monitoring = monitoring
        self.mode = mode or settings.relay_mode
        self.start_time = time.time()
        self.request_count = 0

    def register(self, app: web.Application):
        """Add health routes to an application"""
        app.router.add_get('/health', self.health_check)
        app.router.add_get('/status', self.status_check)

    async def health_check(self, request: web.Request) -> web.Response:
        """Basic health check endpoint for the hosting platform"""
        self.request_count += 1
        return web.json_response({
            "status": "healthy",
            "service": "retailcrm-telegram-relay",
            "mode": self.mode,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime_seconds": int(time.time() - self.start_time)
        })

    async def status_check(self, request: web.Request) -> web.Response:
        """Detailed status check with process and relay metrics"""
        self.request_count += 1

        process = psutil.Process(os.getpid())
        memory_info = process.memory_info()
        relay_metrics = self.monitoring.get_metrics()

        status = {
            "service": "retailcrm-telegram-relay",
            "version": "1.0.0",
            "environment": settings.environment,
            "mode": self.mode,
            "status": relay_metrics["health"]["status"],
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime_seconds": int(time.time() - self.start_time),
            "system": {
                "cpu_percent": process.cpu_percent(),
                "memory_mb": round(memory_info.rss / 1024 / 1024, 2),
                "memory_percent": process.memory_percent(),
                "threads": process.num_threads(),
            },
            "relay": relay_metrics,
            "metrics": {
                "health_requests": self.request_count,
                "start_time": datetime.fromtimestamp(self.start_time, timezone.utc).isoformat()
            }
        }

        return web.json_response(status)
