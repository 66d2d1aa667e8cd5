"""Health check and introspection HTTP server."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from aiohttp import web
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
import structlog


logger = structlog.get_logger(__name__)

VERSION = "0.1.0"


class HealthCheckServer:
    """HTTP server for health checks and bus statistics."""

    def __init__(self, port: int = 8081, host: str = "0.0.0.0") -> None:
        """Initialize health check server.

        Args:
            port: Port to listen on
            host: Interface to bind
        """
        self.port = port
        self.host = host
        self.app = web.Application()
        self.runner: Optional[web.AppRunner] = None
        self.site: Optional[web.TCPSite] = None
        self._startup_time = datetime.now(timezone.utc)
        self._action_bus: Any = None

        # Setup routes
        self.app.router.add_get("/healthz", self._health_handler)
        self.app.router.add_get("/readyz", self._readiness_handler)
        self.app.router.add_get("/stats", self._stats_handler)
        self.app.router.add_get("/metrics", self._metrics_handler)

        logger.info("Initialized HealthCheckServer", port=port)

    def set_action_bus(self, bus: Any) -> None:
        """Attach the action bus whose registries are reported."""
        self._action_bus = bus

    async def start(self) -> None:
        """Start the health check server."""
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()

        self.site = web.TCPSite(self.runner, self.host, self.port)
        await self.site.start()

        logger.info("Health check server started", port=self.port)

    async def stop(self) -> None:
        """Stop the health check server."""
        if self.site:
            await self.site.stop()
            self.site = None

        if self.runner:
            await self.runner.cleanup()
            self.runner = None

        logger.info("Health check server stopped")

    def _uptime_seconds(self) -> float:
        return (datetime.now(timezone.utc) - self._startup_time).total_seconds()

    async def _health_handler(self, request: web.Request) -> web.Response:
        """Liveness: OK whenever the process serves requests."""
        return web.json_response(
            {
                "status": "healthy",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "uptime_seconds": self._uptime_seconds(),
                "version": VERSION,
            }
        )

    async def _readiness_handler(self, request: web.Request) -> web.Response:
        """Readiness: an action bus is attached and has actions registered."""
        checks: Dict[str, str] = {}

        if self._action_bus is None:
            checks["action_bus"] = "not_available"
        else:
            checks["action_bus"] = "available"
            checks["actions"] = (
                "registered" if len(self._action_bus.registry) > 0 else "empty"
            )

        ready = checks.get("action_bus") == "available" and checks.get("actions") == "registered"

        return web.json_response(
            {
                "status": "ready" if ready else "not_ready",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "checks": checks,
            },
            status=200 if ready else 503,
        )

    async def _stats_handler(self, request: web.Request) -> web.Response:
        """Handle statistics requests."""
        stats: Dict[str, Any] = {
            "server": {
                "uptime_seconds": self._uptime_seconds(),
                "startup_time": self._startup_time.isoformat(),
                "version": VERSION,
            }
        }

        if self._action_bus is not None:
            try:
                stats["actions"] = self._action_bus.get_stats()
                stats["events"] = self._action_bus.event_bus.get_stats()
            except Exception as e:
                logger.warning("Failed to get bus stats", error=str(e))
                stats["actions"] = {"error": str(e)}

        return web.json_response(stats)

    async def _metrics_handler(self, request: web.Request) -> web.Response:
        """Handle Prometheus metrics exposition."""
        return web.Response(
            body=generate_latest(),
            headers={"Content-Type": CONTENT_TYPE_LATEST},
        )


# Global health check server instance
_health_server: Optional[HealthCheckServer] = None


async def start_health_server(port: int = 8081, action_bus: Any = None) -> HealthCheckServer:
    """Start the global health check server.

    Args:
        port: Port to listen on
        action_bus: Action bus for readiness and stats

    Returns:
        HealthCheckServer instance
    """
    global _health_server

    if _health_server is not None:
        logger.warning("Health server already started")
        return _health_server

    _health_server = HealthCheckServer(port)

    if action_bus is not None:
        _health_server.set_action_bus(action_bus)

    await _health_server.start()
    return _health_server


async def stop_health_server() -> None:
    """Stop the global health check server."""
    global _health_server

    if _health_server is not None:
        await _health_server.stop()
        _health_server = None


def get_health_server() -> Optional[HealthCheckServer]:
    """Get the global health check server instance."""
    return _health_server
