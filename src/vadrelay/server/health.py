"""Health check endpoints for the relay hub.

Provides HTTP endpoints for load balancers and monitoring:
- /health: relay status, connection and room counts, relay counters
- /liveness: process is up
- /rooms: current room directory with member counts
"""

import logging
import time
from typing import TYPE_CHECKING

from aiohttp import web

if TYPE_CHECKING:
    from vadrelay.server.app import RelayServer

logger = logging.getLogger(__name__)


class HealthCheckHandler:
    """Health check handler for the relay server."""

    def __init__(self, server: "RelayServer") -> None:
        """Initialize health check handler.

        Args:
            server: Relay server to report on
        """
        self.server = server
        self.start_time = time.time()

    async def health_check(self, request: web.Request) -> web.Response:
        """Health check endpoint.

        Returns:
            200 OK: WebSocket listener is running
            503 Service Unavailable: listener is down

        Response format:
        {
            "status": "healthy" | "unhealthy",
            "uptime_seconds": float,
            "connections": int,
            "rooms": int,
            "participants": int,
            "relay": {...counters...}
        }
        """
        healthy = self.server.is_running
        response_data = {
            "status": "healthy" if healthy else "unhealthy",
            "uptime_seconds": time.time() - self.start_time,
            "connections": self.server.lifecycle.connection_count,
            "rooms": self.server.registry.room_count,
            "participants": self.server.registry.participant_count,
            "relay": self.server.router.stats.as_dict(),
        }

        logger.debug("Health check performed", extra={"status": response_data["status"]})

        return web.json_response(response_data, status=200 if healthy else 503)

    async def liveness_check(self, request: web.Request) -> web.Response:
        """Liveness check endpoint.

        Returns:
            200 OK: Service is alive
        """
        return web.json_response(
            {
                "status": "alive",
                "uptime_seconds": time.time() - self.start_time,
            },
            status=200,
        )

    async def rooms(self, request: web.Request) -> web.Response:
        """Room directory endpoint."""
        registry = self.server.registry
        return web.json_response(
            {
                "rooms": [
                    {"name": name, "participants": len(registry.member_ids(name))}
                    for name in registry.list_room_names()
                ]
            }
        )


def setup_health_routes(app: web.Application, server: "RelayServer") -> None:
    """Set up health check routes on application.

    Args:
        app: aiohttp Application instance
        server: Relay server to report on
    """
    handler = HealthCheckHandler(server)

    app.router.add_get("/health", handler.health_check)
    app.router.add_get("/liveness", handler.liveness_check)
    app.router.add_get("/rooms", handler.rooms)

    logger.info("Health check endpoints configured: /health, /liveness, /rooms")
