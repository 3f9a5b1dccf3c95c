"""Relay server with WebSocket transport.

Main server implementation that:
1. Accepts WebSocket connections and assigns each an identity
2. Dispatches join/leave messages to the lifecycle manager
3. Dispatches voice/speaking messages to the relay router
4. Treats transport closure as a disconnect
5. Serves HTTP health check endpoints
"""

import argparse
import asyncio
import logging
import signal
from pathlib import Path
from typing import Any

import websockets
from aiohttp.web import Application, AppRunner, TCPSite
from websockets.asyncio.server import ServerConnection

from vadrelay.config import RelayConfig
from vadrelay.server.health import setup_health_routes
from vadrelay.server.hub import ConnectionHub
from vadrelay.server.lifecycle import ConnectionLifecycleManager
from vadrelay.server.registry import RoomRegistry
from vadrelay.server.router import RelayRouter
from vadrelay.transport.base import Connection
from vadrelay.transport.protocol import (
    ErrorMessage,
    JoinRoomMessage,
    LeaveRoomMessage,
    ProtocolError,
    SpeakingMessage,
    VoiceMessage,
    parse_client_message,
)
from vadrelay.transport.websocket_transport import WebSocketConnection
from vadrelay.utils.logging import setup_logging

logger = logging.getLogger(__name__)

# WebSocket close code for "try again later"
CLOSE_TRY_AGAIN_LATER = 1013


class RelayServer:
    """Room relay hub.

    Owns the room registry, the connection hub, the lifecycle manager and
    the router, and wires WebSocket connections to them.

    Thread-safety: This class is NOT thread-safe. Run it on a single event loop.
    """

    def __init__(self, config: RelayConfig | None = None) -> None:
        """Initialize relay server.

        Args:
            config: Server configuration
        """
        self.config = config or RelayConfig()

        self.registry = RoomRegistry()
        self.hub = ConnectionHub(send_timeout=self.config.server.send_timeout_s)
        self.lifecycle = ConnectionLifecycleManager(self.registry, self.hub)
        self.router = RelayRouter(self.registry, self.hub)

        self._server: Any = None  # websockets.Server
        self._health_runner: AppRunner | None = None
        self._health_site: TCPSite | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        """Check if the WebSocket listener is running."""
        return self._running

    @property
    def port(self) -> int:
        """Bound WebSocket port (resolves ephemeral port 0)."""
        if self._server is None or not self._server.sockets:
            return self.config.server.port
        return int(self._server.sockets[0].getsockname()[1])

    @property
    def health_port(self) -> int | None:
        """Bound health endpoint port, None if not serving."""
        if self._health_runner is None or not self._health_runner.addresses:
            return None
        return int(self._health_runner.addresses[0][1])

    async def start(self) -> None:
        """Start the WebSocket listener and health endpoints.

        Raises:
            RuntimeError: If the server is already running
            OSError: If port binding fails
        """
        if self._running:
            raise RuntimeError("Relay server is already running")

        server_config = self.config.server
        logger.info(
            "Starting relay server",
            extra={"host": server_config.host, "port": server_config.port},
        )

        try:
            self._server = await websockets.serve(
                self._handle_connection,
                server_config.host,
                server_config.port,
                max_size=server_config.max_message_bytes,
            )
        except OSError as e:
            logger.error(
                "Failed to bind WebSocket server",
                extra={"host": server_config.host, "port": server_config.port, "error": str(e)},
            )
            raise

        self._running = True

        if self.config.health.enabled:
            health_app = Application()
            setup_health_routes(health_app, self)
            self._health_runner = AppRunner(health_app)
            await self._health_runner.setup()
            self._health_site = TCPSite(
                self._health_runner, self.config.health.host, self.config.health_port
            )
            await self._health_site.start()
            logger.info("Health check server started", extra={"port": self.health_port})

        logger.info("Relay server started", extra={"port": self.port})

    async def stop(self) -> None:
        """Stop accepting connections and close all sessions."""
        if not self._running:
            return

        logger.info("Stopping relay server")
        self._running = False

        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

        if self._health_runner is not None:
            await self._health_runner.cleanup()
            self._health_runner = None
            self._health_site = None

        logger.info("Relay server stopped")

    async def _handle_connection(self, websocket: ServerConnection) -> None:
        """Serve one WebSocket connection until it closes.

        Args:
            websocket: WebSocket connection
        """
        if len(self.hub) >= self.config.server.max_connections:
            logger.warning(
                "Connection rejected, server at capacity",
                extra={"remote": websocket.remote_address},
            )
            await websocket.close(code=CLOSE_TRY_AGAIN_LATER, reason="Server at capacity")
            return

        connection = WebSocketConnection(websocket)
        self.lifecycle.connect(connection)

        try:
            async for raw_message in websocket:
                await self.handle_message(connection, raw_message)
        except websockets.exceptions.ConnectionClosed as e:
            logger.info(
                "WebSocket connection lost",
                extra={"connection_id": connection.connection_id, "code": e.code},
            )
        except Exception:
            logger.exception(
                "Error in connection handler",
                extra={"connection_id": connection.connection_id},
            )
        finally:
            connection.mark_closed()
            await self.lifecycle.disconnect(connection.connection_id)

    async def handle_message(self, connection: Connection, raw_message: str | bytes) -> None:
        """Decode one client message and dispatch it.

        Invalid messages are answered with an ``error`` event and otherwise
        ignored; they never affect room state.

        Args:
            connection: Sending connection
            raw_message: Raw WebSocket payload
        """
        connection_id = connection.connection_id

        try:
            message = parse_client_message(raw_message)
        except ProtocolError as e:
            logger.warning(
                "Invalid client message",
                extra={"connection_id": connection_id, "error": str(e)},
            )
            await self.hub.send_to(connection_id, ErrorMessage(message=str(e), code=e.code))
            return

        if isinstance(message, VoiceMessage):
            await self.router.route_voice(connection_id, message.data)
        elif isinstance(message, SpeakingMessage):
            await self.router.route_speaking(connection_id, message.is_speaking, message.energy)
        elif isinstance(message, JoinRoomMessage):
            await self.lifecycle.join(connection_id, message.room, message.username)
        elif isinstance(message, LeaveRoomMessage):
            await self.lifecycle.leave(connection_id)


async def run_server(config: RelayConfig, stop_event: asyncio.Event | None = None) -> None:
    """Run the relay server until the stop event is set or a signal arrives.

    Args:
        config: Server configuration
        stop_event: Optional externally controlled stop event
    """
    stop_event = stop_event or asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers; Ctrl+C still interrupts
            logger.debug("Signal handlers unavailable", extra={"signal": sig.name})

    server = RelayServer(config)
    await server.start()
    try:
        await stop_event.wait()
    finally:
        await server.stop()


def main() -> None:
    """Entry point for the relay server."""
    parser = argparse.ArgumentParser(description="Voice activity relay server")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("configs") / "relay.yaml",
        help="Path to relay config YAML file (defaults used if missing)",
    )
    parser.add_argument("--host", type=str, default=None, help="Override bind host")
    parser.add_argument("--port", type=int, default=None, help="Override bind port")
    parser.add_argument("--log-level", type=str, default=None, help="Override log level")
    args = parser.parse_args()

    config = RelayConfig.from_yaml_with_defaults(args.config)
    if args.host is not None:
        config.server.host = args.host
    if args.port is not None:
        config.server.port = args.port
    if args.log_level is not None:
        config = config.model_copy(update={"log_level": args.log_level.upper()})

    setup_logging(config.log_level)

    try:
        asyncio.run(run_server(config))
    except KeyboardInterrupt:
        logger.info("Relay server interrupted")


if __name__ == "__main__":
    main()
