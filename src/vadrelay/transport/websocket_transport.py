"""WebSocket connection implementation.

Wraps a ``websockets`` server connection in the ``Connection`` interface
used by the hub.
"""

import logging
import uuid

import websockets
from websockets.asyncio.server import ServerConnection
from websockets.protocol import State

from vadrelay.transport.base import Connection
from vadrelay.transport.protocol import RelayMessage

logger = logging.getLogger(__name__)


def new_connection_id() -> str:
    """Generate an opaque connection identity."""
    return uuid.uuid4().hex[:20]


class WebSocketConnection(Connection):
    """WebSocket-backed client connection."""

    def __init__(self, websocket: ServerConnection, connection_id: str | None = None) -> None:
        """Initialize WebSocket connection.

        Args:
            websocket: WebSocket server connection
            connection_id: Identity to use (generated when omitted)
        """
        self._websocket = websocket
        self._connection_id = connection_id or new_connection_id()
        self._connected = True

        logger.info(
            "WebSocket connection initialized",
            extra={"connection_id": self._connection_id, "remote": websocket.remote_address},
        )

    @property
    def connection_id(self) -> str:
        """Get unique connection identifier."""
        return self._connection_id

    @property
    def is_connected(self) -> bool:
        """Check if the connection is still active."""
        return self._connected and self._websocket.state == State.OPEN

    @property
    def websocket(self) -> ServerConnection:
        """Underlying WebSocket connection."""
        return self._websocket

    async def send_message(self, message: RelayMessage) -> None:
        """Send a relay message as a JSON text frame.

        Raises:
            ConnectionError: If the connection is closed or broken
        """
        if not self.is_connected:
            raise ConnectionError("WebSocket connection is closed")

        try:
            await self._websocket.send(message.to_json())
        except websockets.exceptions.ConnectionClosed as e:
            self._connected = False
            raise ConnectionError(f"WebSocket connection closed: {e}") from e

    async def close(self, code: int = 1000, reason: str = "") -> None:
        """Close the WebSocket connection."""
        if not self._connected:
            return

        logger.info("Closing WebSocket connection", extra={"connection_id": self._connection_id})

        try:
            await self._websocket.close(code=code, reason=reason)
        except Exception as e:
            logger.warning(
                "Error during connection close",
                extra={"connection_id": self._connection_id, "error": str(e)},
            )
        finally:
            self._connected = False

    def mark_closed(self) -> None:
        """Record that the transport reported closure."""
        self._connected = False
