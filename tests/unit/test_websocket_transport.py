"""Unit tests for the WebSocket connection wrapper.

Tests identity assignment, JSON text framing and closed-connection
handling against a mocked ``websockets`` connection.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from websockets.exceptions import ConnectionClosedError
from websockets.frames import Close
from websockets.protocol import State

from vadrelay.transport.protocol import UserJoinedMessage, YourIdMessage
from vadrelay.transport.websocket_transport import WebSocketConnection, new_connection_id


class TestWebSocketConnection:
    """Test WebSocketConnection."""

    @pytest.fixture
    def mock_websocket(self) -> MagicMock:
        """Create mock WebSocket connection."""
        ws = MagicMock()
        ws.state = State.OPEN
        ws.remote_address = ("127.0.0.1", 12345)
        ws.send = AsyncMock()
        ws.close = AsyncMock()
        return ws

    def test_identity_generated(self, mock_websocket: MagicMock) -> None:
        """Each connection gets a distinct opaque identity."""
        first = WebSocketConnection(mock_websocket)
        second = WebSocketConnection(mock_websocket)

        assert first.connection_id != second.connection_id
        assert len(new_connection_id()) == 20
        assert WebSocketConnection(mock_websocket, "fixed").connection_id == "fixed"

    @pytest.mark.asyncio
    async def test_send_message_as_json_text(self, mock_websocket: MagicMock) -> None:
        """Messages are sent as JSON text with wire field names."""
        connection = WebSocketConnection(mock_websocket, "abc")

        await connection.send_message(UserJoinedMessage(id="b", username="Bob"))

        sent = json.loads(mock_websocket.send.call_args[0][0])
        assert sent == {"type": "user joined", "id": "b", "username": "Bob"}

    @pytest.mark.asyncio
    async def test_send_when_closed(self, mock_websocket: MagicMock) -> None:
        """Sending on a closed socket raises ConnectionError."""
        mock_websocket.state = State.CLOSED
        connection = WebSocketConnection(mock_websocket, "abc")

        with pytest.raises(ConnectionError, match="connection is closed"):
            await connection.send_message(YourIdMessage(id="abc"))

    @pytest.mark.asyncio
    async def test_send_after_peer_closed(self, mock_websocket: MagicMock) -> None:
        """A ConnectionClosed from the library becomes ConnectionError."""
        mock_websocket.send.side_effect = ConnectionClosedError(Close(1006, ""), None)
        connection = WebSocketConnection(mock_websocket, "abc")

        with pytest.raises(ConnectionError):
            await connection.send_message(YourIdMessage(id="abc"))
        assert connection.is_connected is False

    @pytest.mark.asyncio
    async def test_close(self, mock_websocket: MagicMock) -> None:
        """Close forwards the code once."""
        connection = WebSocketConnection(mock_websocket, "abc")

        await connection.close(code=1013, reason="busy")
        await connection.close()

        mock_websocket.close.assert_awaited_once_with(code=1013, reason="busy")
        assert connection.is_connected is False

    def test_mark_closed(self, mock_websocket: MagicMock) -> None:
        """Transport closure marks the connection disconnected."""
        connection = WebSocketConnection(mock_websocket, "abc")
        connection.mark_closed()
        assert connection.is_connected is False
