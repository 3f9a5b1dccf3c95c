"""Unit tests for relay server message dispatch.

Drives ``RelayServer.handle_message`` with recording connections, so the
whole join → speak → leave path runs without sockets.
"""

import json
from collections.abc import Callable

import numpy as np
import pytest

from tests.helpers.connections import RecordingConnection
from vadrelay.server.app import RelayServer
from vadrelay.transport.protocol import ErrorMessage, encode_samples

ConnectionFactory = Callable[[str], RecordingConnection]


def join(room: str, username: str) -> str:
    return json.dumps({"type": "join room", "room": room, "username": username})


class TestHandleMessage:
    """Test dispatch of client messages."""

    @pytest.mark.asyncio
    async def test_join_and_voice(
        self, relay_server: RelayServer, make_connection: ConnectionFactory
    ) -> None:
        """Joined members relay voice to each other."""
        a, b = make_connection("a"), make_connection("b")
        relay_server.lifecycle.connect(a)
        relay_server.lifecycle.connect(b)

        await relay_server.handle_message(a, join("lobby", "Alice"))
        await relay_server.handle_message(b, join("lobby", "Bob"))
        a.sent.clear()
        b.sent.clear()

        data = encode_samples(np.full(1024, 0.1, dtype=np.float32))
        await relay_server.handle_message(a, json.dumps({"type": "voice", "data": data}))

        assert a.sent == []
        assert b.types() == ["voice"]
        assert relay_server.registry.list_room_names() == ["lobby"]

    @pytest.mark.asyncio
    async def test_speaking_dispatch(
        self, relay_server: RelayServer, make_connection: ConnectionFactory
    ) -> None:
        """Speaking updates are echoed to the whole room."""
        a = make_connection("a")
        relay_server.lifecycle.connect(a)
        await relay_server.handle_message(a, join("lobby", "Alice"))
        a.sent.clear()

        await relay_server.handle_message(
            a, json.dumps({"type": "speaking", "isSpeaking": True, "energy": -20.0})
        )

        assert a.types() == ["user speaking"]

    @pytest.mark.asyncio
    async def test_leave_dispatch(
        self, relay_server: RelayServer, make_connection: ConnectionFactory
    ) -> None:
        """Leave acknowledges with room left."""
        a = make_connection("a")
        relay_server.lifecycle.connect(a)
        await relay_server.handle_message(a, join("lobby", "Alice"))
        a.sent.clear()

        await relay_server.handle_message(a, '{"type": "leave room"}')

        assert a.types() == ["update rooms", "room left"]
        assert relay_server.registry.room_count == 0

    @pytest.mark.asyncio
    async def test_invalid_message_reports_error(
        self, relay_server: RelayServer, make_connection: ConnectionFactory
    ) -> None:
        """Invalid messages get an error event and change nothing."""
        a = make_connection("a")
        relay_server.lifecycle.connect(a)

        await relay_server.handle_message(a, '{"type": "voice", "data": "@@@"}')

        assert a.types() == ["error"]
        error = a.sent[0]
        assert isinstance(error, ErrorMessage)
        assert error.code == "INVALID_AUDIO"
        assert relay_server.registry.room_count == 0

    @pytest.mark.asyncio
    async def test_voice_before_join_dropped(
        self, relay_server: RelayServer, make_connection: ConnectionFactory
    ) -> None:
        """Voice from an unbound connection is silently dropped."""
        a = make_connection("a")
        relay_server.lifecycle.connect(a)
        data = encode_samples(np.zeros(256, dtype=np.float32))

        await relay_server.handle_message(a, json.dumps({"type": "voice", "data": data}))

        assert a.sent == []
        assert relay_server.router.stats.voice_blocks_dropped == 1


class TestServerState:
    """Test server properties before start."""

    def test_not_running_before_start(self, relay_server: RelayServer) -> None:
        """A fresh server is not running and reports its configured port."""
        assert relay_server.is_running is False
        assert relay_server.port == 0
        assert relay_server.health_port is None

    @pytest.mark.asyncio
    async def test_stop_without_start(self, relay_server: RelayServer) -> None:
        """Stopping a server that never started is a no-op."""
        await relay_server.stop()
        assert relay_server.is_running is False
