"""Unit tests for the connection hub.

Tests connection registration, addressed sends and best-effort broadcast.
"""

import asyncio
from collections.abc import Callable
from unittest.mock import AsyncMock

import pytest

from tests.helpers.connections import RecordingConnection, StalledConnection
from vadrelay.server.hub import ConnectionHub
from vadrelay.transport.protocol import RoomLeftMessage, UpdateRoomsMessage


class TestConnectionHub:
    """Test ConnectionHub."""

    def test_add_and_remove(self, make_connection: Callable[[str], RecordingConnection]) -> None:
        """Connections are tracked by identity."""
        hub = ConnectionHub()
        conn = make_connection("a")
        hub.add(conn)

        assert "a" in hub
        assert len(hub) == 1
        assert hub.get("a") is conn

        assert hub.remove("a") is conn
        assert hub.remove("a") is None
        assert len(hub) == 0

    def test_duplicate_identity_rejected(
        self, make_connection: Callable[[str], RecordingConnection]
    ) -> None:
        """Identities are unique among active connections."""
        hub = ConnectionHub()
        hub.add(make_connection("a"))
        with pytest.raises(ValueError):
            hub.add(make_connection("a"))

    @pytest.mark.asyncio
    async def test_send_to_unknown(self) -> None:
        """Sending to an unknown identity reports failure."""
        hub = ConnectionHub()
        assert await hub.send_to("missing", RoomLeftMessage()) is False

    @pytest.mark.asyncio
    async def test_broadcast_excludes_sender(
        self, make_connection: Callable[[str], RecordingConnection]
    ) -> None:
        """Broadcast skips the excluded identity."""
        hub = ConnectionHub()
        a, b, c = make_connection("a"), make_connection("b"), make_connection("c")
        for conn in (a, b, c):
            hub.add(conn)

        delivered = await hub.broadcast(["a", "b", "c"], RoomLeftMessage(), exclude="a")

        assert delivered == 2
        assert a.sent == []
        assert len(b.sent) == 1
        assert len(c.sent) == 1

    @pytest.mark.asyncio
    async def test_broadcast_is_best_effort(
        self, make_connection: Callable[[str], RecordingConnection]
    ) -> None:
        """A failing receiver does not stop delivery to the others."""
        hub = ConnectionHub()
        good = make_connection("good")
        broken = make_connection("broken")
        broken.send_message = AsyncMock(side_effect=RuntimeError("boom"))  # type: ignore[method-assign]
        gone = make_connection("gone")
        gone.send_message = AsyncMock(side_effect=ConnectionError("closed"))  # type: ignore[method-assign]
        for conn in (good, broken, gone):
            hub.add(conn)

        delivered = await hub.broadcast_all(UpdateRoomsMessage(rooms=["lobby"]))

        assert delivered == 1
        assert good.types() == ["update rooms"]

    @pytest.mark.asyncio
    async def test_closed_connection_skipped(
        self, make_connection: Callable[[str], RecordingConnection]
    ) -> None:
        """Disconnected receivers are skipped without error."""
        hub = ConnectionHub()
        conn = make_connection("a")
        hub.add(conn)
        conn.drop()

        assert await hub.send_to("a", RoomLeftMessage()) is False

    @pytest.mark.asyncio
    async def test_stalled_receiver_times_out(
        self, make_connection: Callable[[str], RecordingConnection]
    ) -> None:
        """A receiver that never reads loses the message without holding up the rest."""
        hub = ConnectionHub(send_timeout=0.05)
        good = make_connection("good")
        hub.add(good)
        hub.add(StalledConnection("stalled"))

        delivered = await asyncio.wait_for(
            hub.broadcast_all(UpdateRoomsMessage(rooms=["lobby"])), timeout=1.0
        )

        assert delivered == 1
        assert good.types() == ["update rooms"]
        assert hub.sends_timed_out == 1
