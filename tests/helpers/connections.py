"""In-memory connection doubles for hub, lifecycle and router tests."""

import asyncio

from vadrelay.transport.base import Connection
from vadrelay.transport.protocol import RelayMessage


class RecordingConnection(Connection):
    """Connection double that records sent messages."""

    def __init__(self, connection_id: str) -> None:
        self._connection_id = connection_id
        self._connected = True
        self.sent: list[RelayMessage] = []
        self.close_code: int | None = None

    @property
    def connection_id(self) -> str:
        return self._connection_id

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def send_message(self, message: RelayMessage) -> None:
        if not self._connected:
            raise ConnectionError("closed")
        self.sent.append(message)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self._connected = False
        self.close_code = code

    def drop(self) -> None:
        """Simulate the transport going away."""
        self._connected = False

    def of_type(self, message_type: str) -> list[RelayMessage]:
        """Recorded messages with the given wire type."""
        return [m for m in self.sent if getattr(m, "type", None) == message_type]

    def types(self) -> list[str]:
        """Wire types of recorded messages, in send order."""
        return [getattr(m, "type", "") for m in self.sent]


class StalledConnection(RecordingConnection):
    """Connection double whose peer never reads: every send blocks forever."""

    async def send_message(self, message: RelayMessage) -> None:
        await asyncio.Event().wait()
