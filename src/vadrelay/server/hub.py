"""Connection hub.

Tracks live connections by identity and provides the addressed and
broadcast send primitives used by the lifecycle manager and the router.
Fan-out is best-effort: a failed or timed-out send to one receiver is
logged and does not affect delivery to the others.
"""

import asyncio
import logging
from collections.abc import Iterable

from vadrelay.transport.base import Connection
from vadrelay.transport.protocol import RelayMessage

logger = logging.getLogger(__name__)


class ConnectionHub:
    """Registry of live connections keyed by connection identity."""

    def __init__(self, send_timeout: float = 5.0) -> None:
        """Initialize connection hub.

        Args:
            send_timeout: Seconds a single delivery may take before it is dropped
        """
        self._connections: dict[str, Connection] = {}
        self.send_timeout = send_timeout
        self.sends_timed_out = 0

    def add(self, connection: Connection) -> None:
        """Register a newly accepted connection.

        Raises:
            ValueError: If the identity is already registered
        """
        if connection.connection_id in self._connections:
            raise ValueError(f"Connection {connection.connection_id} already registered")
        self._connections[connection.connection_id] = connection

    def remove(self, connection_id: str) -> Connection | None:
        """Unregister a connection, returning it if it was present."""
        return self._connections.pop(connection_id, None)

    def get(self, connection_id: str) -> Connection | None:
        """Look up a live connection."""
        return self._connections.get(connection_id)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._connections

    def __len__(self) -> int:
        return len(self._connections)

    @property
    def connection_ids(self) -> list[str]:
        """Identities of all registered connections."""
        return list(self._connections)

    async def send_to(self, connection_id: str, message: RelayMessage) -> bool:
        """Send a message to a single connection.

        Returns:
            True if the message was handed to the transport
        """
        connection = self._connections.get(connection_id)
        if connection is None or not connection.is_connected:
            return False

        try:
            await asyncio.wait_for(connection.send_message(message), self.send_timeout)
            return True
        except TimeoutError:
            self.sends_timed_out += 1
            logger.warning(
                "Send timed out, receiver not reading",
                extra={"connection_id": connection_id, "timeout_s": self.send_timeout},
            )
        except ConnectionError as e:
            logger.debug(
                "Send failed, receiver gone",
                extra={"connection_id": connection_id, "error": str(e)},
            )
        except Exception as e:
            logger.error(
                "Failed to send message",
                extra={"connection_id": connection_id, "error": str(e)},
            )
        return False

    async def broadcast(
        self,
        connection_ids: Iterable[str],
        message: RelayMessage,
        exclude: str | None = None,
    ) -> int:
        """Send a message to a set of connections.

        Args:
            connection_ids: Receivers
            message: Message to deliver
            exclude: Identity to skip (typically the sender)

        Returns:
            Number of receivers the message was delivered to
        """
        targets = [cid for cid in connection_ids if cid != exclude]
        if not targets:
            return 0

        results = await asyncio.gather(*(self.send_to(cid, message) for cid in targets))
        return sum(1 for delivered in results if delivered)

    async def broadcast_all(self, message: RelayMessage) -> int:
        """Send a message to every registered connection."""
        return await self.broadcast(self.connection_ids, message)
