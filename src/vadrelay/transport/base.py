"""Base connection abstraction for relay clients.

Defines the interface the hub uses to address a single client connection,
independent of the underlying transport.
"""

from abc import ABC, abstractmethod

from vadrelay.transport.protocol import RelayMessage


class Connection(ABC):
    """Base class for a server-side client connection.

    Each connection has a server-assigned identity that is unique among
    active connections and doubles as the participant identity.
    """

    @abstractmethod
    async def send_message(self, message: RelayMessage) -> None:
        """Send a relay message to the client.

        Args:
            message: Message to serialize and deliver

        Raises:
            ConnectionError: If the connection is closed or broken
        """
        pass

    @abstractmethod
    async def close(self, code: int = 1000, reason: str = "") -> None:
        """Close the connection.

        Args:
            code: WebSocket close code
            reason: Human readable close reason
        """
        pass

    @property
    @abstractmethod
    def connection_id(self) -> str:
        """Unique connection identifier, used as the participant identity."""
        pass

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Check if the connection is still open."""
        pass
