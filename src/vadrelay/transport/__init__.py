"""Transport layer for relay client connections.

Provides the wire protocol models and the connection abstraction used by
the hub.
"""

from vadrelay.transport.base import Connection
from vadrelay.transport.protocol import ProtocolError, RelayMessage
from vadrelay.transport.websocket_transport import WebSocketConnection

__all__ = [
    "Connection",
    "ProtocolError",
    "RelayMessage",
    "WebSocketConnection",
]
