"""Relay hub: room registry, connection lifecycle and event routing."""

from vadrelay.server.app import RelayServer
from vadrelay.server.hub import ConnectionHub
from vadrelay.server.lifecycle import ConnectionLifecycleManager, ConnectionState
from vadrelay.server.registry import Participant, Room, RoomRegistry
from vadrelay.server.router import RelayRouter, RelayStats

__all__ = [
    "ConnectionHub",
    "ConnectionLifecycleManager",
    "ConnectionState",
    "Participant",
    "RelayRouter",
    "RelayServer",
    "RelayStats",
    "Room",
    "RoomRegistry",
]
