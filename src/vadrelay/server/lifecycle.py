"""Connection lifecycle management.

Handles join, explicit leave and abrupt disconnect for every connection,
keeping the room registry consistent and notifying affected rooms.

Room membership is always resolved through the registry, never through a
per-connection cached copy, so concurrent events from different
connections converge on the same view.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum

from vadrelay.server.hub import ConnectionHub
from vadrelay.server.registry import RoomRegistry
from vadrelay.transport.base import Connection
from vadrelay.transport.protocol import (
    ParticipantInfo,
    RoomLeftMessage,
    RoomUsersMessage,
    UpdateRoomsMessage,
    UserJoinedMessage,
    UserLeftMessage,
    YourIdMessage,
)

logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Per-connection state machine states.

    State Transitions:
    - UNBOUND → BOUND (join)
    - BOUND → BOUND (join another room, implicit leave first)
    - BOUND → UNBOUND (explicit leave)
    - * → TERMINATED (transport closed)
    """

    UNBOUND = "unbound"
    BOUND = "bound"
    TERMINATED = "terminated"


VALID_TRANSITIONS: dict[ConnectionState, set[ConnectionState]] = {
    ConnectionState.UNBOUND: {ConnectionState.BOUND, ConnectionState.TERMINATED},
    ConnectionState.BOUND: {
        ConnectionState.BOUND,
        ConnectionState.UNBOUND,
        ConnectionState.TERMINATED,
    },
    ConnectionState.TERMINATED: set(),  # Terminal state
}


@dataclass
class ConnectionBinding:
    """Lifecycle state of one connection."""

    connection_id: str
    state: ConnectionState = ConnectionState.UNBOUND
    joins: int = 0

    def transition(self, new_state: ConnectionState) -> None:
        """Transition to a new state with validation.

        Raises:
            ValueError: If transition is invalid
        """
        if new_state not in VALID_TRANSITIONS[self.state]:
            raise ValueError(f"Invalid state transition: {self.state.value} → {new_state.value}")

        old_state = self.state
        self.state = new_state

        logger.debug(
            "Connection state transition",
            extra={
                "connection_id": self.connection_id,
                "from_state": old_state.value,
                "to_state": new_state.value,
            },
        )


class ConnectionLifecycleManager:
    """Owns join/leave/disconnect handling for all connections.

    The registry and hub are owned by the server and passed in; this class
    holds no membership state of its own beyond each connection's
    lifecycle state. Membership changes and the broadcasts describing them
    are serialized by an asyncio lock so that room directory updates are
    emitted in the order the changes happened.
    """

    def __init__(self, registry: RoomRegistry, hub: ConnectionHub) -> None:
        """Initialize lifecycle manager.

        Args:
            registry: Shared room registry
            hub: Connection hub used for notifications
        """
        self._registry = registry
        self._hub = hub
        self._bindings: dict[str, ConnectionBinding] = {}
        self._lock = asyncio.Lock()

    def connect(self, connection: Connection) -> ConnectionBinding:
        """Register a newly accepted connection in the UNBOUND state."""
        self._hub.add(connection)
        binding = ConnectionBinding(connection_id=connection.connection_id)
        self._bindings[connection.connection_id] = binding

        logger.info("Connection registered", extra={"connection_id": connection.connection_id})
        return binding

    def state_of(self, connection_id: str) -> ConnectionState | None:
        """Current lifecycle state, None once the connection is forgotten."""
        binding = self._bindings.get(connection_id)
        return binding.state if binding is not None else None

    def current_room(self, connection_id: str) -> str | None:
        """Room the connection is bound to, resolved through the registry."""
        return self._registry.find_room(connection_id)

    @property
    def connection_count(self) -> int:
        """Number of live (non-terminated) connections."""
        return len(self._bindings)

    async def join(self, connection_id: str, room: str, username: str) -> bool:
        """Join a room, leaving the current one first if bound.

        Args:
            connection_id: Joining connection
            room: Target room name
            username: Display name

        Returns:
            True if the join was applied, False if the connection is gone
        """
        binding = self._bindings.get(connection_id)
        if binding is None:
            logger.debug(
                "Join from terminated connection ignored", extra={"connection_id": connection_id}
            )
            return False

        async with self._lock:
            if self._bindings.get(connection_id) is not binding:
                return False

            old_room = self._registry.find_room(connection_id)
            if old_room is not None:
                await self._remove_from_room(connection_id, old_room)

            self._registry.add_participant(room, connection_id, username)
            binding.transition(ConnectionState.BOUND)
            binding.joins += 1

            await self._hub.broadcast(
                self._registry.member_ids(room),
                UserJoinedMessage(id=connection_id, username=username),
                exclude=connection_id,
            )
            await self._hub.send_to(connection_id, self._snapshot(room))
            await self._hub.send_to(connection_id, YourIdMessage(id=connection_id))
            await self._hub.broadcast_all(self._room_directory())

        logger.info(
            "User joined room",
            extra={
                "connection_id": connection_id,
                "username": username,
                "room": room,
                "previous_room": old_room,
            },
        )
        return True

    async def leave(self, connection_id: str) -> bool:
        """Explicitly leave the current room.

        Returns:
            True if the connection was bound and has now left
        """
        binding = self._bindings.get(connection_id)
        if binding is None or binding.state is not ConnectionState.BOUND:
            logger.debug(
                "Leave while not in a room ignored", extra={"connection_id": connection_id}
            )
            return False

        async with self._lock:
            if (
                self._bindings.get(connection_id) is not binding
                or binding.state is not ConnectionState.BOUND
            ):
                return False

            room = self._registry.find_room(connection_id)
            if room is not None:
                await self._remove_from_room(connection_id, room)
            binding.transition(ConnectionState.UNBOUND)
            await self._hub.send_to(connection_id, RoomLeftMessage())

        logger.info("User left room", extra={"connection_id": connection_id, "room": room})
        return True

    async def disconnect(self, connection_id: str) -> bool:
        """Clean up after the transport closed.

        Performs the same registry cleanup and peer notifications as an
        explicit leave. Safe to call more than once.

        Returns:
            True if this call terminated the connection
        """
        binding = self._bindings.pop(connection_id, None)
        if binding is None:
            return False

        self._hub.remove(connection_id)

        async with self._lock:
            room = self._registry.find_room(connection_id)
            if room is not None:
                await self._remove_from_room(connection_id, room)
            binding.transition(ConnectionState.TERMINATED)

        logger.info("Connection terminated", extra={"connection_id": connection_id, "room": room})
        return True

    async def _remove_from_room(self, connection_id: str, room: str) -> None:
        """Remove from registry and notify remaining members (lock held)."""
        room_deleted = self._registry.remove_participant(room, connection_id)

        await self._hub.broadcast(
            self._registry.member_ids(room),
            UserLeftMessage(id=connection_id),
        )
        if room_deleted:
            await self._hub.broadcast_all(self._room_directory())

    def _snapshot(self, room: str) -> RoomUsersMessage:
        return RoomUsersMessage(
            users=[
                (
                    p.identity,
                    ParticipantInfo(username=p.name, is_speaking=p.is_speaking, energy=p.energy),
                )
                for p in self._registry.list_participants(room)
            ]
        )

    def _room_directory(self) -> UpdateRoomsMessage:
        return UpdateRoomsMessage(rooms=self._registry.list_room_names())
