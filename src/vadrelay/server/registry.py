"""Room registry.

Authoritative mapping of room name → participants and their transient
speaking state. A single instance is owned by the relay server and passed
explicitly to the lifecycle manager and the router.

Invariants:
- A room with zero participants is never stored
- An identity is a member of at most one room
"""

import logging
import weakref
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class Participant:
    """A connected room member."""

    identity: str
    name: str
    is_speaking: bool = False
    energy: float = 0.0


@dataclass
class Room:
    """A named partition of participants."""

    name: str
    participants: dict[str, Participant] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.participants)

    def __contains__(self, identity: object) -> bool:
        return identity in self.participants

    @property
    def member_ids(self) -> list[str]:
        """Identities of all current members."""
        return list(self.participants)


class RoomRegistry:
    """In-memory room membership store.

    Rooms created through ``create_or_get_room`` are held as pending until
    their first participant is added and are never listed while empty.
    Pending rooms are weakly referenced, so one that nobody joins or holds
    is forgotten. ``remove_participant`` deletes a room as soon as it
    empties.

    Thread-safety: This class is NOT thread-safe. Mutate only from the
    event loop that owns it.
    """

    def __init__(self) -> None:
        self._rooms: dict[str, Room] = {}
        self._pending: weakref.WeakValueDictionary[str, Room] = weakref.WeakValueDictionary()
        # identity → room name, kept in step with _rooms
        self._membership: dict[str, str] = {}

    def create_or_get_room(self, name: str) -> Room:
        """Return the named room, creating an empty one if absent.

        Idempotent: repeated calls return the same room object. A new room
        stays pending (invisible to listings) until a participant joins, and
        only for as long as the caller keeps a reference to it.

        Args:
            name: Case-sensitive room name

        Raises:
            ValueError: If the name is empty
        """
        if not name:
            raise ValueError("Room name must be non-empty")

        room = self._rooms.get(name)
        if room is None:
            room = self._pending.get(name)
        if room is None:
            room = Room(name=name)
            self._pending[name] = room
        return room

    def add_participant(self, room_name: str, identity: str, name: str) -> Participant:
        """Insert a participant with speaking=False and energy=0.

        Args:
            room_name: Target room (created on demand)
            identity: Connection identity
            name: Display name

        Returns:
            The new participant

        Raises:
            ValueError: If the identity is already a member of a room
        """
        current = self._membership.get(identity)
        if current is not None:
            raise ValueError(
                f"Participant {identity} is already in room '{current}'; remove it first"
            )

        room = self.create_or_get_room(room_name)
        participant = Participant(identity=identity, name=name)
        room.participants[identity] = participant
        self._pending.pop(room_name, None)
        self._rooms[room_name] = room
        self._membership[identity] = room_name

        logger.debug(
            "Participant added",
            extra={"room": room_name, "identity": identity, "members": len(room)},
        )
        return participant

    def remove_participant(self, room_name: str, identity: str) -> bool:
        """Remove a participant, deleting the room if it becomes empty.

        Args:
            room_name: Room to remove from
            identity: Connection identity

        Returns:
            True if the room was deleted as a result
        """
        room = self._rooms.get(room_name)
        if room is None or room.participants.pop(identity, None) is None:
            return False

        if self._membership.get(identity) == room_name:
            del self._membership[identity]

        if len(room) == 0:
            del self._rooms[room_name]
            logger.debug("Room deleted", extra={"room": room_name})
            return True

        return False

    def update_state(self, room_name: str, identity: str, is_speaking: bool, energy: float) -> bool:
        """Update a member's speaking flag and energy.

        Stale updates for identities that are no longer in the room are
        ignored.

        Returns:
            True if the participant was found and updated
        """
        room = self._rooms.get(room_name)
        if room is None:
            return False

        participant = room.participants.get(identity)
        if participant is None:
            return False

        participant.is_speaking = is_speaking
        participant.energy = energy
        return True

    def list_participants(self, room_name: str) -> list[Participant]:
        """Snapshot of a room's members (copies, safe to hand out)."""
        room = self._rooms.get(room_name)
        if room is None:
            return []
        return [
            Participant(p.identity, p.name, p.is_speaking, p.energy)
            for p in room.participants.values()
        ]

    def list_room_names(self) -> list[str]:
        """Names of all non-empty rooms."""
        return list(self._rooms)

    def get_room(self, room_name: str) -> Room | None:
        """Look up a stored room."""
        return self._rooms.get(room_name)

    def has_room(self, room_name: str) -> bool:
        """Whether a (non-empty) room exists."""
        return room_name in self._rooms

    def find_room(self, identity: str) -> str | None:
        """Name of the room the identity is in, None if unbound."""
        return self._membership.get(identity)

    def member_ids(self, room_name: str) -> list[str]:
        """Identities of a room's members, empty if the room doesn't exist."""
        room = self._rooms.get(room_name)
        return room.member_ids if room is not None else []

    @property
    def room_count(self) -> int:
        """Number of stored rooms."""
        return len(self._rooms)

    @property
    def participant_count(self) -> int:
        """Number of participants across all rooms."""
        return len(self._membership)
