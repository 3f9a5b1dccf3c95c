"""Unit tests for the room registry.

Tests room creation, membership invariants, empty-room deletion and the
stale-update guard.
"""

import gc

import pytest

from vadrelay.server.registry import RoomRegistry


@pytest.fixture
def registry() -> RoomRegistry:
    """Empty registry."""
    return RoomRegistry()


class TestRoomCreation:
    """Test create_or_get_room."""

    def test_idempotent(self, registry: RoomRegistry) -> None:
        """Repeated calls return the same room."""
        assert registry.create_or_get_room("lobby") is registry.create_or_get_room("lobby")

    def test_unjoined_rooms_not_retained(self, registry: RoomRegistry) -> None:
        """Rooms that are created but never joined do not accumulate."""
        for i in range(1000):
            registry.create_or_get_room(f"room-{i}")
        gc.collect()

        assert len(registry._pending) == 0
        assert registry.room_count == 0

    def test_pending_room_becomes_live_on_join(self, registry: RoomRegistry) -> None:
        """A held pending room is the one the first participant joins."""
        room = registry.create_or_get_room("lobby")
        registry.add_participant("lobby", "a", "Alice")

        assert registry.create_or_get_room("lobby") is room
        assert room.member_ids == ["a"]

    def test_empty_room_not_listed(self, registry: RoomRegistry) -> None:
        """A room without participants is never visible."""
        registry.create_or_get_room("lobby")
        assert registry.list_room_names() == []
        assert registry.has_room("lobby") is False

    def test_empty_name_rejected(self, registry: RoomRegistry) -> None:
        """Room names must be non-empty."""
        with pytest.raises(ValueError):
            registry.create_or_get_room("")

    def test_names_are_case_sensitive(self, registry: RoomRegistry) -> None:
        """'Lobby' and 'lobby' are different rooms."""
        registry.add_participant("lobby", "a", "A")
        registry.add_participant("Lobby", "b", "B")
        assert sorted(registry.list_room_names()) == ["Lobby", "lobby"]


class TestMembership:
    """Test participant add/remove and invariants."""

    def test_add_participant_defaults(self, registry: RoomRegistry) -> None:
        """New participants are silent with zero energy."""
        participant = registry.add_participant("lobby", "a", "Alice")
        assert participant.is_speaking is False
        assert participant.energy == 0.0
        assert registry.find_room("a") == "lobby"
        assert registry.list_room_names() == ["lobby"]

    def test_no_double_membership(self, registry: RoomRegistry) -> None:
        """An identity cannot be in two rooms."""
        registry.add_participant("lobby", "a", "Alice")
        with pytest.raises(ValueError, match="already in room"):
            registry.add_participant("kitchen", "a", "Alice")

    def test_remove_last_member_deletes_room(self, registry: RoomRegistry) -> None:
        """Removing the last member deletes the room."""
        registry.add_participant("lobby", "a", "Alice")
        registry.add_participant("lobby", "b", "Bob")

        assert registry.remove_participant("lobby", "a") is False
        assert registry.has_room("lobby")

        assert registry.remove_participant("lobby", "b") is True
        assert registry.list_room_names() == []
        assert registry.find_room("b") is None

    def test_remove_unknown_identity(self, registry: RoomRegistry) -> None:
        """Removing a non-member is a no-op."""
        registry.add_participant("lobby", "a", "Alice")
        assert registry.remove_participant("lobby", "zzz") is False
        assert registry.remove_participant("nowhere", "a") is False
        assert registry.member_ids("lobby") == ["a"]

    def test_list_participants_returns_copies(self, registry: RoomRegistry) -> None:
        """Mutating a snapshot does not touch stored state."""
        registry.add_participant("lobby", "a", "Alice")
        snapshot = registry.list_participants("lobby")
        snapshot[0].is_speaking = True
        assert registry.list_participants("lobby")[0].is_speaking is False

    def test_counts(self, registry: RoomRegistry) -> None:
        """Room and participant counts track membership."""
        registry.add_participant("lobby", "a", "Alice")
        registry.add_participant("lobby", "b", "Bob")
        registry.add_participant("kitchen", "c", "Carol")
        assert registry.room_count == 2
        assert registry.participant_count == 3


class TestUpdateState:
    """Test speaking/energy updates."""

    def test_update_member(self, registry: RoomRegistry) -> None:
        """Updates change the stored flag and energy."""
        registry.add_participant("lobby", "a", "Alice")
        assert registry.update_state("lobby", "a", True, -20.0) is True

        participant = registry.list_participants("lobby")[0]
        assert participant.is_speaking is True
        assert participant.energy == -20.0

    def test_stale_update_ignored(self, registry: RoomRegistry) -> None:
        """Updates for identities that left are silently ignored."""
        registry.add_participant("lobby", "a", "Alice")
        registry.add_participant("lobby", "b", "Bob")
        registry.remove_participant("lobby", "a")

        assert registry.update_state("lobby", "a", True, -20.0) is False
        assert registry.update_state("gone", "b", True, -20.0) is False
        assert [p.identity for p in registry.list_participants("lobby")] == ["b"]
