"""Relay router.

Fans inbound audio and speaking-state events out to the members of the
sender's current room:

- voice: every other member of the room (never the sender, never another room)
- speaking: every member of the room, sender included, after updating the
  registry

Events from senders that are not in a room are dropped without error; the
sender may have left while the event was in flight.
"""

import logging
from dataclasses import dataclass

from vadrelay.server.hub import ConnectionHub
from vadrelay.server.registry import RoomRegistry
from vadrelay.transport.protocol import UserSpeakingMessage, VoiceRelayMessage

logger = logging.getLogger(__name__)


@dataclass
class RelayStats:
    """Relay activity counters."""

    voice_blocks_relayed: int = 0
    voice_blocks_dropped: int = 0
    voice_deliveries: int = 0
    speaking_updates: int = 0
    speaking_updates_ignored: int = 0

    def as_dict(self) -> dict[str, int]:
        """Counters as a plain dictionary."""
        return {
            "voice_blocks_relayed": self.voice_blocks_relayed,
            "voice_blocks_dropped": self.voice_blocks_dropped,
            "voice_deliveries": self.voice_deliveries,
            "speaking_updates": self.speaking_updates,
            "speaking_updates_ignored": self.speaking_updates_ignored,
        }


class RelayRouter:
    """Routes voice and speaking events within rooms."""

    def __init__(self, registry: RoomRegistry, hub: ConnectionHub) -> None:
        """Initialize router.

        Args:
            registry: Shared room registry
            hub: Connection hub used for delivery
        """
        self._registry = registry
        self._hub = hub
        self.stats = RelayStats()

    async def route_voice(self, sender_id: str, data: str) -> int:
        """Forward an audio block to the sender's room peers.

        Args:
            sender_id: Sending connection identity
            data: Encoded audio block, relayed unmodified

        Returns:
            Number of peers the block was delivered to
        """
        room = self._registry.find_room(sender_id)
        if room is None:
            self.stats.voice_blocks_dropped += 1
            return 0

        delivered = await self._hub.broadcast(
            self._registry.member_ids(room),
            VoiceRelayMessage(id=sender_id, data=data),
            exclude=sender_id,
        )
        self.stats.voice_blocks_relayed += 1
        self.stats.voice_deliveries += delivered
        return delivered

    async def route_speaking(self, sender_id: str, is_speaking: bool, energy: float) -> int:
        """Record and broadcast a speaking-state change.

        Args:
            sender_id: Sending connection identity
            is_speaking: New speaking flag
            energy: Energy reading that accompanied the change (dBFS)

        Returns:
            Number of room members the update was delivered to
        """
        room = self._registry.find_room(sender_id)
        if room is None or not self._registry.update_state(room, sender_id, is_speaking, energy):
            self.stats.speaking_updates_ignored += 1
            return 0

        self.stats.speaking_updates += 1
        logger.debug(
            "Speaking state updated",
            extra={"connection_id": sender_id, "room": room, "is_speaking": is_speaking},
        )

        return await self._hub.broadcast(
            self._registry.member_ids(room),
            UserSpeakingMessage(id=sender_id, is_speaking=is_speaking, energy=energy),
        )
