"""Room-based voice activity relay.

Clients run an energy-threshold VAD over microphone blocks and transmit only
speech; the hub fans audio and speaking-state events out to the other members
of the sender's room.
"""

__version__ = "0.1.0"
