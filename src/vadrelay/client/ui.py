"""Room view hooks for the client.

The capture pipeline and the room client never render anything
themselves; they drive a ``RoomView``: a meter-update callback, user-list
add/remove/clear callbacks and a debug log sink. ``ConsoleRoomView`` is the
terminal implementation used by the CLI and the tests.
"""

import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Protocol

from vadrelay.audio.energy import (
    DISPLAY_FLOOR_DB,
    DISPLAY_SCALE,
    MeterBand,
    meter_band,
    normalize_energy,
)

logger = logging.getLogger(__name__)


class RoomView(Protocol):
    """Display hooks driven by the client."""

    def update_meter(self, identity: str | None, energy_db: float) -> None:
        """Show a participant's latest energy reading."""
        ...

    def set_speaking(self, identity: str, is_speaking: bool) -> None:
        """Mark a participant as speaking or silent."""
        ...

    def add_user(self, identity: str, username: str) -> None:
        """Add a participant to the user list."""
        ...

    def remove_user(self, identity: str) -> None:
        """Remove a participant from the user list."""
        ...

    def clear_users(self) -> None:
        """Empty the user list."""
        ...

    def update_rooms(self, rooms: list[str]) -> None:
        """Replace the room directory."""
        ...

    def log(self, message: str) -> None:
        """Append a line to the debug log."""
        ...


class DebugLog:
    """Timestamped debug line sink with bounded history.

    Each line is stamped ``HH:MM:SS: message`` and also forwarded to the
    module logger.
    """

    def __init__(self, max_lines: int = 500, echo: bool = False) -> None:
        """Initialize debug log.

        Args:
            max_lines: Number of lines kept in history
            echo: Print each line to stdout as well
        """
        self._lines: deque[str] = deque(maxlen=max_lines)
        self._echo = echo

    def log(self, message: str) -> str:
        """Record a line and return it as stamped."""
        line = f"{time.strftime('%H:%M:%S')}: {message}"
        self._lines.append(line)
        logger.info(message)
        if self._echo:
            print(line)
        return line

    @property
    def lines(self) -> list[str]:
        """Recorded lines, oldest first."""
        return list(self._lines)

    def __len__(self) -> int:
        return len(self._lines)


@dataclass
class UserEntry:
    """One row of the console user list."""

    username: str
    is_speaking: bool = False
    meter_percent: float = 0.0
    meter_band: MeterBand = "low"


class ConsoleRoomView:
    """In-memory room view for terminal clients.

    Meter updates for identities that are not in the user list are logged
    and skipped; a meter update without an identity is logged as an error.
    """

    def __init__(
        self,
        debug_log: DebugLog | None = None,
        display_floor_db: float = DISPLAY_FLOOR_DB,
        display_scale: float = DISPLAY_SCALE,
    ) -> None:
        self.debug_log = debug_log or DebugLog()
        self.users: dict[str, UserEntry] = {}
        self.rooms: list[str] = []
        self._display_floor_db = display_floor_db
        self._display_scale = display_scale

    def update_meter(self, identity: str | None, energy_db: float) -> None:
        if identity is None:
            logger.error("Meter update without identity", extra={"energy_db": energy_db})
            return

        entry = self.users.get(identity)
        if entry is None:
            logger.warning("Meter target not found", extra={"identity": identity})
            self.debug_log.log(f"Meter element not found for {identity}")
            return

        entry.meter_percent = normalize_energy(
            energy_db, self._display_floor_db, self._display_scale
        )
        entry.meter_band = meter_band(entry.meter_percent)

    def set_speaking(self, identity: str, is_speaking: bool) -> None:
        entry = self.users.get(identity)
        if entry is None:
            logger.warning("Speaking target not found", extra={"identity": identity})
            return
        entry.is_speaking = is_speaking

    def add_user(self, identity: str, username: str) -> None:
        self.users[identity] = UserEntry(username=username)
        self.debug_log.log(f"User joined: {username}")

    def remove_user(self, identity: str) -> None:
        entry = self.users.pop(identity, None)
        if entry is not None:
            self.debug_log.log(f"User left: {entry.username}")

    def clear_users(self) -> None:
        self.users.clear()

    def update_rooms(self, rooms: list[str]) -> None:
        self.rooms = list(rooms)

    def log(self, message: str) -> None:
        self.debug_log.log(message)

    def render(self) -> str:
        """Render the user list as text, one participant per line."""
        lines = []
        for identity, entry in self.users.items():
            bar = "#" * int(entry.meter_percent // 5)
            marker = "*" if entry.is_speaking else " "
            lines.append(f"{marker} {entry.username:<20} [{bar:<20}] {entry.meter_band} ({identity})")
        return "\n".join(lines)
