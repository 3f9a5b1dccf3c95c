"""Voice Activity Detection module.

Classifies a stream of block energy readings into speaking / not speaking
using a fixed dB threshold with hysteresis padding, and tracks the
speaking state as an explicit two-state machine.

Key features:
- Energy threshold in dBFS (default -45 dB)
- Padding hold-over after the last loud block (default 300ms) so the tail
  of speech is not clipped and the output does not flicker
- Deterministic: identical (timestamp, energy) sequences give identical
  classifications
- Explicit SILENT/SPEAKING transitions reported exactly once per change
"""

import logging
from dataclasses import dataclass
from enum import Enum

from vadrelay.config import VADConfig

logger = logging.getLogger(__name__)


class SpeakingState(Enum):
    """Speaking state machine states.

    State Transitions:
    - SILENT → SPEAKING (voice detected)
    - SPEAKING → SILENT (no voice and padding expired)
    """

    SILENT = "silent"
    SPEAKING = "speaking"


def next_state(current: SpeakingState, voice_detected: bool) -> SpeakingState:
    """Transition function for the speaking state machine.

    Args:
        current: Current speaking state
        voice_detected: VAD classification for the latest block

    Returns:
        State after consuming the classification
    """
    if voice_detected:
        return SpeakingState.SPEAKING
    if current is SpeakingState.SPEAKING:
        return SpeakingState.SILENT
    return current


@dataclass(frozen=True)
class SpeakingChange:
    """A speaking state transition."""

    previous: SpeakingState
    current: SpeakingState

    @property
    def is_speaking(self) -> bool:
        """Whether the new state is SPEAKING."""
        return self.current is SpeakingState.SPEAKING


class SpeakingTracker:
    """Holds the current speaking state and reports transitions.

    Thread-safety: This class is NOT thread-safe. Use from a single task.
    """

    def __init__(self) -> None:
        self._state = SpeakingState.SILENT

    @property
    def state(self) -> SpeakingState:
        """Current speaking state."""
        return self._state

    @property
    def is_speaking(self) -> bool:
        """Whether the tracker is in the SPEAKING state."""
        return self._state is SpeakingState.SPEAKING

    def update(self, voice_detected: bool) -> SpeakingChange | None:
        """Feed a classification and report a transition if one happened.

        Args:
            voice_detected: VAD classification for the latest block

        Returns:
            SpeakingChange when the state changed, None otherwise
        """
        new_state = next_state(self._state, voice_detected)
        if new_state is self._state:
            return None

        change = SpeakingChange(previous=self._state, current=new_state)
        self._state = new_state
        logger.debug(
            "Speaking state transition",
            extra={"from_state": change.previous.value, "to_state": change.current.value},
        )
        return change

    def reset(self) -> None:
        """Return to SILENT without reporting a transition."""
        self._state = SpeakingState.SILENT


class VoiceActivityDetector:
    """Energy-threshold VAD with hysteresis padding.

    Example:
        ```python
        vad = VoiceActivityDetector(VADConfig(threshold_db=-45, padding_ms=300))

        vad.classify(-20.0, now_ms=0)    # True  (above threshold)
        vad.classify(-60.0, now_ms=50)   # True  (within padding)
        vad.classify(-60.0, now_ms=350)  # False (padding expired)
        ```
    """

    def __init__(self, config: VADConfig | None = None) -> None:
        """Initialize detector.

        Args:
            config: VAD configuration (threshold and padding)
        """
        self._config = config or VADConfig()
        self._last_voice_detect_ms: float | None = None

        logger.info(
            f"VAD initialized: threshold={self._config.threshold_db}dB, "
            f"padding={self._config.padding_ms}ms"
        )

    @property
    def threshold_db(self) -> float:
        """Energy threshold in dBFS."""
        return self._config.threshold_db

    @property
    def padding_ms(self) -> float:
        """Hold-over window in milliseconds."""
        return self._config.padding_ms

    @property
    def last_voice_detect_ms(self) -> float | None:
        """Timestamp of the last block above threshold, None if never."""
        return self._last_voice_detect_ms

    def classify(self, energy_db: float, now_ms: float) -> bool:
        """Classify one energy reading.

        Args:
            energy_db: Block energy in dBFS
            now_ms: Current time in milliseconds (monotonic)

        Returns:
            True if the block counts as speech
        """
        if energy_db > self._config.threshold_db:
            self._last_voice_detect_ms = now_ms
            return True

        if (
            self._last_voice_detect_ms is not None
            and now_ms - self._last_voice_detect_ms < self._config.padding_ms
        ):
            return True

        return False

    def reset(self) -> None:
        """Forget the last detection time."""
        self._last_voice_detect_ms = None
