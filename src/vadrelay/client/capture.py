"""Microphone capture pipeline.

Feeds fixed-size microphone blocks through the energy meter and the VAD
and turns the result into network emissions:

- every block: meter update for the local participant
- speaking blocks: the raw block is transmitted as ``voice``
- speaking-state changes: one ``speaking`` notification per transition,
  whether or not the block itself was transmitted

Blocks arrive on the PortAudio callback thread and are handed to the event
loop with ``call_soon_threadsafe``; a single consumer task processes them
strictly in capture order, so no two blocks are ever processed at once.
"""

import asyncio
import contextlib
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

import numpy as np
from numpy.typing import NDArray

from vadrelay.audio.energy import compute_energy_db
from vadrelay.client.ui import RoomView
from vadrelay.config import CaptureConfig, ClientConfig
from vadrelay.vad import SpeakingChange, SpeakingTracker, VoiceActivityDetector

logger = logging.getLogger(__name__)


class CaptureError(Exception):
    """Base class for capture failures."""


class CaptureStartError(CaptureError):
    """Raised when the microphone stream cannot be acquired."""


class VoiceUplink(Protocol):
    """Network side of the capture pipeline."""

    async def send_voice(self, samples: NDArray[np.float32]) -> None:
        """Transmit one audio block."""
        ...

    async def send_speaking(self, is_speaking: bool, energy: float) -> None:
        """Notify a speaking-state change."""
        ...

    async def send_leave(self) -> None:
        """Leave the current room."""
        ...


AudioCallback = Callable[[NDArray[np.float32], int, Any, Any], None]
StreamFactory = Callable[[CaptureConfig, AudioCallback], Any]


def open_input_stream(config: CaptureConfig, callback: AudioCallback) -> Any:
    """Open and start a sounddevice input stream.

    Args:
        config: Capture configuration
        callback: PortAudio block callback

    Returns:
        Started ``sounddevice.InputStream``

    Raises:
        CaptureStartError: If PortAudio is unavailable or the device cannot be opened
    """
    try:
        import sounddevice as sd
    except (ImportError, OSError) as e:
        raise CaptureStartError(f"Audio backend unavailable: {e}") from e

    try:
        stream = sd.InputStream(
            samplerate=config.sample_rate,
            blocksize=config.block_size,
            channels=config.channels,
            dtype="float32",
            device=config.device,
            callback=callback,
        )
        stream.start()
    except (sd.PortAudioError, OSError, ValueError) as e:
        raise CaptureStartError(f"Could not open input device: {e}") from e

    return stream


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


@dataclass(frozen=True)
class BlockResult:
    """Outcome of processing one captured block."""

    energy_db: float
    is_speaking: bool
    transmitted: bool
    change: SpeakingChange | None = None


class CapturePipeline:
    """Energy → VAD → transmit pipeline for one capture session.

    Example:
        ```python
        pipeline = CapturePipeline(config, uplink=client, view=view)
        pipeline.identity = "a1b2c3"
        await pipeline.start()
        ...
        await pipeline.stop()
        ```
    """

    def __init__(
        self,
        config: ClientConfig,
        uplink: VoiceUplink,
        view: RoomView,
        clock: Callable[[], float] | None = None,
        stream_factory: StreamFactory = open_input_stream,
    ) -> None:
        """Initialize capture pipeline.

        Args:
            config: Client configuration (capture, VAD and meter settings)
            uplink: Network emitter for voice/speaking/leave events
            view: Display hooks (meter updates, debug log)
            clock: Millisecond clock, monotonic by default
            stream_factory: Opens the microphone stream
        """
        self.config = config
        self.identity: str | None = None
        self._uplink = uplink
        self._view = view
        self._clock = clock or _monotonic_ms
        self._stream_factory = stream_factory

        self._vad = VoiceActivityDetector(config.vad)
        self._tracker = SpeakingTracker()

        self._stream: Any = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: asyncio.Queue[NDArray[np.float32]] | None = None
        self._consumer: asyncio.Task[None] | None = None

        self.blocks_processed = 0
        self.blocks_dropped = 0

    @property
    def is_running(self) -> bool:
        """Whether the microphone stream is open."""
        return self._stream is not None

    @property
    def is_speaking(self) -> bool:
        """Current speaking state."""
        return self._tracker.is_speaking

    async def process_block(
        self, block: NDArray[np.floating], now_ms: float | None = None
    ) -> BlockResult | None:
        """Process one captured block.

        Args:
            block: Mono float samples
            now_ms: Block timestamp in milliseconds (defaults to the clock)

        Returns:
            BlockResult, or None if the block was dropped for lack of identity
        """
        if self.identity is None:
            self.blocks_dropped += 1
            logger.error("Captured block dropped, no identity assigned yet")
            self._view.log("Error: no user ID assigned, dropping captured audio")
            return None

        samples = np.asarray(block, dtype=np.float32).reshape(-1)
        now = self._clock() if now_ms is None else now_ms

        energy = compute_energy_db(samples, self.config.meter.floor_db)
        speaking = self._vad.classify(energy, now)

        if speaking:
            await self._uplink.send_voice(samples)

        self._view.update_meter(self.identity, energy)

        change = self._tracker.update(speaking)
        if change is not None:
            await self._uplink.send_speaking(change.is_speaking, energy)
            self._view.log(f"Speaking state changed. Is speaking: {change.is_speaking}")

        self.blocks_processed += 1
        return BlockResult(
            energy_db=energy, is_speaking=speaking, transmitted=speaking, change=change
        )

    async def start(self) -> None:
        """Open the microphone and start processing blocks.

        Raises:
            CaptureStartError: If the microphone stream cannot be opened
        """
        if self.is_running:
            logger.debug("Capture already running")
            return

        self._loop = asyncio.get_running_loop()
        queue: asyncio.Queue[NDArray[np.float32]] = asyncio.Queue()
        self._queue = queue
        self._vad.reset()
        self._tracker.reset()

        try:
            self._stream = self._stream_factory(self.config.capture, self._on_audio)
        except CaptureStartError:
            self._queue = None
            raise

        self._consumer = asyncio.create_task(self._consume(queue))
        logger.info(
            "Capture started",
            extra={
                "sample_rate": self.config.capture.sample_rate,
                "block_size": self.config.capture.block_size,
            },
        )
        self._view.log("Voice chat started.")

    async def stop(self) -> None:
        """Stop capture, discard pending blocks and leave the room.

        Safe to call when capture is not running.
        """
        if not self.is_running:
            return

        stream, self._stream = self._stream, None
        try:
            stream.stop()
            stream.close()
        except Exception as e:
            logger.warning(f"Error closing input stream: {e}")

        if self._consumer is not None:
            self._consumer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._consumer
            self._consumer = None

        self._queue = None
        self._vad.reset()
        self._tracker.reset()

        logger.info("Capture stopped", extra={"blocks_processed": self.blocks_processed})
        self._view.log("Voice chat stopped.")

        try:
            await self._uplink.send_leave()
        except ConnectionError as e:
            logger.warning(f"Could not send leave, connection lost: {e}")

    def _on_audio(
        self, indata: NDArray[np.float32], frames: int, time_info: Any, status: Any
    ) -> None:
        """PortAudio callback (runs on the audio thread)."""
        if status:
            logger.warning("Input stream status: %s", status)

        # Bind the queue now so a late block never reaches a later session
        loop, queue = self._loop, self._queue
        if loop is None or queue is None or loop.is_closed():
            return
        block = np.array(indata[:, 0] if indata.ndim > 1 else indata, dtype=np.float32)
        loop.call_soon_threadsafe(queue.put_nowait, block)

    async def _consume(self, queue: asyncio.Queue[NDArray[np.float32]]) -> None:
        """Process queued blocks one at a time, in capture order."""
        while True:
            block = await queue.get()
            try:
                await self.process_block(block)
            except ConnectionError as e:
                logger.warning(f"Voice uplink unavailable: {e}")
            except Exception as e:
                logger.error(f"Failed to process captured block: {e}", exc_info=True)
