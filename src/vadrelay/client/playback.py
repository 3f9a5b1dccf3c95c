"""Playback queue for relayed voice blocks.

A single process-wide FIFO of ``(sender, block)`` pairs drained by one
consumer task: at most one block plays at a time, blocks play in the order
they were enqueued regardless of sender, and the queue goes idle when
empty and restarts on the next enqueue. Blocks from different senders are
interleaved, never mixed.
"""

import asyncio
import contextlib
import logging
from typing import Any, Protocol

import numpy as np
from numpy.typing import NDArray

from vadrelay.config import PlaybackConfig

logger = logging.getLogger(__name__)


class AudioSink(Protocol):
    """Audio output used by the playback queue."""

    async def open(self) -> None:
        """Acquire the output device."""
        ...

    async def play(self, samples: NDArray[np.float32]) -> None:
        """Play one block to completion."""
        ...

    async def close(self) -> None:
        """Release the output device."""
        ...


class SoundDeviceSink:
    """Speaker output through a sounddevice ``OutputStream``.

    Blocking writes run in a worker thread so the event loop keeps serving
    the connection while a block plays. A write cannot be interrupted once
    it has started, so ``close`` waits for it before stopping the stream.
    """

    def __init__(self, config: PlaybackConfig | None = None) -> None:
        self.config = config or PlaybackConfig()
        self._stream: Any = None
        self._write: asyncio.Future[Any] | None = None

    async def open(self) -> None:
        if self._stream is not None:
            return

        import sounddevice as sd

        self._stream = sd.OutputStream(
            samplerate=self.config.sample_rate,
            channels=1,
            dtype="float32",
            device=self.config.device,
        )
        self._stream.start()
        logger.info(
            f"Audio output initialized (device: {self.config.device or 'default'}, "
            f"rate: {self.config.sample_rate}Hz)"
        )

    async def play(self, samples: NDArray[np.float32]) -> None:
        if self._stream is None:
            await self.open()
        self._write = asyncio.ensure_future(
            asyncio.to_thread(self._stream.write, samples.reshape(-1, 1))
        )
        # Cancelling the caller must not abandon the thread mid-write
        await asyncio.shield(self._write)

    async def close(self) -> None:
        if self._stream is None:
            return
        stream, self._stream = self._stream, None

        write, self._write = self._write, None
        if write is not None:
            try:
                await write
            except Exception as e:
                logger.debug(f"Final block write failed during close: {e}")

        await asyncio.to_thread(stream.stop)
        stream.close()


class PlaybackQueue:
    """FIFO playback of relayed blocks with an explicit consumer task.

    Blocks enqueued while the queue is stopped are dropped, since there is
    no open output to play them on.
    """

    def __init__(self, sink: AudioSink) -> None:
        """Initialize playback queue.

        Args:
            sink: Audio output
        """
        self._sink = sink
        self._queue: asyncio.Queue[tuple[str, NDArray[np.float32]]] = asyncio.Queue()
        self._consumer: asyncio.Task[None] | None = None
        self._playing = False

        self.blocks_played = 0
        self.blocks_dropped = 0

    @property
    def is_running(self) -> bool:
        """Whether the consumer task is active."""
        return self._consumer is not None and not self._consumer.done()

    @property
    def is_playing(self) -> bool:
        """Whether a block is currently being played."""
        return self._playing

    @property
    def pending(self) -> int:
        """Number of blocks waiting to play."""
        return self._queue.qsize()

    def enqueue(self, sender: str, samples: NDArray[np.float32]) -> bool:
        """Append a block to the queue.

        Args:
            sender: Identity of the participant that sent the block
            samples: Decoded float32 samples

        Returns:
            True if queued, False if dropped because playback is stopped
        """
        if not self.is_running:
            self.blocks_dropped += 1
            logger.debug("Playback stopped, dropping block", extra={"sender": sender})
            return False

        self._queue.put_nowait((sender, samples))
        return True

    async def start(self) -> None:
        """Open the sink and start the consumer. No-op if already running."""
        if self.is_running:
            return

        await self._sink.open()
        self._consumer = asyncio.create_task(self._run())
        logger.info("Playback started")

    async def stop(self) -> None:
        """Stop the consumer, discard pending blocks and close the sink."""
        if self._consumer is None:
            return

        consumer, self._consumer = self._consumer, None
        consumer.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await consumer

        self.clear()
        self._playing = False
        await self._sink.close()
        logger.info("Playback stopped", extra={"blocks_played": self.blocks_played})

    def clear(self) -> int:
        """Discard pending blocks without stopping playback.

        Returns:
            Number of blocks discarded
        """
        discarded = 0
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            discarded += 1
        return discarded

    async def _run(self) -> None:
        while True:
            sender, samples = await self._queue.get()
            self._playing = True
            try:
                await self._sink.play(samples)
                self.blocks_played += 1
            except Exception as e:
                logger.error(
                    f"Audio playback failed: {e}", extra={"sender": sender}, exc_info=True
                )
            finally:
                self._playing = self._queue.qsize() > 0
