from __future__ import annotations

import asyncio
import contextlib
import logging
import queue
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Protocol

import janus
import numpy as np

from audio_scribe.core.audio.format import (
    blocksize_frames,
    float32_to_pcm16le_bytes,
    mixdown_to_mono_f32,
)

logger = logging.getLogger(__name__)


class AudioCapture(Protocol):
    async def start(self) -> None: ...
    async def stop(self) -> None: ...
    def chunks(self) -> AsyncIterator[bytes]: ...


@dataclass(slots=True)
class NullAudioCapture:
    """Captures nothing. ``chunks()`` stays pending until ``stop()``."""

    _stopped: asyncio.Event | None = field(init=False, default=None, repr=False)

    async def start(self) -> None:
        self._stopped = asyncio.Event()
        logger.info("Starting audio capture (no input device)")

    async def stop(self) -> None:
        if self._stopped is not None:
            self._stopped.set()
        logger.info("Stopping audio capture")

    async def chunks(self) -> AsyncIterator[bytes]:
        if self._stopped is not None:
            await self._stopped.wait()
        for chunk in ():
            yield chunk


@dataclass(slots=True)
class SoundDeviceAudioCapture:
    """Microphone capture via sounddevice/PortAudio, yielding mono PCM16LE buffers.

    The PortAudio callback thread hands blocks to asyncio through a janus queue.
    A capture instance can be started again after it was stopped.
    """

    sample_rate_hz: int = 16000
    channels: int = 1
    device: int | str | None = None
    blocksize_ms: int = 100
    max_queue_blocks: int = 64

    _queue: janus.Queue[np.ndarray | None] | None = field(init=False, default=None, repr=False)
    _stream: Any = field(init=False, default=None, repr=False)
    _closed: bool = field(init=False, default=True)

    def __post_init__(self) -> None:
        if self.sample_rate_hz <= 0:
            raise ValueError("sample_rate_hz must be > 0")
        if self.channels <= 0:
            raise ValueError("channels must be > 0")
        if self.max_queue_blocks <= 0:
            raise ValueError("max_queue_blocks must be > 0")
        blocksize_frames(sample_rate_hz=self.sample_rate_hz, blocksize_ms=self.blocksize_ms)

    async def start(self) -> None:
        if not self._closed:
            return

        import sounddevice as sd  # type: ignore

        if self._queue is not None:
            self._queue.close()
        q: janus.Queue[np.ndarray | None] = janus.Queue(maxsize=self.max_queue_blocks)

        def _callback(indata, _frames, _time, status):  # called from PortAudio thread
            if self._closed:
                return
            if status:
                logger.warning("sounddevice input status: %s", status)
            try:
                q.sync_q.put_nowait(np.asarray(indata, dtype=np.float32).copy())
            except queue.Full:
                # Drop when the consumer falls behind; never block the audio thread.
                return

        stream = sd.InputStream(
            samplerate=self.sample_rate_hz,
            channels=self.channels,
            dtype="float32",
            callback=_callback,
            device=self.device,
            blocksize=blocksize_frames(
                sample_rate_hz=self.sample_rate_hz, blocksize_ms=self.blocksize_ms
            ),
        )
        self._queue = q
        self._closed = False
        try:
            stream.start()
        except Exception:
            self._closed = True
            with contextlib.suppress(Exception):
                stream.close()
            raise
        self._stream = stream
        logger.info(
            "Starting audio capture (device=%s, %d Hz, %d ch)",
            self.device if self.device is not None else "default",
            self.sample_rate_hz,
            self.channels,
        )

    async def stop(self) -> None:
        if self._closed:
            return
        self._closed = True

        stream, self._stream = self._stream, None
        if stream is not None:
            with contextlib.suppress(Exception):
                stream.stop()
            with contextlib.suppress(Exception):
                stream.close()

        if self._queue is not None:
            with contextlib.suppress(RuntimeError):
                _put_end_marker(self._queue)
        logger.info("Stopping audio capture")

    async def chunks(self) -> AsyncIterator[bytes]:
        q = self._queue
        if q is None:
            return
        while True:
            item = await q.async_q.get()
            if item is None:
                break
            yield float32_to_pcm16le_bytes(mixdown_to_mono_f32(item))
        q.close()
        await q.wait_closed()
        if self._queue is q:
            self._queue = None


def _put_end_marker(q: janus.Queue[np.ndarray | None]) -> None:
    # A full queue gives up its oldest block so chunks() always sees the marker.
    while True:
        try:
            q.sync_q.put_nowait(None)
            return
        except queue.Full:
            with contextlib.suppress(queue.Empty):
                q.sync_q.get_nowait()
