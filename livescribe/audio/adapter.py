"""
AudioStreamAdapter: turns a live float audio source into 16kHz int16 AudioFrames.

- The source delivers float32 samples at its native rate from its own thread
  (audio callback, WebSocket reader, ...).
- Samples are resampled, clipped to int16 and cut into fixed-size blocks.
- Blocks are handed to the event loop with call_soon_threadsafe; frames() is the
  async side of that hand-off.
- close() is the scoped teardown: stops the source, flushes the tail, ends frames().
  Idempotent. The adapter never retries a failed source.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from abc import ABC, abstractmethod
from typing import AsyncIterator, Callable, Optional

import numpy as np

from livescribe.audio.frames import AudioFrame, BlockBuffer
from livescribe.audio.resample import StreamResampler, float32_to_int16
from livescribe.errors import SessionStateError

logger = logging.getLogger(__name__)

SamplesCallback = Callable[[np.ndarray], None]
EndCallback = Callable[[Optional[BaseException]], None]


class AudioSource(ABC):
    """Live audio input. Callbacks may be invoked from any thread."""

    @property
    @abstractmethod
    def sample_rate(self) -> int:
        """Native sample rate of the float samples passed to on_samples."""
        ...

    @abstractmethod
    def start(self, on_samples: SamplesCallback, on_end: EndCallback) -> None:
        """Begin delivering float32 mono samples in [-1, 1]. on_end(exc) fires once when the source ends."""
        ...

    @abstractmethod
    def stop(self) -> None:
        """Stop delivering samples and release the device. Safe to call more than once."""
        ...


class PushAudioSource(AudioSource):
    """
    Source fed by an outside producer (e.g. a WebSocket client streaming its microphone).
    Restartable: each start() binds new callbacks; samples written while stopped are dropped.
    """

    def __init__(self, sample_rate: int) -> None:
        self._sample_rate = sample_rate
        self._lock = threading.Lock()
        self._on_samples: SamplesCallback | None = None
        self._on_end: EndCallback | None = None

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    @property
    def running(self) -> bool:
        return self._on_samples is not None

    def start(self, on_samples: SamplesCallback, on_end: EndCallback) -> None:
        with self._lock:
            if self._on_samples is not None:
                raise SessionStateError("PushAudioSource is already started")
            self._on_samples = on_samples
            self._on_end = on_end

    def stop(self) -> None:
        with self._lock:
            self._on_samples = None
            self._on_end = None

    def write(self, samples: np.ndarray) -> bool:
        """Push float32 samples. Returns False when nothing is listening."""
        with self._lock:
            callback = self._on_samples
        if callback is None:
            return False
        callback(np.asarray(samples, dtype=np.float32))
        return True

    def write_bytes(self, data: bytes) -> bool:
        """Push little-endian float32 bytes (incomplete trailing sample is ignored)."""
        usable = len(data) - (len(data) % 4)
        if usable <= 0:
            return False
        return self.write(np.frombuffer(data[:usable], dtype="<f4"))

    def end(self, exc: BaseException | None = None) -> None:
        """Signal end of stream (or a capture error) to the current listener."""
        with self._lock:
            callback = self._on_end
            self._on_samples = None
            self._on_end = None
        if callback is not None:
            callback(exc)


class AudioStreamAdapter:
    """
    Bridges an AudioSource into the event loop as a stream of fixed-size AudioFrames.
    One adapter per capture; create a new one after close().
    """

    def __init__(self, source: AudioSource, target_rate: int = 16000, block_samples: int = 4096) -> None:
        self._source = source
        self._resampler = StreamResampler(source.sample_rate, target_rate)
        self._blocks = BlockBuffer(block_samples, target_rate)
        self._lock = threading.Lock()
        self._queue: asyncio.Queue[AudioFrame | None] = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._opened = False
        self._closed = False
        self.error: BaseException | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    def open(self) -> None:
        """Start the source. Must be called from the event loop that consumes frames()."""
        if self._opened:
            raise SessionStateError("AudioStreamAdapter is single-use; create a new one")
        self._loop = asyncio.get_running_loop()
        self._opened = True
        self._source.start(self._on_samples, self._on_end)
        logger.debug(
            "Audio adapter opened: %s Hz -> %s Hz", self._resampler.from_rate, self._resampler.to_rate
        )

    def close(self) -> None:
        """Teardown: stop the source, emit the padded tail, end frames(). Idempotent."""
        self._shutdown(stop_source=True)

    def __enter__(self) -> "AudioStreamAdapter":
        self.open()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    async def frames(self) -> AsyncIterator[AudioFrame]:
        """Yield frames in capture order until the adapter is closed."""
        while True:
            frame = await self._queue.get()
            if frame is None:
                return
            yield frame

    def _on_samples(self, samples: np.ndarray) -> None:
        """Audio thread: resample, convert, block, hand off. Holds the lock so frames stay ordered."""
        with self._lock:
            if self._closed:
                return
            pcm = float32_to_int16(self._resampler.process(samples))
            self._blocks.feed(pcm)
            for frame in self._blocks.drain_frames():
                self._post(frame)

    def _on_end(self, exc: BaseException | None) -> None:
        if exc is not None:
            self.error = exc
            logger.warning("Audio source ended with error: %s", exc)
        else:
            logger.info("Audio source ended")
        self._shutdown(stop_source=False)

    def _shutdown(self, stop_source: bool) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            tail = self._blocks.flush()
            if tail is not None:
                self._post(tail)
            self._post(None)
        if stop_source and self._opened:
            self._source.stop()

    def _post(self, item: AudioFrame | None) -> None:
        loop = self._loop
        if loop is None:
            # Never opened: we are on the loop thread already.
            self._queue.put_nowait(item)
            return
        if loop.is_closed():
            logger.debug("Event loop closed; dropping audio frame")
            return
        loop.call_soon_threadsafe(self._queue.put_nowait, item)
