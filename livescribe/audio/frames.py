"""
BlockBuffer: accepts int16 PCM samples of any length and yields fixed-size AudioFrames.

- Frames are mono 16-bit PCM at the recognition sample rate (16kHz).
- Fixed block size (default 4096 samples) bounds latency and per-call overhead.
- Any remainder is kept for the next feed; flush() pads it with silence.
"""
from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class AudioFrame:
    """One block of signed 16-bit mono PCM. Transient: consumed exactly once."""

    samples: np.ndarray  # int16, shape (block_samples,)
    sample_rate: int
    index: int  # sequence number within the capture

    @property
    def duration_ms(self) -> float:
        return 1000.0 * len(self.samples) / self.sample_rate

    def to_bytes(self) -> bytes:
        """Little-endian PCM bytes, as most recognition backends expect."""
        return self.samples.astype("<i2", copy=False).tobytes()


class BlockBuffer:
    """
    Buffers incoming int16 samples into fixed-size AudioFrames.
    Not thread-safe on its own; the adapter guards it with a lock.
    """

    def __init__(self, block_samples: int, sample_rate: int) -> None:
        if block_samples <= 0:
            raise ValueError("block_samples must be positive")
        self._block_samples = block_samples
        self._sample_rate = sample_rate
        self._buffer = np.zeros(0, dtype=np.int16)
        self._next_index = 0

    def feed(self, samples: np.ndarray) -> None:
        """Append int16 samples."""
        if samples.size:
            self._buffer = np.concatenate([self._buffer, samples.astype(np.int16, copy=False)])

    def drain_frames(self) -> list[AudioFrame]:
        """Drain all complete frames. Remainder stays in buffer."""
        out: list[AudioFrame] = []
        while len(self._buffer) >= self._block_samples:
            out.append(self._make_frame(self._buffer[: self._block_samples].copy()))
            self._buffer = self._buffer[self._block_samples :]
        return out

    def flush(self) -> AudioFrame | None:
        """Pad the incomplete tail with silence and return it as one last frame (or None if empty)."""
        if not len(self._buffer):
            return None
        block = np.zeros(self._block_samples, dtype=np.int16)
        block[: len(self._buffer)] = self._buffer
        self._buffer = np.zeros(0, dtype=np.int16)
        return self._make_frame(block)

    def remaining_samples(self) -> int:
        """Samples left in buffer (incomplete frame)."""
        return len(self._buffer)

    def _make_frame(self, samples: np.ndarray) -> AudioFrame:
        frame = AudioFrame(samples=samples, sample_rate=self._sample_rate, index=self._next_index)
        self._next_index += 1
        return frame
