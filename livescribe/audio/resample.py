"""Sample-format helpers: float32 [-1, 1] <-> int16 PCM, and streaming rate conversion."""
from __future__ import annotations

import numpy as np


def float32_to_int16(samples: np.ndarray) -> np.ndarray:
    """Convert float32 [-1, 1] to int16. Out-of-range input is clipped, never wrapped."""
    clipped = np.clip(np.asarray(samples, dtype=np.float32), -1.0, 1.0)
    scaled = np.where(clipped < 0, clipped * 32768.0, clipped * 32767.0)
    return scaled.astype(np.int16)


def int16_to_float32(samples: np.ndarray) -> np.ndarray:
    """Convert int16 PCM to float32 [-1.0, 1.0]."""
    return np.asarray(samples, dtype=np.int16).astype(np.float32) / 32768.0


class StreamResampler:
    """
    Linear-interpolation resampler for audio that arrives in arbitrary blocks.

    Keeps the read position and the last input sample between calls so that
    consecutive blocks join without a discontinuity.
    """

    def __init__(self, from_rate: int, to_rate: int) -> None:
        if from_rate <= 0 or to_rate <= 0:
            raise ValueError("sample rates must be positive")
        self.from_rate = from_rate
        self.to_rate = to_rate
        self._step = from_rate / to_rate
        self._pos = 0.0  # position of the next output sample, in input samples relative to _tail[0]
        self._tail = np.zeros(0, dtype=np.float32)

    def process(self, samples: np.ndarray) -> np.ndarray:
        samples = np.asarray(samples, dtype=np.float32)
        if self.from_rate == self.to_rate:
            return samples
        data = np.concatenate([self._tail, samples]) if self._tail.size else samples
        if data.size < 2:
            self._tail = data
            return np.zeros(0, dtype=np.float32)

        positions = np.arange(self._pos, data.size - 1, self._step)
        out = np.interp(positions, np.arange(data.size), data).astype(np.float32)

        next_pos = self._pos + positions.size * self._step
        keep_from = min(int(np.floor(next_pos)), data.size - 1)
        self._tail = data[keep_from:]
        self._pos = next_pos - keep_from
        return out

    def reset(self) -> None:
        self._pos = 0.0
        self._tail = np.zeros(0, dtype=np.float32)
