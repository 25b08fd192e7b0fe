"""
RollingBuffer: time-based audio window for streaming Whisper recognition (no silence gating).

- Keeps the most recent WINDOW seconds of int16 audio.
- Emits the whole window every STEP seconds once the window is full, so interim
  text appears while the speaker is still talking.
- Which parts of the window become final is decided downstream by segment age.
"""
from __future__ import annotations

from typing import Callable

import numpy as np


class RollingBuffer:
    """
    Maintains a rolling window of PCM samples. Emits (chunk, chunk_start_sec)
    every step_sec when the window is full.
    """

    def __init__(
        self,
        on_chunk: Callable[[np.ndarray, float], None],
        sample_rate: int,
        window_sec: float,
        step_sec: float,
        min_chunk_sec: float,
    ) -> None:
        self._on_chunk = on_chunk
        self._sample_rate = sample_rate
        self._window = max(1, int(sample_rate * window_sec))
        self._step = max(1, int(sample_rate * step_sec))
        self._min = max(1, int(sample_rate * min_chunk_sec))

        self._buffer = np.zeros(0, dtype=np.int16)
        self._total = 0  # samples pushed since session start
        self._last_emit = -1

    @property
    def total_seconds(self) -> float:
        return self._total / self._sample_rate

    def push(self, samples: np.ndarray) -> None:
        """Append samples. May trigger on_chunk when the step interval is reached."""
        if not samples.size:
            return
        self._buffer = np.concatenate([self._buffer, samples.astype(np.int16, copy=False)])[-self._window :]
        self._total += samples.size

        if self._buffer.size < self._min:
            return
        if self._buffer.size < self._window:
            return
        if self._last_emit >= 0 and (self._total - self._last_emit) < self._step:
            return

        chunk_start_sec = (self._total - self._buffer.size) / self._sample_rate
        self._last_emit = self._total
        self._on_chunk(self._buffer.copy(), chunk_start_sec)

    def flush(self) -> tuple[np.ndarray, float] | None:
        """On stop: return the remaining window if >= min chunk. Returns (chunk, chunk_start_sec) or None."""
        if self._buffer.size < self._min:
            return None
        chunk_start_sec = (self._total - self._buffer.size) / self._sample_rate
        return (self._buffer.copy(), chunk_start_sec)
