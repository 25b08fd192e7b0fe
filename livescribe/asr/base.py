"""
ASREngine: abstract interface for Whisper-compatible ASR used by WhisperBackend.

Implementations: LocalWhisperEngine (faster-whisper), CloudflareWhisperEngine.
All run heavy work off the event loop.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import numpy as np


@dataclass
class SegmentTimestamp:
    """One segment: start/end in seconds relative to the chunk, text."""

    start: float
    end: float
    text: str


@dataclass
class ASRResult:
    """Result of one ASR transcribe call."""

    text: str
    segments: list[SegmentTimestamp] | None = None  # None when the engine has no segment timing


class ASREngine(ABC):
    """
    Abstract ASR engine. Accepts float32 mono audio (normalized [-1, 1]) at sample_rate.
    transcribe() is async and must not block the event loop.
    Failures raise BackendConnectionError (network) or RecognitionError (engine).
    """

    def validate(self) -> None:
        """Raise ConfigurationError when the engine cannot run. Called before a session starts."""

    @abstractmethod
    async def transcribe(
        self,
        audio: "np.ndarray",
        language: str | None = None,
        prompt: str | None = None,
    ) -> ASRResult:
        """
        Transcribe one chunk of audio.
        - language: primary subtag hint (e.g. "ja"), engines may ignore it.
        - prompt: phrase hints biasing vocabulary, engines may ignore it.
        """
        ...

    @property
    @abstractmethod
    def sample_rate(self) -> int:
        """Expected sample rate (e.g. 16000)."""
        ...
