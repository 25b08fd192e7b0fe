"""
RecognitionBackend: the boundary to a streaming speech-recognition service.

Backends report results with native reason codes; RecognitionSession turns them
into RecognitionEvents. Implementations: WhisperBackend (rolling-window Whisper).
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Optional, Sequence

from livescribe.audio.frames import AudioFrame


class ResultReason(str, Enum):
    RECOGNIZING = "recognizing"
    RECOGNIZED = "recognized"
    NO_MATCH = "no_match"
    CANCELED = "canceled"
    SESSION_STOPPED = "session_stopped"


@dataclass(frozen=True)
class BackendResult:
    """One backend-native result. offset/duration are optional: not every backend reports them."""

    reason: ResultReason
    text: str = ""
    speaker_id: Optional[str] = None
    offset_ms: Optional[int] = None  # relative to this backend session's start
    duration_ms: Optional[int] = None
    error_details: str = ""
    connection_error: bool = False  # CANCELED because the backend was unreachable or rejected us


class RecognitionBackend(ABC):
    """
    One backend recognition session. Lifecycle: open → write* → stop → (results drained) → close.
    results() ends after it yields SESSION_STOPPED or CANCELED.
    """

    @abstractmethod
    async def open(self, language: str, phrase_list: Sequence[str] = ()) -> None:
        """Handshake. Raises ConfigurationError or BackendConnectionError; no results before it resolves."""
        ...

    @abstractmethod
    async def write(self, frame: AudioFrame) -> None:
        """Forward one audio frame."""
        ...

    @abstractmethod
    def results(self) -> AsyncIterator[BackendResult]:
        """Results in emission order."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Graceful stop: results already in flight still surface, then SESSION_STOPPED."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release all backend resources. Safe to call more than once."""
        ...
