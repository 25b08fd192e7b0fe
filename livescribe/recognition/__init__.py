"""Recognition: backend boundary, typed event stream, Whisper-based streaming backend."""
from .base import BackendResult, RecognitionBackend, ResultReason
from .events import EndedEvent, ErrorEvent, FinalEvent, InterimEvent, RecognitionEvent
from .session import RecognitionSession
from .whisper import WhisperBackend

__all__ = [
    "BackendResult",
    "RecognitionBackend",
    "ResultReason",
    "EndedEvent",
    "ErrorEvent",
    "FinalEvent",
    "InterimEvent",
    "RecognitionEvent",
    "RecognitionSession",
    "WhisperBackend",
]
