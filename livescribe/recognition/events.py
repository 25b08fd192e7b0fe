"""
RecognitionEvent: the typed event stream produced by a RecognitionSession.

Events for one session are strictly time-ordered. Interim events for the same
utterance may repeat and are superseded by the next Interim or by the Final.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional, Union


@dataclass(frozen=True)
class InterimEvent:
    """Provisional text for the utterance in progress."""

    text: str
    speaker_tag: Optional[str] = None


@dataclass(frozen=True)
class FinalEvent:
    """Backend-confirmed text. Times are session-relative milliseconds."""

    text: str
    start_ms: int
    end_ms: int
    speaker_tag: Optional[str] = None


@dataclass(frozen=True)
class ErrorEvent:
    """Backend cancelled the session. Always the last event of its stream."""

    detail: str
    kind: Literal["connection", "recognition"] = "recognition"


@dataclass(frozen=True)
class EndedEvent:
    """Backend session stopped. Always the last event of its stream."""


RecognitionEvent = Union[InterimEvent, FinalEvent, ErrorEvent, EndedEvent]
