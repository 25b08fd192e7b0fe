"""
Immutable transcript state.

Every mutation produces a new TranscriptState; a snapshot handed to a listener
never changes afterwards.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional


class EnrichmentState(str, Enum):
    PENDING = "pending"
    APPLIED = "applied"
    FAILED = "failed"


@dataclass(frozen=True)
class TranslationEntry:
    text: Optional[str]  # last successful translation; kept while a new one is pending or failed
    state: EnrichmentState


def _empty_translations() -> Mapping[str, TranslationEntry]:
    return MappingProxyType({})


@dataclass(frozen=True)
class Segment:
    """
    One finalized utterance. Only SegmentReconciler creates segments.
    Correction may replace text (original_text keeps what was recognized);
    nothing ever changes id, speaker or time range.
    """

    id: int
    text: str
    speaker_id: Optional[str]  # raw tag; resolve to a label via SpeakerTracker
    start_ms: int
    end_ms: int
    correction_state: EnrichmentState = EnrichmentState.PENDING
    original_text: Optional[str] = None
    translations: Mapping[str, TranslationEntry] = field(default_factory=_empty_translations)

    @property
    def is_corrected(self) -> bool:
        return self.original_text is not None and self.original_text != self.text


@dataclass(frozen=True)
class TranscriptState:
    segments: tuple[Segment, ...] = ()
    interim_text: str = ""
    interim_speaker: Optional[str] = None
    version: int = 0

    @property
    def full_text(self) -> str:
        """Segment texts in recognition order, one per line."""
        return "\n".join(s.text for s in self.segments)

    def get(self, segment_id: int) -> Optional[Segment]:
        for segment in self.segments:
            if segment.id == segment_id:
                return segment
        return None
