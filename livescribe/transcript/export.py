"""
Transcript export: the structured payload handed to the storage sink, and a plain-text rendering.

Plain text: one line per segment, optional [MM:SS.ss] and [Label] prefixes
(labels are resolved through the SpeakerTracker at export time, so renames apply).
"""
from __future__ import annotations

from typing import Optional

from livescribe.schemas.transcript import SegmentOut, SpeakerOut, TranscriptPayload, TranslationOut
from livescribe.speakers.tracker import SpeakerTracker
from livescribe.transcript.models import Segment, TranscriptState


def _format_timestamp(ms: int) -> str:
    elapsed_sec = ms / 1000.0
    mm = int(elapsed_sec // 60)
    ss = elapsed_sec % 60
    return f"[{mm:02d}:{ss:05.2f}]"


def _format_line(segment: Segment, label: Optional[str], add_timestamps: bool) -> str:
    parts: list[str] = []
    if add_timestamps:
        parts.append(_format_timestamp(segment.start_ms))
    if label:
        parts.append(f"[{label}]")
    parts.append(segment.text.strip())
    return " ".join(parts)


def format_transcript(state: TranscriptState, tracker: SpeakerTracker, add_timestamps: bool = True) -> str:
    """Plain-text transcript, one line per segment in recognition order."""
    return "\n".join(
        _format_line(segment, tracker.label_for(segment.speaker_id), add_timestamps)
        for segment in state.segments
    )


def segment_to_out(segment: Segment, tracker: SpeakerTracker) -> SegmentOut:
    return SegmentOut(
        id=str(segment.id),
        text=segment.text,
        speaker_id=segment.speaker_id,
        speaker_label=tracker.label_for(segment.speaker_id),
        start_ms=segment.start_ms,
        end_ms=segment.end_ms,
        correction_state=segment.correction_state.value,
        original_text=segment.original_text,
        translations={
            language: TranslationOut(text=entry.text, state=entry.state.value)
            for language, entry in segment.translations.items()
        },
    )


def build_payload(
    state: TranscriptState,
    tracker: SpeakerTracker,
    session_id: Optional[str] = None,
    include_interim: bool = False,
) -> TranscriptPayload:
    """Transcript snapshot as {segments[], fullText, speakers[]}."""
    return TranscriptPayload(
        session_id=session_id,
        segments=[segment_to_out(segment, tracker) for segment in state.segments],
        full_text=state.full_text,
        speakers=[
            SpeakerOut(
                id=identity.id,
                label=identity.label,
                color=identity.color_name,
                segment_count=identity.segment_count,
            )
            for identity in tracker.identities(state.segments)
        ],
        interim_text=state.interim_text if include_interim else None,
    )
