"""
SegmentReconciler: RecognitionEvents in, immutable TranscriptState snapshots out.

- Interim replaces the interim slot (never appended).
- Final clears the interim slot and appends one Segment with the next id.
  This is the only place Segments are created; ids are never reused, not even after reset().
- Error / Ended clear the interim slot; segments are untouched.
- Enrichment patches are annotate-only: they address a segment by id and may change
  text or translation fields, never order, count, speaker or timing. Unknown ids are dropped.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from types import MappingProxyType
from typing import Callable, Optional

from livescribe.errors import SessionStateError
from livescribe.recognition.events import (
    EndedEvent,
    ErrorEvent,
    FinalEvent,
    InterimEvent,
    RecognitionEvent,
)
from livescribe.speakers.tracker import SpeakerTracker
from livescribe.transcript.models import EnrichmentState, Segment, TranscriptState, TranslationEntry

logger = logging.getLogger(__name__)

TranscriptListener = Callable[[TranscriptState], None]


class SegmentReconciler:
    def __init__(self, tracker: SpeakerTracker | None = None) -> None:
        self._tracker = tracker
        self._state = TranscriptState()
        self._next_id = 1
        self._positions: dict[int, int] = {}  # segment id -> index in state.segments
        self._listeners: list[TranscriptListener] = []
        self._applying = False

    @property
    def state(self) -> TranscriptState:
        return self._state

    def apply(self, event: RecognitionEvent) -> TranscriptState:
        """Fold one event into the transcript. Events must be applied one at a time, in arrival order."""
        if self._applying:
            raise SessionStateError("SegmentReconciler.apply is not re-entrant")
        self._applying = True
        try:
            state = self._state
            if isinstance(event, InterimEvent):
                if event.speaker_tag and self._tracker is not None:
                    self._tracker.resolve(event.speaker_tag)
                new_state = replace(state, interim_text=event.text, interim_speaker=event.speaker_tag)
            elif isinstance(event, FinalEvent):
                new_state = self._append_final(state, event)
            elif isinstance(event, (ErrorEvent, EndedEvent)):
                new_state = replace(state, interim_text="", interim_speaker=None)
            else:
                raise TypeError(f"Unknown recognition event: {event!r}")
            return self._publish(new_state)
        finally:
            self._applying = False

    def patch_text(self, segment_id: int, text: str) -> bool:
        """Correction landed: replace text, keep the recognized text in original_text."""
        segment = self._lookup(segment_id)
        if segment is None:
            return False
        original = segment.original_text if segment.original_text is not None else segment.text
        self._replace_segment(
            replace(segment, text=text, original_text=original, correction_state=EnrichmentState.APPLIED)
        )
        return True

    def mark_correction(self, segment_id: int, state: EnrichmentState) -> bool:
        segment = self._lookup(segment_id)
        if segment is None:
            return False
        if segment.correction_state != state:
            self._replace_segment(replace(segment, correction_state=state))
        return True

    def patch_translation(
        self,
        segment_id: int,
        language: str,
        text: Optional[str] = None,
        state: EnrichmentState = EnrichmentState.APPLIED,
    ) -> bool:
        """Set translations[language]. text=None keeps the previous translation text."""
        segment = self._lookup(segment_id)
        if segment is None:
            return False
        prior = segment.translations.get(language)
        if text is None and prior is not None:
            text = prior.text
        translations = dict(segment.translations)
        translations[language] = TranslationEntry(text=text, state=state)
        self._replace_segment(replace(segment, translations=MappingProxyType(translations)))
        return True

    def subscribe(self, listener: TranscriptListener) -> Callable[[], None]:
        """Listener gets every new snapshot. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def reset(self) -> None:
        """New session: drop segments and interim. The id counter keeps counting."""
        self._positions.clear()
        self._publish(TranscriptState(version=self._state.version))

    def _append_final(self, state: TranscriptState, event: FinalEvent) -> TranscriptState:
        if event.speaker_tag and self._tracker is not None:
            self._tracker.resolve(event.speaker_tag)
        segment = Segment(
            id=self._next_id,
            text=event.text,
            speaker_id=event.speaker_tag,
            start_ms=event.start_ms,
            end_ms=event.end_ms,
        )
        self._next_id += 1
        self._positions[segment.id] = len(state.segments)
        return replace(
            state,
            segments=state.segments + (segment,),
            interim_text="",
            interim_speaker=None,
        )

    def _lookup(self, segment_id: int) -> Optional[Segment]:
        position = self._positions.get(segment_id)
        if position is None:
            logger.debug("Patch for unknown segment %s dropped", segment_id)
            return None
        return self._state.segments[position]

    def _replace_segment(self, segment: Segment) -> None:
        position = self._positions[segment.id]
        segments = list(self._state.segments)
        segments[position] = segment
        self._publish(replace(self._state, segments=tuple(segments)))

    def _publish(self, state: TranscriptState) -> TranscriptState:
        state = replace(state, version=self._state.version + 1)
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("Transcript listener failed")
        return state
