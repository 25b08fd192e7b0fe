"""
Gap-based speaker tags for backends that do not report speakers (e.g. Whisper).

- Assigns raw tags (Guest-1, Guest-2, ...) by alternating on silence gaps.
- No real identity inference; tags are session-local and approximate.
- Accuracy depends on mic quality and turn-taking; overlapping speech is not separated.
"""
from __future__ import annotations

TAG_PREFIX = "Guest-"


def _speaker_tag(index: int) -> str:
    """Stable raw tag for speaker index: Guest-1, Guest-2, ..."""
    return f"{TAG_PREFIX}{index + 1}"


class GapSpeakerTagger:
    """
    Assigns a raw speaker tag to each final segment by gap-based alternation.
    One instance per backend session.
    """

    def __init__(self, gap_sec: float = 0.5, max_speakers: int = 2) -> None:
        self._gap_sec = gap_sec
        self._max_speakers = max(1, max_speakers)
        self._last_index = 0
        self._last_end_time = 0.0

    def assign(self, start_time: float, end_time: float) -> str:
        """
        Return the raw tag for a segment spanning start_time..end_time (session seconds).
        A segment that starts at least gap_sec after the previous one ended switches speaker.
        """
        gap = start_time - self._last_end_time
        if gap >= self._gap_sec and self._last_end_time > 0:
            self._last_index = (self._last_index + 1) % self._max_speakers
        self._last_end_time = max(self._last_end_time, end_time)
        return _speaker_tag(self._last_index)
