"""
SpeakerTracker: raw speaker tags → user-facing identities.

- An identity is created the first time a raw tag is seen; its label comes from the
  LabelStore if one was saved earlier, else it is the raw tag itself.
- Renames apply immediately to all segments sharing the tag (segments keep the raw tag;
  labels are resolved at render time) and are persisted for later sessions.
- Colors are palette indices handed out in order of first sighting.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Iterable, Protocol

from livescribe.speakers.label_store import InMemoryLabelStore, LabelStore

logger = logging.getLogger(__name__)

SPEAKER_COLORS = ("blue", "green", "purple", "orange", "pink", "cyan", "yellow", "red")


class _HasSpeaker(Protocol):
    speaker_id: str | None


@dataclass(frozen=True)
class SpeakerIdentity:
    id: str  # raw tag from the recognition backend
    label: str
    color: int  # index into SPEAKER_COLORS
    segment_count: int = 0

    @property
    def color_name(self) -> str:
        return SPEAKER_COLORS[self.color % len(SPEAKER_COLORS)]


class SpeakerTracker:
    """One per process; reset() between recording sessions keeps persisted labels."""

    def __init__(self, store: LabelStore | None = None) -> None:
        self._store = store if store is not None else InMemoryLabelStore()
        self._identities: dict[str, SpeakerIdentity] = {}

    def resolve(self, raw_tag: str) -> SpeakerIdentity:
        """Return the identity for raw_tag, creating it on first sighting."""
        identity = self._identities.get(raw_tag)
        if identity is not None:
            return identity
        label = self._stored_label(raw_tag) or raw_tag
        identity = SpeakerIdentity(
            id=raw_tag,
            label=label,
            color=len(self._identities) % len(SPEAKER_COLORS),
        )
        self._identities[raw_tag] = identity
        logger.debug("New speaker %s (label=%s)", raw_tag, label)
        return identity

    def rename(self, raw_tag: str, label: str) -> SpeakerIdentity:
        """
        Set the display label for raw_tag. An empty label reverts to the raw tag.
        The in-memory label changes even if persisting it fails.
        """
        label = (label or "").strip()
        identity = replace(self.resolve(raw_tag), label=label or raw_tag)
        self._identities[raw_tag] = identity
        try:
            if label and label != raw_tag:
                self._store.set(raw_tag, label)
            else:
                self._store.delete(raw_tag)
        except OSError as e:
            logger.warning("Could not persist label for speaker %s: %s", raw_tag, e)
        logger.info("Speaker %s renamed to %s", raw_tag, identity.label)
        return identity

    def label_for(self, raw_tag: str | None) -> str | None:
        if raw_tag is None:
            return None
        identity = self._identities.get(raw_tag)
        if identity is not None:
            return identity.label
        return self._stored_label(raw_tag) or raw_tag

    def identities(self, segments: Iterable[_HasSpeaker] = ()) -> list[SpeakerIdentity]:
        """All identities seen this session, in first-sighting order, with segment_count recomputed."""
        counts: dict[str, int] = {}
        for segment in segments:
            if segment.speaker_id is not None:
                counts[segment.speaker_id] = counts.get(segment.speaker_id, 0) + 1
        return [
            replace(identity, segment_count=counts.get(raw_tag, 0))
            for raw_tag, identity in self._identities.items()
        ]

    def renamed_labels(self) -> dict[str, str]:
        """Only labels the user changed: {raw_tag: label}."""
        return {
            raw_tag: identity.label
            for raw_tag, identity in self._identities.items()
            if identity.label != raw_tag
        }

    def reset(self) -> None:
        """New session: forget identities (and colors); stored labels survive."""
        self._identities.clear()

    def _stored_label(self, raw_tag: str) -> str | None:
        try:
            return self._store.get(raw_tag)
        except OSError as e:
            logger.warning("Could not read stored label for speaker %s: %s", raw_tag, e)
            return None
