"""Speaker tags and identities."""
from .gap_tagger import GapSpeakerTagger
from .label_store import InMemoryLabelStore, JsonFileLabelStore, LabelStore
from .tracker import SPEAKER_COLORS, SpeakerIdentity, SpeakerTracker

__all__ = [
    "GapSpeakerTagger",
    "InMemoryLabelStore",
    "JsonFileLabelStore",
    "LabelStore",
    "SPEAKER_COLORS",
    "SpeakerIdentity",
    "SpeakerTracker",
]
