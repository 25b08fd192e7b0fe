from __future__ import annotations

import json

from livescribe.speakers import (
    SPEAKER_COLORS,
    GapSpeakerTagger,
    InMemoryLabelStore,
    JsonFileLabelStore,
    LabelStore,
    SpeakerTracker,
)


class BrokenStore(LabelStore):
    def get(self, raw_tag):
        raise OSError("disk gone")

    def set(self, raw_tag, label):
        raise OSError("disk gone")

    def delete(self, raw_tag):
        raise OSError("disk gone")


def test_first_sighting_uses_raw_tag_and_next_color():
    tracker = SpeakerTracker()
    first = tracker.resolve("Guest-1")
    second = tracker.resolve("Guest-2")
    assert (first.label, first.color_name) == ("Guest-1", SPEAKER_COLORS[0])
    assert (second.label, second.color_name) == ("Guest-2", SPEAKER_COLORS[1])
    assert tracker.resolve("Guest-1") is first


def test_colors_wrap_around_palette():
    tracker = SpeakerTracker()
    identities = [tracker.resolve(f"Guest-{i}") for i in range(len(SPEAKER_COLORS) + 1)]
    assert identities[-1].color_name == SPEAKER_COLORS[0]


def test_rename_survives_session_reset():
    store = InMemoryLabelStore()
    tracker = SpeakerTracker(store)
    tracker.resolve("Guest-1")
    tracker.rename("Guest-1", "  Tanaka ")
    assert tracker.label_for("Guest-1") == "Tanaka"
    assert tracker.renamed_labels() == {"Guest-1": "Tanaka"}

    tracker.reset()
    assert tracker.identities() == []
    assert tracker.resolve("Guest-1").label == "Tanaka"


def test_empty_label_reverts_to_raw_tag():
    store = InMemoryLabelStore({"Guest-1": "Tanaka"})
    tracker = SpeakerTracker(store)
    identity = tracker.rename("Guest-1", "")
    assert identity.label == "Guest-1"
    assert store.get("Guest-1") is None
    assert tracker.renamed_labels() == {}


def test_rename_of_unseen_tag_creates_identity():
    tracker = SpeakerTracker()
    tracker.rename("Guest-3", "Sato")
    assert [(i.id, i.label) for i in tracker.identities()] == [("Guest-3", "Sato")]


def test_label_for_unknown_or_missing_speaker():
    tracker = SpeakerTracker(InMemoryLabelStore({"Guest-9": "Kim"}))
    assert tracker.label_for(None) is None
    assert tracker.label_for("Guest-9") == "Kim"
    assert tracker.label_for("Guest-4") == "Guest-4"


def test_store_failures_do_not_break_labels():
    tracker = SpeakerTracker(BrokenStore())
    assert tracker.resolve("Guest-1").label == "Guest-1"
    assert tracker.rename("Guest-1", "Tanaka").label == "Tanaka"
    assert tracker.label_for("Guest-1") == "Tanaka"


def test_json_store_persists_across_instances(tmp_path):
    path = tmp_path / "labels" / "speakers.json"
    store = JsonFileLabelStore(str(path))
    store.set("Guest-1", "田中")
    store.set("Guest-2", "Sato")
    store.delete("Guest-2")

    assert json.loads(path.read_text(encoding="utf-8")) == {"Guest-1": "田中"}
    assert JsonFileLabelStore(str(path)).get("Guest-1") == "田中"


def test_json_store_ignores_corrupt_file(tmp_path):
    path = tmp_path / "speakers.json"
    path.write_text("{not json", encoding="utf-8")
    store = JsonFileLabelStore(str(path))
    assert store.get("Guest-1") is None
    store.set("Guest-1", "Tanaka")
    assert json.loads(path.read_text(encoding="utf-8")) == {"Guest-1": "Tanaka"}


def test_gap_tagger_switches_speaker_on_silence():
    tagger = GapSpeakerTagger(gap_sec=0.5, max_speakers=2)
    assert tagger.assign(0.0, 1.0) == "Guest-1"
    assert tagger.assign(1.1, 2.0) == "Guest-1"
    assert tagger.assign(3.0, 4.0) == "Guest-2"
    assert tagger.assign(5.0, 6.0) == "Guest-1"


def test_gap_tagger_single_speaker_never_switches():
    tagger = GapSpeakerTagger(gap_sec=0.5, max_speakers=1)
    assert {tagger.assign(float(i * 2), float(i * 2 + 1)) for i in range(4)} == {"Guest-1"}
