"""
Wire shape of a transcript: what the storage sink receives and what the WebSocket pushes.

Field names are camelCase on the wire (fullText, speakerId, startMs, ...);
serialize with model_dump(by_alias=True).
"""
from __future__ import annotations

from pydantic import BaseModel, Field


class TranslationOut(BaseModel):
    text: str | None = None
    state: str = Field(..., description="pending | applied | failed")


class SegmentOut(BaseModel):
    """One finalized segment. id is the segment's monotonic id as a string."""

    id: str
    text: str
    speaker_id: str | None = Field(None, alias="speakerId", description="Raw speaker tag (e.g. Guest-1)")
    speaker_label: str | None = Field(None, alias="speakerLabel", description="User-facing label for speakerId")
    start_ms: int = Field(..., alias="startMs")
    end_ms: int = Field(..., alias="endMs")
    correction_state: str = Field("pending", alias="correctionState")
    original_text: str | None = Field(None, alias="originalText", description="Recognized text before correction")
    translations: dict[str, TranslationOut] = Field(default_factory=dict)

    class Config:
        populate_by_name = True


class SpeakerOut(BaseModel):
    id: str = Field(..., description="Raw speaker tag")
    label: str
    color: str = Field(..., description="Palette color name, assigned in order of first sighting")
    segment_count: int = Field(0, alias="segmentCount")

    class Config:
        populate_by_name = True


class TranscriptPayload(BaseModel):
    """Finished (or live) transcript: {segments[], fullText, speakers[]}."""

    session_id: str | None = Field(None, alias="sessionId")
    segments: list[SegmentOut] = Field(default_factory=list)
    full_text: str = Field("", alias="fullText")
    speakers: list[SpeakerOut] = Field(default_factory=list)
    interim_text: str | None = Field(None, alias="interimText", description="Only set on live snapshots")

    class Config:
        populate_by_name = True
