"""Pydantic schemas for the wire formats."""
from livescribe.schemas.correction import (
    CorrectionItem,
    CorrectionRequest,
    CorrectionResponse,
    CorrectionSegment,
)
from livescribe.schemas.session import ErrorMessage, SessionCommand
from livescribe.schemas.transcript import SegmentOut, SpeakerOut, TranscriptPayload, TranslationOut

__all__ = [
    "CorrectionItem",
    "CorrectionRequest",
    "CorrectionResponse",
    "CorrectionSegment",
    "ErrorMessage",
    "SessionCommand",
    "SegmentOut",
    "SpeakerOut",
    "TranscriptPayload",
    "TranslationOut",
]
