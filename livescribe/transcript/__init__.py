"""Transcript state: segments, reconciliation of recognition events, export."""
from livescribe.transcript.export import build_payload, format_transcript
from livescribe.transcript.models import EnrichmentState, Segment, TranscriptState, TranslationEntry
from livescribe.transcript.reconciler import SegmentReconciler

__all__ = [
    "EnrichmentState",
    "Segment",
    "SegmentReconciler",
    "TranscriptState",
    "TranslationEntry",
    "build_payload",
    "format_transcript",
]
