"""ASR: swappable Whisper-compatible engines behind WhisperBackend."""
from .base import ASREngine, ASRResult, SegmentTimestamp
from .cloudflare import CloudflareWhisperEngine
from .local_whisper import LocalWhisperEngine, load_whisper_model

__all__ = [
    "ASREngine",
    "ASRResult",
    "SegmentTimestamp",
    "CloudflareWhisperEngine",
    "LocalWhisperEngine",
    "load_whisper_model",
]
