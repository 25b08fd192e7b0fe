"""
LocalWhisperEngine: Whisper-compatible ASR using faster-whisper.

- Model loaded ONCE at startup (singleton, injected at construction).
- Language hint and phrase list are passed through (phrases as initial_prompt).
- Runs in executor so event loop stays responsive.
"""
from __future__ import annotations

import asyncio
from typing import Any

import numpy as np

from livescribe.asr.base import ASREngine, ASRResult, SegmentTimestamp
from livescribe.config import Settings, get_settings
from livescribe.errors import ConfigurationError, RecognitionError

# Type for shared WhisperModel (loaded at startup)
WhisperModelT = Any


def load_whisper_model(settings: Settings | None = None) -> WhisperModelT:
    """Load faster-whisper model once. Called at startup when RECOGNITION_BACKEND=local."""
    try:
        from faster_whisper import WhisperModel
    except ImportError as err:
        raise ImportError(
            "faster-whisper is required for RECOGNITION_BACKEND=local. "
            "Install with: pip install 'livescribe[local]'"
        ) from err
    settings = settings or get_settings()
    return WhisperModel(
        settings.LOCAL_WHISPER_MODEL,
        device=settings.LOCAL_WHISPER_DEVICE,
        compute_type=settings.LOCAL_WHISPER_COMPUTE_TYPE,
    )


class LocalWhisperEngine(ASREngine):
    """Local Whisper via faster-whisper. Uses shared model (singleton)."""

    def __init__(self, model: WhisperModelT | None = None, settings: Settings | None = None) -> None:
        self._model = model
        self._settings = settings or get_settings()

    def validate(self) -> None:
        if self._model is None:
            raise ConfigurationError("Local whisper model is not loaded (RECOGNITION_BACKEND=local)")

    def _transcribe_sync(self, audio: np.ndarray, language: str | None, prompt: str | None) -> ASRResult:
        segments, _ = self._model.transcribe(
            audio,
            language=language or None,
            initial_prompt=prompt or None,
            beam_size=self._settings.LOCAL_WHISPER_BEAM_SIZE,
            vad_filter=True,
            vad_parameters=dict(min_silence_duration_ms=300, speech_pad_ms=100),
            condition_on_previous_text=False,
        )

        parts: list[str] = []
        seg_ts: list[SegmentTimestamp] = []
        for seg in segments:
            t = (seg.text or "").strip()
            if t:
                parts.append(t)
                seg_ts.append(SegmentTimestamp(start=seg.start, end=seg.end, text=t))

        return ASRResult(text=" ".join(parts).strip(), segments=seg_ts)

    async def transcribe(
        self,
        audio: np.ndarray,
        language: str | None = None,
        prompt: str | None = None,
    ) -> ASRResult:
        """Run _transcribe_sync in executor so event loop is not blocked."""
        self.validate()
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self._transcribe_sync, audio, language, prompt)
        except (RuntimeError, ValueError) as e:
            raise RecognitionError(f"Local whisper failed: {e}") from e

    @property
    def sample_rate(self) -> int:
        return self._settings.SAMPLE_RATE
