"""
WhisperBackend: a streaming RecognitionBackend on top of a chunk-based Whisper engine.

Rolling windows: audio chunks overlap (e.g. 5s window, 1s step). Whisper returns segments
with start/end relative to each chunk. Only timestamps determine uniqueness: a segment is
never committed twice (segment end in session time <= committed_until → skip).
Segment stability: a segment becomes RECOGNIZED only once it is behind the commit horizon
(current_audio_time - STT_COMMIT_AGE_SECONDS). Younger segments are reported as one
RECOGNIZING result until a later chunk pushes the horizon forward.
On stop() the remaining window is flushed and everything left is committed.
"""
from __future__ import annotations

import asyncio
import logging
import re
from typing import AsyncIterator, Sequence

import numpy as np

from livescribe.asr.base import ASREngine, ASRResult
from livescribe.audio.frames import AudioFrame
from livescribe.audio.resample import int16_to_float32
from livescribe.audio.rolling_buffer import RollingBuffer
from livescribe.config import Settings, get_settings
from livescribe.errors import BackendConnectionError, LivescribeError
from livescribe.recognition.base import BackendResult, RecognitionBackend, ResultReason
from livescribe.speakers.gap_tagger import GapSpeakerTagger

logger = logging.getLogger(__name__)

# Min overlap length (chars) so we don't match tiny fragments like " the " across segments
_MIN_OVERLAP_CHARS = 12
# Same, for scripts written without spaces (Japanese, Chinese)
_MIN_OVERLAP_CHARS_UNSPACED = 4
# Absorb timestamp jitter so overlapping windows don't commit the same segment twice
_COMMIT_SKIP_EPSILON = 0.05


def _normalize_commit_text(text: str) -> str:
    """Before commit: strip repeated whitespace, remove trailing punctuation duplication."""
    if not text:
        return ""
    text = text.strip()
    text = re.sub(r"\s+", " ", text)
    text = re.sub(r"([.!?,;:])\1+", r"\1", text)
    return text.strip()


def _normalize_for_overlap(s: str) -> str:
    """Lowercase, collapse spaces, normalize punctuation so '. then' and ', then' match."""
    s = re.sub(r"\s+", " ", s.strip()).lower()
    s = re.sub(r"[.,;:!?]", " ", s)
    s = re.sub(r"\s+", " ", s).strip()
    return s


def text_to_append(committed: list[str], new_segment: str) -> str | None:
    """
    Dedupe overlapping windows against everything committed so far.
    Returns the new suffix to commit (or the whole text when there is no overlap),
    or None when the segment is a duplicate.
    Text without spaces falls back to character-level overlap.
    """
    new = _normalize_commit_text(new_segment)
    if not new:
        return None
    acc_norm = _normalize_for_overlap(" ".join(committed))
    new_norm = _normalize_for_overlap(new)
    if not acc_norm:
        return new
    if new_norm == acc_norm or new_norm in acc_norm:
        return None
    if new_norm.startswith(acc_norm):
        suffix_norm = new_norm[len(acc_norm) :].strip()
        return _normalize_commit_text(suffix_norm) or None
    # Longest suffix of committed text that equals a prefix of new (min length)
    overlap_len = 0
    for length in range(min(len(acc_norm), len(new_norm)), _MIN_OVERLAP_CHARS - 1, -1):
        if acc_norm[-length:] == new_norm[:length]:
            overlap_len = length
            break
    if overlap_len >= _MIN_OVERLAP_CHARS:
        overlap_str = new_norm[:overlap_len]
        if not new_norm[overlap_len:].strip():
            return None
        # Preserve casing: find where overlap ends in original new and take rest
        match = re.search(re.escape(overlap_str), new, re.IGNORECASE)
        if match:
            return _normalize_commit_text(new[match.end() :]) or None
        return _normalize_commit_text(new_norm[overlap_len:]) or None
    # Fallback: longest word-aligned prefix of new that appears anywhere in committed text
    # (Whisper sometimes starts a segment mid-sentence)
    for length in range(min(len(new_norm), len(acc_norm)), _MIN_OVERLAP_CHARS - 1, -1):
        if length < len(new_norm) and new_norm[length] != " ":
            continue
        if new_norm[:length] in acc_norm:
            overlap_words = len(new_norm[:length].split())
            new_words = new.split()
            if overlap_words >= len(new_words):
                return None
            return _normalize_commit_text(" ".join(new_words[overlap_words:])) or None
    if " " not in new_norm:
        return _append_unspaced(committed, new)
    return new


def _append_unspaced(committed: list[str], new: str) -> str | None:
    """Character-level fallback for text written without spaces (Japanese, Chinese)."""
    acc = "".join(_normalize_commit_text(c) for c in committed)
    for length in range(min(len(acc), len(new)), _MIN_OVERLAP_CHARS_UNSPACED - 1, -1):
        head = new[:length]
        if acc.endswith(head) or head in acc:
            rest = new[length:].lstrip("、。，,. ")
            return _normalize_commit_text(rest) or None
    return new


class WhisperBackend(RecognitionBackend):
    """
    One backend session over an ASREngine. A consumer task transcribes chunks in order;
    results are queued for results() in emission order.
    """

    def __init__(self, engine: ASREngine, settings: Settings | None = None) -> None:
        self._engine = engine
        self._settings = settings or get_settings()
        self._chunks: asyncio.Queue[tuple[np.ndarray, float, bool] | None] = asyncio.Queue()
        self._results: asyncio.Queue[BackendResult] = asyncio.Queue()
        self._rolling: RollingBuffer | None = None
        self._consumer: asyncio.Task | None = None
        self._tagger: GapSpeakerTagger | None = None
        if self._settings.DIARIZATION_ENABLED:
            self._tagger = GapSpeakerTagger(
                gap_sec=self._settings.DIARIZATION_SPEAKER_GAP_SEC,
                max_speakers=self._settings.DIARIZATION_MAX_SPEAKERS,
            )
        self._language: str | None = None
        self._prompt: str | None = None
        self._committed_until: float = 0.0  # session seconds; segments ending before this are skipped
        self._committed_text: list[str] = []
        self._stopping = False
        self._closed = False

    async def open(self, language: str, phrase_list: Sequence[str] = ()) -> None:
        self._engine.validate()
        settings = self._settings
        self._language = language.split("-")[0] if language else None
        self._prompt = ", ".join(phrase_list) or None
        self._rolling = RollingBuffer(
            on_chunk=self._on_chunk,
            sample_rate=self._engine.sample_rate,
            window_sec=settings.STT_WINDOW_SECONDS,
            step_sec=settings.STT_STEP_SECONDS,
            min_chunk_sec=settings.STT_MIN_CHUNK_SECONDS,
        )
        self._consumer = asyncio.create_task(self._consume())

    async def write(self, frame: AudioFrame) -> None:
        if self._rolling is None or self._stopping:
            return
        self._rolling.push(frame.samples)

    async def results(self) -> AsyncIterator[BackendResult]:
        while True:
            result = await self._results.get()
            yield result
            if result.reason in (ResultReason.CANCELED, ResultReason.SESSION_STOPPED):
                return

    async def stop(self) -> None:
        """Flush the remaining window; the consumer commits it and then reports SESSION_STOPPED."""
        if self._stopping:
            return
        self._stopping = True
        if self._consumer is None:
            self._results.put_nowait(BackendResult(ResultReason.SESSION_STOPPED))
            return
        if self._rolling is not None:
            flushed = self._rolling.flush()
            if flushed is not None:
                chunk, chunk_start = flushed
                self._chunks.put_nowait((chunk, chunk_start, True))
        self._chunks.put_nowait(None)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._consumer is not None and not self._consumer.done():
            self._consumer.cancel()
            try:
                await self._consumer
            except asyncio.CancelledError:
                pass

    def _on_chunk(self, chunk: np.ndarray, chunk_start_sec: float) -> None:
        """Called by RollingBuffer on time-based trigger."""
        self._chunks.put_nowait((chunk, chunk_start_sec, False))

    async def _consume(self) -> None:
        """Transcribe chunks in order; one failure cancels the session."""
        sample_rate = self._engine.sample_rate
        while True:
            item = await self._chunks.get()
            if item is None:
                self._results.put_nowait(BackendResult(ResultReason.SESSION_STOPPED))
                return
            chunk, chunk_start_sec, is_flush = item
            try:
                result = await self._engine.transcribe(
                    int16_to_float32(chunk), language=self._language, prompt=self._prompt
                )
            except BackendConnectionError as e:
                self._results.put_nowait(
                    BackendResult(ResultReason.CANCELED, error_details=str(e), connection_error=True)
                )
                return
            except LivescribeError as e:
                self._results.put_nowait(BackendResult(ResultReason.CANCELED, error_details=str(e)))
                return
            except Exception as e:
                logger.exception("Whisper engine failed on chunk at %.2fs", chunk_start_sec)
                self._results.put_nowait(
                    BackendResult(ResultReason.CANCELED, error_details=f"{type(e).__name__}: {e}")
                )
                return
            chunk_dur = len(chunk) / sample_rate
            for backend_result in self._commit(result, chunk_start_sec, chunk_dur, is_flush):
                self._results.put_nowait(backend_result)

    def _commit(
        self, result: ASRResult, chunk_start_sec: float, chunk_dur: float, is_flush: bool
    ) -> list[BackendResult]:
        current_audio_time = chunk_start_sec + chunk_dur
        commit_horizon = current_audio_time - self._settings.STT_COMMIT_AGE_SECONDS
        out: list[BackendResult] = []

        if result.segments is None:
            # No segment timing (e.g. Cloudflare): one chunk = one final, deduped by text only
            text = text_to_append(self._committed_text, result.text)
            if text:
                self._committed_text.append(text)
                out.append(self._recognized(text, chunk_start_sec, current_audio_time))
            return out

        partial_parts: list[str] = []
        for seg in result.segments:
            seg_start = chunk_start_sec + seg.start
            seg_end = chunk_start_sec + seg.end
            if seg_end <= self._committed_until + _COMMIT_SKIP_EPSILON:
                continue
            # Commit if behind the horizon, straddling it, or this is the final flush
            if seg_end <= commit_horizon or seg_start < commit_horizon or is_flush:
                raw = _normalize_commit_text(seg.text)
                if not raw:
                    continue
                text = text_to_append(self._committed_text, raw)
                self._committed_until = max(self._committed_until, seg_end)
                if text is None:
                    continue
                self._committed_text.append(text)
                out.append(self._recognized(text, seg_start, seg_end))
            else:
                t = (seg.text or "").strip()
                if t:
                    partial_parts.append(t)

        partial_text = " ".join(partial_parts).strip()
        if partial_text:
            out.append(BackendResult(ResultReason.RECOGNIZING, text=partial_text))
        return out

    def _recognized(self, text: str, start_sec: float, end_sec: float) -> BackendResult:
        speaker = self._tagger.assign(start_sec, end_sec) if self._tagger else None
        return BackendResult(
            ResultReason.RECOGNIZED,
            text=text,
            speaker_id=speaker,
            offset_ms=int(round(start_sec * 1000)),
            duration_ms=int(round((end_sec - start_sec) * 1000)),
        )
