"""
RecognitionSession: owns one backend connection and exposes it as a RecognitionEvent stream.

- recognizing → InterimEvent, recognized → FinalEvent, canceled+error → ErrorEvent,
  session stopped → EndedEvent. Error/Ended terminate the stream.
- Final times: backend offsets are authoritative when present; otherwise elapsed
  time since session start is used. All times are shifted by offset_ms so a
  resumed session continues the previous timeline.
- Backend resources are released as soon as the stream terminates.
"""
from __future__ import annotations

import logging
import time
from typing import AsyncIterator, Callable, Optional, Sequence

from livescribe.audio.frames import AudioFrame
from livescribe.errors import LivescribeError, SessionStateError
from livescribe.recognition.base import BackendResult, RecognitionBackend, ResultReason
from livescribe.recognition.events import (
    EndedEvent,
    ErrorEvent,
    FinalEvent,
    InterimEvent,
    RecognitionEvent,
)

logger = logging.getLogger(__name__)


class RecognitionSession:
    """Single-use: one start(), one stop()."""

    def __init__(
        self,
        backend: RecognitionBackend,
        offset_ms: int = 0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._backend = backend
        self._offset_ms = offset_ms
        self._clock = clock
        self._start_time: float | None = None
        self._started = False
        self._active = False
        self._stopping = False
        self._released = False
        self._last_start_ms = offset_ms
        self._last_end_ms = offset_ms
        self._utterance_start_ms: int | None = None

    @property
    def active(self) -> bool:
        return self._active

    @property
    def elapsed_ms(self) -> int:
        """Milliseconds since start() (0 before start)."""
        if self._start_time is None:
            return 0
        return int((self._clock() - self._start_time) * 1000)

    @property
    def timeline_end_ms(self) -> int:
        """Where the next session's timeline should begin."""
        return max(self._offset_ms + self.elapsed_ms, self._last_end_ms)

    async def start(self, language: str, phrase_list: Sequence[str] = ()) -> AsyncIterator[RecognitionEvent]:
        """Handshake with the backend, then return the event stream."""
        if self._started:
            raise SessionStateError("RecognitionSession already started")
        self._started = True
        try:
            await self._backend.open(language, phrase_list)
        except LivescribeError:
            await self._release()
            raise
        self._start_time = self._clock()
        self._active = True
        logger.info("Recognition session started (language=%s, offset_ms=%s)", language, self._offset_ms)
        return self._events()

    async def write(self, frame: AudioFrame) -> None:
        """Forward one frame as it arrives; frames after stop() are dropped."""
        if not self._active or self._stopping:
            return
        await self._backend.write(frame)

    async def stop(self) -> None:
        """Request graceful shutdown. No-op before start() or when already stopping."""
        if not self._started or self._stopping or self._released:
            return
        self._stopping = True
        await self._backend.stop()

    async def close(self) -> None:
        """Release the backend now, whether or not the event stream was ever consumed."""
        self._active = False
        await self._release()

    async def _events(self) -> AsyncIterator[RecognitionEvent]:
        try:
            async for result in self._backend.results():
                event = self._translate(result)
                if event is None:
                    continue
                yield event
                if isinstance(event, (ErrorEvent, EndedEvent)):
                    break
        finally:
            self._active = False
            await self._release()

    async def _release(self) -> None:
        if self._released:
            return
        self._released = True
        await self._backend.close()
        logger.debug("Recognition backend released")

    def _translate(self, result: BackendResult) -> Optional[RecognitionEvent]:
        if result.reason == ResultReason.RECOGNIZING:
            if self._utterance_start_ms is None:
                self._utterance_start_ms = self._offset_ms + self.elapsed_ms
            return InterimEvent(text=result.text, speaker_tag=result.speaker_id)

        if result.reason == ResultReason.RECOGNIZED:
            if not result.text.strip():
                self._utterance_start_ms = None
                return None
            start_ms, end_ms = self._time_range(result)
            self._utterance_start_ms = None
            return FinalEvent(text=result.text, start_ms=start_ms, end_ms=end_ms, speaker_tag=result.speaker_id)

        if result.reason == ResultReason.NO_MATCH:
            logger.debug("Speech could not be recognized")
            return None

        if result.reason == ResultReason.CANCELED:
            if result.error_details:
                logger.warning("Recognition cancelled: %s", result.error_details)
                kind = "connection" if result.connection_error else "recognition"
                return ErrorEvent(detail=result.error_details, kind=kind)
            return EndedEvent()

        return EndedEvent()

    def _time_range(self, result: BackendResult) -> tuple[int, int]:
        if result.offset_ms is not None:
            start = self._offset_ms + result.offset_ms
            if result.duration_ms is not None:
                end = start + result.duration_ms
            else:
                end = self._offset_ms + self.elapsed_ms
        else:
            end = self._offset_ms + self.elapsed_ms
            start = self._utterance_start_ms if self._utterance_start_ms is not None else self._last_end_ms

        # Recognition order must stay start-ordered.
        start = max(start, self._last_start_ms)
        end = max(end, start)
        self._last_start_ms = start
        self._last_end_ms = max(self._last_end_ms, end)
        return start, end
