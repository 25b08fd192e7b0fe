"""
LiveSession: the recording lifecycle around one audio source.

States: IDLE → STARTING → ACTIVE ⇄ PAUSED → STOPPING → IDLE; any fatal error → IDLE.

- One operation at a time (asyncio.Lock): a stop() issued while STARTING waits for
  the start to settle and is applied afterwards.
- At most one audio pipeline (adapter + recognition session) is open at a time.
  Pause closes it gracefully (pending finals still land); resume opens a fresh one
  whose timeline continues where the previous one ended.
- Fatal errors (recognition error, audio source error, failed handshake) tear the pipeline
  down, cancel enrichment, keep the transcript and record `error`.
- An unexpected end of recognition or of the audio source while ACTIVE pauses the session.
"""
from __future__ import annotations

import asyncio
import logging
import time
import uuid
from enum import Enum
from typing import AsyncIterator, Callable, Optional, Sequence

from livescribe.audio.adapter import AudioSource, AudioStreamAdapter
from livescribe.config import Settings, get_settings
from livescribe.enrichment.correction import CorrectionBackend
from livescribe.enrichment.fanout import EnrichmentFanOut, Outcome
from livescribe.enrichment.translation import TranslationBackend
from livescribe.errors import (
    AudioSourceError,
    BackendConnectionError,
    LivescribeError,
    RecognitionError,
    SessionStateError,
)
from livescribe.recognition.base import RecognitionBackend
from livescribe.recognition.events import EndedEvent, ErrorEvent, FinalEvent, RecognitionEvent
from livescribe.recognition.session import RecognitionSession
from livescribe.schemas.transcript import TranscriptPayload
from livescribe.speakers.tracker import SpeakerIdentity, SpeakerTracker
from livescribe.storage import NoOpStorageSink, StorageSink
from livescribe.transcript.export import build_payload, format_transcript
from livescribe.transcript.models import TranscriptState
from livescribe.transcript.reconciler import SegmentReconciler, TranscriptListener

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    ACTIVE = "active"
    PAUSED = "paused"
    STOPPING = "stopping"


StateListener = Callable[[SessionState], None]
BackendFactory = Callable[[], RecognitionBackend]


class _Pipeline:
    """One open adapter + recognition session and the two tasks driving them."""

    def __init__(self, generation: int, adapter: AudioStreamAdapter, recognition: RecognitionSession) -> None:
        self.generation = generation
        self.adapter = adapter
        self.recognition = recognition
        self.pump_task: asyncio.Task | None = None
        self.consume_task: asyncio.Task | None = None
        self.closing = False


class LiveSession:
    def __init__(
        self,
        source: AudioSource,
        backend_factory: BackendFactory,
        settings: Settings | None = None,
        tracker: SpeakerTracker | None = None,
        correction: CorrectionBackend | None = None,
        translation: TranslationBackend | None = None,
        storage: StorageSink | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._source = source
        self._backend_factory = backend_factory
        self._settings = settings or get_settings()
        self._tracker = tracker if tracker is not None else SpeakerTracker()
        self._reconciler = SegmentReconciler(self._tracker)
        self._fanout = EnrichmentFanOut(self._reconciler, correction, translation, self._settings)
        self._storage = storage if storage is not None else NoOpStorageSink()
        self._clock = clock

        self._state = SessionState.IDLE
        self._lock = asyncio.Lock()
        self._state_listeners: list[StateListener] = []
        self._pipeline: _Pipeline | None = None
        self._generation = 0
        self._handlers: set[asyncio.Task] = set()

        self._session_id: str | None = None
        self._language = self._settings.RECOGNITION_LANGUAGE
        self._phrase_list: tuple[str, ...] = tuple(self._settings.phrase_list)
        self._timeline_ms = 0
        self.error: LivescribeError | None = None

    # --- read side ---

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def language(self) -> str:
        return self._language

    @property
    def transcript(self) -> TranscriptState:
        return self._reconciler.state

    @property
    def tracker(self) -> SpeakerTracker:
        return self._tracker

    @property
    def fanout(self) -> EnrichmentFanOut:
        return self._fanout

    def speakers(self) -> list[SpeakerIdentity]:
        return self._tracker.identities(self._reconciler.state.segments)

    def export_text(self, add_timestamps: bool | None = None) -> str:
        if add_timestamps is None:
            add_timestamps = self._settings.TRANSCRIPT_ADD_TIMESTAMPS
        return format_transcript(self._reconciler.state, self._tracker, add_timestamps)

    def payload(self, include_interim: bool = False) -> TranscriptPayload:
        return build_payload(self._reconciler.state, self._tracker, self._session_id, include_interim)

    def subscribe_transcript(self, listener: TranscriptListener) -> Callable[[], None]:
        return self._reconciler.subscribe(listener)

    def subscribe_state(self, listener: StateListener) -> Callable[[], None]:
        self._state_listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._state_listeners:
                self._state_listeners.remove(listener)

        return unsubscribe

    # --- lifecycle ---

    async def start(
        self,
        language: Optional[str] = None,
        phrase_list: Optional[Sequence[str]] = None,
        target_languages: Optional[Sequence[str]] = None,
    ) -> str:
        """
        IDLE: begin a new recording session (clears transcript and speakers, timeline at 0).
        PAUSED: same as resume(). Returns the session id.
        """
        if self._state in (SessionState.STARTING, SessionState.ACTIVE, SessionState.STOPPING):
            raise SessionStateError(f"Cannot start while {self._state.value}")
        async with self._lock:
            if self._state == SessionState.PAUSED:
                await self._open_locked()
                return self._session_id
            if self._state != SessionState.IDLE:
                raise SessionStateError(f"Cannot start while {self._state.value}")

            self._session_id = uuid.uuid4().hex[:12]
            self._language = language or self._settings.RECOGNITION_LANGUAGE
            if phrase_list is not None:
                self._phrase_list = tuple(p.strip() for p in phrase_list if p and p.strip())
            else:
                self._phrase_list = tuple(self._settings.phrase_list)
            self._reconciler.reset()
            self._tracker.reset()
            self._fanout.reset()
            self._fanout.configure(self._language, self._phrase_list, target_languages)
            self._timeline_ms = 0
            self.error = None
            logger.info("Session %s starting (language=%s)", self._session_id, self._language)
            await self._open_locked()
            return self._session_id

    async def pause(self) -> None:
        """ACTIVE → PAUSED. Waits for pending finals; segments and speakers carry over."""
        async with self._lock:
            if self._state != SessionState.ACTIVE:
                raise SessionStateError(f"Cannot pause while {self._state.value}")
            await self._close_pipeline(graceful=True)
            self._set_state(SessionState.PAUSED)

    async def resume(self) -> None:
        """PAUSED → ACTIVE with a fresh adapter and recognition session."""
        async with self._lock:
            if self._state != SessionState.PAUSED:
                raise SessionStateError(f"Cannot resume while {self._state.value}")
            await self._open_locked()

    async def stop(self) -> Optional[TranscriptPayload]:
        """
        ACTIVE/PAUSED → STOPPING → IDLE. Flushes recognition and enrichment, hands the
        transcript to the storage sink and returns it. No-op (None) when already IDLE.
        Raises StorageError if the sink fails; the transcript stays readable.
        """
        async with self._lock:
            if self._state == SessionState.IDLE:
                return None
            self._set_state(SessionState.STOPPING)
            try:
                if self._pipeline is not None:
                    await self._close_pipeline(graceful=True)
                await self._fanout.drain(self._settings.STOP_FLUSH_TIMEOUT_SECONDS)
                payload = self.payload()
                location = await self._storage.save(payload)
                logger.info(
                    "Session %s stopped: %s segments%s",
                    self._session_id,
                    len(payload.segments),
                    f", saved to {location}" if location else "",
                )
                return payload
            finally:
                self._set_state(SessionState.IDLE)

    async def close(self) -> None:
        """Tear down without saving (e.g. client went away mid-error). Idempotent."""
        async with self._lock:
            if self._pipeline is not None:
                await self._close_pipeline(graceful=False)
            self._fanout.cancel_all()
            if self._state != SessionState.IDLE:
                self._set_state(SessionState.IDLE)
        for task in list(self._handlers):
            task.cancel()

    # --- extras ---

    def rename_speaker(self, raw_tag: str, label: str) -> SpeakerIdentity:
        return self._tracker.rename(raw_tag, label)

    def request_translation(self, segment_id: int, target_language: str) -> "asyncio.Task[Outcome]":
        return self._fanout.request_translation(segment_id, target_language, from_lang=self._language)

    def request_correction(self, segment_ids: Optional[Sequence[int]] = None) -> "asyncio.Task[Outcome]":
        return self._fanout.request_correction(segment_ids, language=self._language)

    # --- pipeline ---

    async def _open_locked(self) -> None:
        """Lock held. STARTING → ACTIVE once the backend handshake resolves; fatal on failure."""
        self._set_state(SessionState.STARTING)
        self._generation += 1
        generation = self._generation
        recognition = RecognitionSession(self._backend_factory(), offset_ms=self._timeline_ms, clock=self._clock)
        try:
            events = await recognition.start(self._language, self._phrase_list)
        except LivescribeError as e:
            await self._abort(e)
            raise

        adapter = AudioStreamAdapter(
            self._source,
            target_rate=self._settings.SAMPLE_RATE,
            block_samples=self._settings.BLOCK_SAMPLES,
        )
        pipeline = _Pipeline(generation, adapter, recognition)
        self._pipeline = pipeline
        pipeline.consume_task = asyncio.create_task(self._consume(pipeline, events))
        try:
            adapter.open()
        except (LivescribeError, OSError) as e:
            error = AudioSourceError(f"Audio source could not start: {e}")
            await self._abort(error)
            raise error from e
        pipeline.pump_task = asyncio.create_task(self._pump(pipeline))
        self._set_state(SessionState.ACTIVE)
        logger.info("Session %s active (timeline from %s ms)", self._session_id, self._timeline_ms)

    async def _pump(self, pipeline: _Pipeline) -> None:
        """Audio frames → recognition, in capture order, as they arrive."""
        async for frame in pipeline.adapter.frames():
            await pipeline.recognition.write(frame)
        if pipeline.closing:
            return
        if pipeline.adapter.error is not None:
            self._spawn_handler(
                self._fail(pipeline.generation, AudioSourceError(f"Audio source failed: {pipeline.adapter.error}"))
            )
        else:
            logger.warning("Audio source ended unexpectedly; pausing")
            self._spawn_handler(self._pause_after_end(pipeline.generation))

    async def _consume(self, pipeline: _Pipeline, events: AsyncIterator[RecognitionEvent]) -> None:
        """Recognition events → reconciler, strictly in arrival order."""
        async for event in events:
            state = self._reconciler.apply(event)
            if isinstance(event, FinalEvent):
                self._fanout.on_segment_added(state.segments[-1])
            elif isinstance(event, ErrorEvent):
                if event.kind == "connection":
                    error: LivescribeError = BackendConnectionError(event.detail)
                else:
                    error = RecognitionError(event.detail)
                if pipeline.closing:
                    logger.warning("Recognition error while closing: %s", event.detail)
                else:
                    self._spawn_handler(self._fail(pipeline.generation, error))
            elif isinstance(event, EndedEvent) and not pipeline.closing:
                logger.warning("Recognition ended unexpectedly; pausing")
                self._spawn_handler(self._pause_after_end(pipeline.generation))

    async def _close_pipeline(self, graceful: bool) -> None:
        """Lock held. Close the adapter, then recognition; advance the timeline."""
        pipeline = self._pipeline
        if pipeline is None:
            return
        pipeline.closing = True
        try:
            pipeline.adapter.close()
            if pipeline.pump_task is not None:
                if graceful:
                    await pipeline.pump_task
                else:
                    await self._cancel_task(pipeline.pump_task)
            if graceful:
                await pipeline.recognition.stop()
                try:
                    await asyncio.wait_for(
                        asyncio.shield(pipeline.consume_task),
                        timeout=self._settings.RECOGNITION_STOP_TIMEOUT_SECONDS,
                    )
                except asyncio.TimeoutError:
                    logger.warning("Recognition did not finish in time; closing it")
            await self._cancel_task(pipeline.consume_task)
        finally:
            await pipeline.recognition.close()
            self._timeline_ms = pipeline.recognition.timeline_end_ms
            self._pipeline = None

    async def _abort(self, error: LivescribeError) -> None:
        """Lock held. Fatal: tear down everything, keep the transcript, go IDLE."""
        logger.error("Session %s failed: %s", self._session_id, error)
        self.error = error
        if self._pipeline is not None:
            await self._close_pipeline(graceful=False)
        self._fanout.cancel_all()
        self._set_state(SessionState.IDLE)

    async def _fail(self, generation: int, error: LivescribeError) -> None:
        async with self._lock:
            if generation != self._generation or self._state != SessionState.ACTIVE:
                return
            await self._abort(error)

    async def _pause_after_end(self, generation: int) -> None:
        async with self._lock:
            if generation != self._generation or self._state != SessionState.ACTIVE:
                return
            await self._close_pipeline(graceful=True)
            self._set_state(SessionState.PAUSED)

    def _spawn_handler(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._handlers.add(task)
        task.add_done_callback(self._handlers.discard)

    @staticmethod
    async def _cancel_task(task: asyncio.Task | None) -> None:
        if task is None:
            return
        if not task.done():
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except LivescribeError as e:
            logger.warning("Pipeline task ended with error: %s", e)

    def _set_state(self, state: SessionState) -> None:
        if state == self._state:
            return
        logger.info("Session state %s -> %s", self._state.value, state.value)
        self._state = state
        for listener in list(self._state_listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("Session state listener failed")
