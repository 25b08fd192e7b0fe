"""
SessionSocket: one WebSocket connection = one LiveSession.

Client → server:
- binary frames: little-endian float32 mono samples at the client's sample rate;
- text frames: JSON SessionCommand (start, pause, resume, stop, rename, translate, correct).

Server → client (JSON):
- {"type": "session", "session_id"}            after a recording session starts
- {"type": "state", "state"}                    on every lifecycle transition
- {"type": "transcript", segments, fullText, speakers, interimText}
- {"type": "error", "kind", "detail"}
- {"type": "stopped", "payload"}                final transcript after stop

Outgoing messages go through a queue drained by one sender task, so listeners
called from the pipeline never wait on the socket.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from livescribe.audio.adapter import AudioSource, PushAudioSource
from livescribe.config import Settings
from livescribe.errors import (
    AudioSourceError,
    BackendConnectionError,
    ConfigurationError,
    EnrichmentError,
    LivescribeError,
    RecognitionError,
    SessionStateError,
    StorageError,
)
from livescribe.schemas.session import ErrorMessage, SessionCommand
from livescribe.session.controller import LiveSession, SessionState
from livescribe.transcript.models import TranscriptState

logger = logging.getLogger(__name__)

SessionFactory = Callable[[AudioSource], LiveSession]

_ERROR_KINDS: tuple[tuple[type[LivescribeError], str], ...] = (
    (ConfigurationError, "configuration"),
    (BackendConnectionError, "connection"),
    (RecognitionError, "recognition"),
    (AudioSourceError, "audio"),
    (StorageError, "storage"),
    (SessionStateError, "state"),
    (EnrichmentError, "enrichment"),
)


def error_kind(error: LivescribeError) -> str:
    for error_type, kind in _ERROR_KINDS:
        if isinstance(error, error_type):
            return kind
    return "error"


class SessionSocket:
    def __init__(self, websocket: WebSocket, settings: Settings, session_factory: SessionFactory) -> None:
        self._ws = websocket
        self._settings = settings
        self._session_factory = session_factory
        self._source: PushAudioSource | None = None
        self._session: LiveSession | None = None
        self._unsubscribers: list[Callable[[], None]] = []
        self._outgoing: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue()
        self._sender_task: asyncio.Task | None = None
        self._reported_error: LivescribeError | None = None
        self._closed = False

    async def run(self) -> None:
        """Main loop: binary → audio source, text → commands. Stops the session on disconnect."""
        self._sender_task = asyncio.create_task(self._sender())
        try:
            while not self._closed:
                try:
                    msg = await self._ws.receive()
                except (WebSocketDisconnect, RuntimeError):
                    break
                if msg.get("type") == "websocket.disconnect":
                    break
                data = msg.get("bytes")
                if data is not None:
                    if self._source is not None:
                        self._source.write_bytes(data)
                    continue
                text = msg.get("text")
                if text is not None:
                    await self._handle_text(text)
        finally:
            await self._shutdown()

    # --- commands ---

    async def _handle_text(self, text: str) -> None:
        try:
            command = SessionCommand.model_validate(json.loads(text))
        except (json.JSONDecodeError, ValidationError) as e:
            self._send_error("request", f"Invalid command: {e}")
            return
        try:
            await self._dispatch(command)
        except LivescribeError as e:
            logger.warning("Command %s failed: %s", command.type, e)
            self._send_error(error_kind(e), str(e))

    async def _dispatch(self, command: SessionCommand) -> None:
        if command.type == "start":
            session = self._ensure_session(command.sample_rate)
            session_id = await session.start(command.language, command.phrase_list, command.target_languages)
            self._send({"type": "session", "session_id": session_id})
            return

        session = self._session
        if session is None:
            raise SessionStateError("No session; send start first")

        if command.type == "pause":
            await session.pause()
        elif command.type == "resume":
            await session.resume()
        elif command.type == "stop":
            await self._stop(session)
        elif command.type == "rename":
            if not command.speaker:
                self._send_error("request", "rename requires speaker")
                return
            session.rename_speaker(command.speaker, command.label or "")
            self._on_transcript(session.transcript)
        elif command.type == "translate":
            if command.segment_id is None or not command.target_language:
                self._send_error("request", "translate requires segment_id and target_language")
                return
            session.request_translation(command.segment_id, command.target_language)
        elif command.type == "correct":
            session.request_correction()

    async def _stop(self, session: LiveSession) -> None:
        try:
            payload = await session.stop()
        except StorageError as e:
            # Transcript is still intact; deliver it and report the save failure
            self._send_error("storage", str(e))
            payload = session.payload()
        if payload is not None:
            self._send({"type": "stopped", "payload": payload.model_dump(by_alias=True, exclude_none=True)})

    def _ensure_session(self, sample_rate: int | None) -> LiveSession:
        rate = sample_rate or self._settings.CLIENT_SAMPLE_RATE
        if self._session is not None:
            if self._source is not None and self._source.sample_rate == rate:
                return self._session
            if self._session.state != SessionState.IDLE:
                return self._session
            self._detach()
        source = PushAudioSource(rate)
        session = self._session_factory(source)
        self._source = source
        self._session = session
        self._unsubscribers = [
            session.subscribe_transcript(self._on_transcript),
            session.subscribe_state(self._on_state),
        ]
        return session

    def _detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        self._session = None
        self._source = None

    # --- listeners (called from the pipeline; never block) ---

    def _on_transcript(self, state: TranscriptState) -> None:
        session = self._session
        if session is None:
            return
        payload = session.payload(include_interim=True)
        self._send({"type": "transcript", **payload.model_dump(by_alias=True, exclude_none=True)})

    def _on_state(self, state: SessionState) -> None:
        self._send({"type": "state", "state": state.value})
        session = self._session
        if state == SessionState.IDLE and session is not None:
            error = session.error
            if error is not None and error is not self._reported_error:
                self._reported_error = error
                self._send_error(error_kind(error), str(error))

    # --- outgoing ---

    def _send(self, message: dict[str, Any]) -> None:
        if self._closed:
            return
        self._outgoing.put_nowait(message)

    def _send_error(self, kind: str, detail: str) -> None:
        self._send(ErrorMessage(kind=kind, detail=detail).model_dump())

    async def _sender(self) -> None:
        while True:
            message = await self._outgoing.get()
            if message is None:
                return
            try:
                await self._ws.send_json(message)
            except (WebSocketDisconnect, RuntimeError, OSError):
                self._closed = True
                return

    async def _shutdown(self) -> None:
        session = self._session
        if session is not None:
            if session.state != SessionState.IDLE:
                try:
                    await session.stop()
                except LivescribeError as e:
                    logger.warning("Stopping session on disconnect failed: %s", e)
            await session.close()
            self._detach()
        self._closed = True
        self._outgoing.put_nowait(None)
        if self._sender_task is not None:
            try:
                await asyncio.wait_for(self._sender_task, timeout=5.0)
            except asyncio.TimeoutError:
                self._sender_task.cancel()
                try:
                    await self._sender_task
                except asyncio.CancelledError:
                    pass
