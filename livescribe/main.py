"""
FastAPI app: WebSocket endpoint for live transcription sessions.

Client streams float32 microphone samples (binary) and JSON commands (text) to /ws/session.
Server pushes session state, transcript snapshots, errors and the final transcript as JSON.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from livescribe.asr.local_whisper import load_whisper_model
from livescribe.audio.adapter import AudioSource
from livescribe.config import get_settings
from livescribe.logging_setup import setup_logging
from livescribe.session.controller import LiveSession
from livescribe.session.factory import create_live_session
from livescribe.speakers.label_store import JsonFileLabelStore
from livescribe.speakers.tracker import SpeakerTracker
from livescribe.websocket_manager import SessionFactory, SessionSocket

logger = logging.getLogger(__name__)


def _default_session_factory(app: FastAPI) -> SessionFactory:
    def factory(source: AudioSource) -> LiveSession:
        return create_live_session(
            source,
            settings=app.state.settings,
            model=app.state.whisper_model,
            tracker=SpeakerTracker(app.state.label_store),
        )

    return factory


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging(settings)
    app.state.settings = settings
    # Speaker labels are shared by all connections for the lifetime of the process
    app.state.label_store = JsonFileLabelStore(settings.SPEAKER_LABEL_FILE)
    # Load Whisper model once at startup when using local backend (singleton)
    if settings.RECOGNITION_BACKEND == "local":
        app.state.whisper_model = load_whisper_model(settings)
    else:
        app.state.whisper_model = None
    app.state.session_factory = _default_session_factory(app)
    logger.info("livescribe ready (recognition=%s)", settings.RECOGNITION_BACKEND)
    yield
    app.state.whisper_model = None


app = FastAPI(
    title="Live Transcription",
    description="Streaming speech recognition with speaker labels, correction and translation",
    lifespan=lifespan,
)


@app.websocket("/ws/session")
async def websocket_session(websocket: WebSocket) -> None:
    """
    WebSocket: client sends float32 audio (binary) and SessionCommands (text JSON).
    Server sends JSON: { type: session | state | transcript | error | stopped, ... }.
    """
    await websocket.accept()
    state = websocket.app.state
    manager = SessionSocket(websocket, state.settings, state.session_factory)
    try:
        await manager.run()
    except WebSocketDisconnect:
        pass


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}
