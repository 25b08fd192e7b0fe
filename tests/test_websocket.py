from __future__ import annotations

import numpy as np
import pytest
from fastapi.testclient import TestClient

from conftest import FakeBackend, make_settings
from livescribe.main import app
from livescribe.recognition import BackendResult, ResultReason
from livescribe.session import LiveSession, create_live_session
from livescribe.speakers import SpeakerTracker


def _receive_until(ws, message_type: str, limit: int = 50) -> tuple[dict, list[dict]]:
    seen: list[dict] = []
    for _ in range(limit):
        message = ws.receive_json()
        seen.append(message)
        if message["type"] == message_type:
            return message, seen
    raise AssertionError(f"no {message_type} message in {seen}")


@pytest.fixture
def client():
    with TestClient(app) as client:
        app.state.settings = make_settings()
        yield client


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_start_without_credentials_reports_configuration_error(client):
    settings = make_settings(CLOUDFLARE_API_TOKEN="")
    app.state.session_factory = lambda source: create_live_session(source, settings=settings, tracker=SpeakerTracker())

    with client.websocket_connect("/ws/session") as ws:
        ws.send_json({"type": "start", "language": "ja-JP"})
        message = ws.receive_json()
    assert message["type"] == "error"
    assert message["kind"] == "configuration"
    assert "CLOUDFLARE_API_TOKEN" in message["detail"]


def test_commands_before_start_and_bad_commands(client):
    with client.websocket_connect("/ws/session") as ws:
        ws.send_json({"type": "pause"})
        assert ws.receive_json()["kind"] == "state"
        ws.send_text("{not json")
        assert ws.receive_json()["kind"] == "request"
        ws.send_json({"type": "dance"})
        assert ws.receive_json()["kind"] == "request"


def test_session_round_trip(client):
    backends: list[FakeBackend] = []

    def new_backend() -> FakeBackend:
        backend = FakeBackend()
        backend.on_stop.append(
            BackendResult(ResultReason.RECOGNIZED, text="hello", speaker_id="Guest-1", offset_ms=0, duration_ms=900)
        )
        backends.append(backend)
        return backend

    app.state.session_factory = lambda source: LiveSession(
        source, backend_factory=new_backend, settings=make_settings()
    )

    with client.websocket_connect("/ws/session") as ws:
        ws.send_json({"type": "start", "language": "en-US", "sample_rate": 16000})
        session, seen = _receive_until(ws, "session")
        assert session["session_id"]
        assert {"type": "state", "state": "active"} in seen

        ws.send_bytes(np.zeros(4096, dtype="<f4").tobytes())
        ws.send_json({"type": "stop"})
        stopped, seen = _receive_until(ws, "stopped")

    payload = stopped["payload"]
    assert payload["fullText"] == "hello"
    assert payload["segments"][0]["speakerLabel"] == "Guest-1"
    assert payload["speakers"][0]["color"] == "blue"
    assert any(m["type"] == "transcript" and m["segments"] for m in seen)
    assert {"type": "state", "state": "idle"} in seen
    assert len(backends[0].frames) == 1
