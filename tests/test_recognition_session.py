from __future__ import annotations

import numpy as np
import pytest

from conftest import FakeBackend
from livescribe.audio.frames import AudioFrame
from livescribe.errors import ConfigurationError, SessionStateError
from livescribe.recognition import (
    BackendResult,
    EndedEvent,
    ErrorEvent,
    FinalEvent,
    InterimEvent,
    RecognitionSession,
    ResultReason,
)


class FakeClock:
    def __init__(self, now: float = 100.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _frame(index: int = 0) -> AudioFrame:
    return AudioFrame(samples=np.zeros(4096, dtype=np.int16), sample_rate=16000, index=index)


async def test_maps_backend_results_to_events_and_releases_backend():
    backend = FakeBackend()
    session = RecognitionSession(backend)
    events = await session.start("ja-JP", ["Contoso"])
    assert backend.opened_with == ("ja-JP", ("Contoso",))
    assert session.active

    backend.recognizing("こんにち", speaker="Guest-1")
    backend.recognized("こんにちは", speaker="Guest-1", offset_ms=0, duration_ms=1200)
    await session.stop()

    collected = [event async for event in events]
    assert collected == [
        InterimEvent(text="こんにち", speaker_tag="Guest-1"),
        FinalEvent(text="こんにちは", start_ms=0, end_ms=1200, speaker_tag="Guest-1"),
        EndedEvent(),
    ]
    assert backend.close_calls == 1
    assert not session.active


async def test_offset_shifts_backend_timestamps():
    backend = FakeBackend()
    session = RecognitionSession(backend, offset_ms=5000)
    events = await session.start("en-US")
    backend.recognized("resumed", offset_ms=100, duration_ms=400)
    await session.stop()

    collected = [event async for event in events]
    assert collected[0] == FinalEvent(text="resumed", start_ms=5100, end_ms=5500)


async def test_elapsed_time_fallback_when_backend_has_no_offsets():
    clock = FakeClock(100.0)
    backend = FakeBackend()
    session = RecognitionSession(backend, clock=clock)
    events = await session.start("en-US")

    clock.now = 100.5
    backend.recognizing("hel")
    assert await events.__anext__() == InterimEvent(text="hel")

    clock.now = 101.2
    backend.recognized("hello")
    assert await events.__anext__() == FinalEvent(text="hello", start_ms=500, end_ms=1200)

    # Next utterance has no interim: starts where the previous final ended
    clock.now = 102.0
    backend.recognized("again")
    assert await events.__anext__() == FinalEvent(text="again", start_ms=1200, end_ms=2000)

    await session.stop()
    assert await events.__anext__() == EndedEvent()


async def test_start_never_goes_backwards():
    backend = FakeBackend()
    session = RecognitionSession(backend)
    events = await session.start("en-US")
    backend.recognized("first", offset_ms=1000, duration_ms=500)
    backend.recognized("second", offset_ms=800, duration_ms=100)
    await session.stop()

    finals = [e async for e in events if isinstance(e, FinalEvent)]
    assert [f.start_ms for f in finals] == [1000, 1000]
    assert finals[1].end_ms >= finals[1].start_ms


async def test_no_match_and_empty_final_are_dropped():
    backend = FakeBackend()
    session = RecognitionSession(backend)
    events = await session.start("en-US")
    backend.push(BackendResult(ResultReason.NO_MATCH))
    backend.recognized("   ")
    backend.recognized("kept", offset_ms=0, duration_ms=10)
    await session.stop()

    collected = [event async for event in events]
    assert collected == [FinalEvent(text="kept", start_ms=0, end_ms=10), EndedEvent()]


async def test_cancel_with_details_is_single_terminal_error():
    backend = FakeBackend()
    session = RecognitionSession(backend)
    events = await session.start("en-US")
    backend.push(BackendResult(ResultReason.CANCELED, error_details="401 rejected", connection_error=True))
    backend.recognized("never delivered")

    collected = [event async for event in events]
    assert collected == [ErrorEvent(detail="401 rejected", kind="connection")]
    assert backend.close_calls == 1


async def test_cancel_without_details_is_ended():
    backend = FakeBackend()
    session = RecognitionSession(backend)
    events = await session.start("en-US")
    backend.push(BackendResult(ResultReason.CANCELED))

    assert [event async for event in events] == [EndedEvent()]


async def test_second_start_raises():
    session = RecognitionSession(FakeBackend())
    await session.start("en-US")
    with pytest.raises(SessionStateError):
        await session.start("en-US")


async def test_stop_before_start_is_noop():
    backend = FakeBackend()
    session = RecognitionSession(backend)
    await session.stop()
    assert backend.stop_calls == 0


async def test_stop_is_idempotent():
    backend = FakeBackend()
    session = RecognitionSession(backend)
    await session.start("en-US")
    await session.stop()
    await session.stop()
    assert backend.stop_calls == 1


async def test_failed_handshake_releases_backend():
    backend = FakeBackend(open_error=ConfigurationError("missing key"))
    session = RecognitionSession(backend)
    with pytest.raises(ConfigurationError):
        await session.start("en-US")
    assert backend.close_calls == 1
    assert not session.active


async def test_frames_forwarded_until_stop():
    backend = FakeBackend()
    session = RecognitionSession(backend)
    await session.start("en-US")
    await session.write(_frame(0))
    await session.write(_frame(1))
    await session.stop()
    await session.write(_frame(2))
    assert [f.index for f in backend.frames] == [0, 1]


async def test_close_releases_backend_when_stream_never_consumed():
    backend = FakeBackend()
    session = RecognitionSession(backend)
    await session.start("en-US")
    await session.close()
    await session.close()
    assert backend.close_calls == 1
    assert not session.active
