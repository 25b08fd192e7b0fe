from __future__ import annotations

import threading

import numpy as np
import pytest

from livescribe.audio import (
    AudioStreamAdapter,
    BlockBuffer,
    PushAudioSource,
    RollingBuffer,
    StreamResampler,
    float32_to_int16,
)
from livescribe.errors import SessionStateError


def test_float32_to_int16_clips_instead_of_wrapping():
    out = float32_to_int16(np.array([-2.0, -1.0, -0.5, 0.0, 0.5, 1.0, 3.0], dtype=np.float32))
    assert out.dtype == np.int16
    assert out.tolist() == [-32768, -32768, -16384, 0, 16383, 32767, 32767]


def test_resampler_48k_to_16k_output_length():
    resampler = StreamResampler(48000, 16000)
    out = resampler.process(np.zeros(4800, dtype=np.float32))
    assert len(out) == 1600


def test_resampler_keeps_continuity_across_blocks():
    ramp = np.linspace(-1.0, 1.0, 9600, dtype=np.float32)
    whole = StreamResampler(48000, 16000).process(ramp)

    split = StreamResampler(48000, 16000)
    parts = [split.process(ramp[i : i + 1000]) for i in range(0, len(ramp), 1000)]
    joined = np.concatenate(parts)

    n = min(len(whole), len(joined))
    assert abs(len(whole) - len(joined)) <= 1
    np.testing.assert_allclose(joined[:n], whole[:n], atol=1e-5)


def test_block_buffer_yields_fixed_frames_and_pads_tail():
    blocks = BlockBuffer(block_samples=4096, sample_rate=16000)
    blocks.feed(np.ones(5000, dtype=np.int16))

    frames = blocks.drain_frames()
    assert len(frames) == 1
    assert len(frames[0].samples) == 4096
    assert frames[0].index == 0
    assert blocks.remaining_samples() == 5000 - 4096

    tail = blocks.flush()
    assert tail is not None
    assert tail.index == 1
    assert len(tail.samples) == 4096
    assert tail.samples[: 5000 - 4096].tolist() == [1] * (5000 - 4096)
    assert not tail.samples[5000 - 4096 :].any()
    assert blocks.flush() is None


def test_push_source_drops_samples_when_not_started():
    source = PushAudioSource(16000)
    assert source.write(np.zeros(10, dtype=np.float32)) is False


def test_push_source_rejects_second_start():
    source = PushAudioSource(16000)
    source.start(lambda samples: None, lambda exc: None)
    with pytest.raises(SessionStateError):
        source.start(lambda samples: None, lambda exc: None)
    source.stop()
    source.start(lambda samples: None, lambda exc: None)
    assert source.running


async def _collect(adapter: AudioStreamAdapter) -> list:
    return [frame async for frame in adapter.frames()]


async def test_adapter_emits_frames_and_padded_tail_on_close():
    source = PushAudioSource(16000)
    adapter = AudioStreamAdapter(source, target_rate=16000, block_samples=4096)
    adapter.open()

    assert source.write(np.full(5000, 0.5, dtype=np.float32))
    adapter.close()
    adapter.close()

    frames = await _collect(adapter)
    assert [f.index for f in frames] == [0, 1]
    assert all(len(f.samples) == 4096 for f in frames)
    assert frames[0].samples[0] == 16383
    assert adapter.closed
    assert not source.running
    assert adapter.error is None


async def test_adapter_resamples_client_rate():
    source = PushAudioSource(48000)
    adapter = AudioStreamAdapter(source, target_rate=16000, block_samples=1600)
    adapter.open()
    source.write(np.zeros(4800, dtype=np.float32))
    adapter.close()

    frames = await _collect(adapter)
    assert len(frames) == 1
    assert frames[0].sample_rate == 16000


async def test_adapter_records_source_error_and_stops():
    source = PushAudioSource(16000)
    adapter = AudioStreamAdapter(source, target_rate=16000, block_samples=4096)
    adapter.open()
    source.write(np.zeros(100, dtype=np.float32))
    source.end(RuntimeError("microphone unplugged"))

    frames = await _collect(adapter)
    assert len(frames) == 1  # padded tail
    assert isinstance(adapter.error, RuntimeError)
    assert source.write(np.zeros(10, dtype=np.float32)) is False


async def test_adapter_hands_frames_from_capture_thread_in_order():
    source = PushAudioSource(16000)
    adapter = AudioStreamAdapter(source, target_rate=16000, block_samples=1024)
    adapter.open()
    blocks = [np.full(1024, i / 200, dtype=np.float32) for i in range(200)]

    def capture():
        for block in blocks:
            source.write(block)
        source.end()

    producer = threading.Thread(target=capture)
    producer.start()
    frames = await _collect(adapter)
    producer.join()

    assert [f.index for f in frames] == list(range(200))
    assert [int(f.samples[0]) for f in frames] == [int(float32_to_int16(b)[0]) for b in blocks]
    assert adapter.closed
    assert adapter.error is None


async def test_adapter_is_single_use():
    adapter = AudioStreamAdapter(PushAudioSource(16000))
    adapter.open()
    adapter.close()
    with pytest.raises(SessionStateError):
        adapter.open()


def test_rolling_buffer_emits_window_every_step():
    chunks: list[tuple[np.ndarray, float]] = []
    rolling = RollingBuffer(
        on_chunk=lambda chunk, start: chunks.append((chunk, start)),
        sample_rate=10,
        window_sec=2.0,
        step_sec=1.0,
        min_chunk_sec=0.5,
    )
    rolling.push(np.arange(10, dtype=np.int16))
    assert chunks == []
    rolling.push(np.arange(10, 20, dtype=np.int16))
    assert len(chunks) == 1
    assert chunks[0][1] == 0.0
    rolling.push(np.arange(20, 30, dtype=np.int16))
    assert len(chunks) == 2
    assert chunks[1][1] == 1.0
    assert chunks[1][0].tolist() == list(range(10, 30))

    flushed = rolling.flush()
    assert flushed is not None
    assert flushed[1] == 1.0
