from __future__ import annotations

import asyncio
from typing import Callable, Sequence

import numpy as np
import pytest

from livescribe.asr.base import ASREngine, ASRResult
from livescribe.audio.adapter import PushAudioSource
from livescribe.audio.frames import AudioFrame
from livescribe.config import Settings
from livescribe.enrichment.correction import CorrectionBackend
from livescribe.enrichment.translation import TranslationBackend
from livescribe.errors import EnrichmentError
from livescribe.recognition.base import BackendResult, RecognitionBackend, ResultReason
from livescribe.schemas.correction import CorrectionItem, CorrectionRequest, CorrectionResponse


def make_settings(**overrides) -> Settings:
    values = dict(
        RECOGNITION_BACKEND="cloudflare",
        CLOUDFLARE_ACCOUNT_ID="acct",
        CLOUDFLARE_API_TOKEN="token",
        TRANSLATOR_KEY="",
        TRANSLATION_TARGET_LANGUAGES="",
        CORRECTION_ENABLED=False,
        CORRECTION_URL="",
        TRANSCRIPT_SAVE_ENABLED=False,
        SPEAKER_LABEL_FILE="",
        ENRICHMENT_TIMEOUT_SECONDS=5.0,
        STOP_FLUSH_TIMEOUT_SECONDS=0.5,
        RECOGNITION_STOP_TIMEOUT_SECONDS=2.0,
        LOG_FILE="",
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll until predicate() is true; fail the test on timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


class FakeBackend(RecognitionBackend):
    """Scripted recognition backend: tests push results; stop() ends the stream."""

    def __init__(self, open_error: Exception | None = None) -> None:
        self.open_error = open_error
        self.opened_with: tuple[str, tuple[str, ...]] | None = None
        self.frames: list[AudioFrame] = []
        self.on_stop: list[BackendResult] = []
        self.stop_calls = 0
        self.close_calls = 0
        self._queue: asyncio.Queue[BackendResult] = asyncio.Queue()

    def push(self, result: BackendResult) -> None:
        self._queue.put_nowait(result)

    def recognizing(self, text: str, speaker: str | None = None) -> None:
        self.push(BackendResult(ResultReason.RECOGNIZING, text=text, speaker_id=speaker))

    def recognized(
        self,
        text: str,
        speaker: str | None = None,
        offset_ms: int | None = None,
        duration_ms: int | None = None,
    ) -> None:
        self.push(
            BackendResult(
                ResultReason.RECOGNIZED,
                text=text,
                speaker_id=speaker,
                offset_ms=offset_ms,
                duration_ms=duration_ms,
            )
        )

    async def open(self, language: str, phrase_list: Sequence[str] = ()) -> None:
        if self.open_error is not None:
            raise self.open_error
        self.opened_with = (language, tuple(phrase_list))

    async def write(self, frame: AudioFrame) -> None:
        self.frames.append(frame)

    async def results(self):
        while True:
            result = await self._queue.get()
            yield result
            if result.reason in (ResultReason.CANCELED, ResultReason.SESSION_STOPPED):
                return

    async def stop(self) -> None:
        self.stop_calls += 1
        for result in self.on_stop:
            self.push(result)
        self.push(BackendResult(ResultReason.SESSION_STOPPED))

    async def close(self) -> None:
        self.close_calls += 1


class FakeEngine(ASREngine):
    """ASR engine returning scripted results in order (empty result once the script runs out)."""

    def __init__(self, script: Sequence[ASRResult | Exception] = (), sample_rate: int = 16000) -> None:
        self._script = list(script)
        self._sample_rate = sample_rate
        self.calls: list[tuple[int, str | None, str | None]] = []
        self.validate_error: Exception | None = None

    def validate(self) -> None:
        if self.validate_error is not None:
            raise self.validate_error

    async def transcribe(self, audio: np.ndarray, language: str | None = None, prompt: str | None = None) -> ASRResult:
        self.calls.append((len(audio), language, prompt))
        if not self._script:
            return ASRResult(text="", segments=[])
        item = self._script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    @property
    def sample_rate(self) -> int:
        return self._sample_rate


class FakeTranslator(TranslationBackend):
    """
    Default: answers immediately with "<to>:<text>".
    gated=True: every call waits on its own future (see .pending) so tests control arrival order.
    """

    def __init__(self, gated: bool = False, fail: bool = False) -> None:
        self.gated = gated
        self.fail = fail
        self.calls: list[tuple[str, str | None, str]] = []
        self.pending: list[asyncio.Future] = []

    async def translate(self, text: str, from_lang: str | None, to_lang: str) -> str:
        self.calls.append((text, from_lang, to_lang))
        if self.gated:
            future = asyncio.get_running_loop().create_future()
            self.pending.append(future)
            return await future
        if self.fail:
            raise EnrichmentError("translator unreachable", field="translation")
        return f"{to_lang}:{text}"


class FakeCorrector(CorrectionBackend):
    """Applies `fixes` ({old text: new text}); gated=True waits on a future per call."""

    def __init__(self, fixes: dict[str, str] | None = None, gated: bool = False, fail: bool = False) -> None:
        self.fixes = dict(fixes or {})
        self.gated = gated
        self.fail = fail
        self.requests: list[CorrectionRequest] = []
        self.pending: list[asyncio.Future] = []

    async def correct(self, request: CorrectionRequest) -> CorrectionResponse:
        self.requests.append(request)
        if self.gated:
            future = asyncio.get_running_loop().create_future()
            self.pending.append(future)
            return await future
        if self.fail:
            raise EnrichmentError("correction unreachable", field="correction")
        return CorrectionResponse(
            corrections=[
                CorrectionItem(id=s.id, original=s.text, corrected=self.fixes[s.text])
                for s in request.segments
                if s.text in self.fixes
            ]
        )


@pytest.fixture
def push_source() -> PushAudioSource:
    return PushAudioSource(16000)
