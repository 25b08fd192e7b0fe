from __future__ import annotations

import json

import httpx
import numpy as np
import pytest

from conftest import make_settings
from livescribe.asr.cloudflare import CloudflareWhisperEngine
from livescribe.enrichment import HttpCorrectionClient, TranslatorClient, WorkersAICorrectionClient, normalize_language
from livescribe.errors import BackendConnectionError, ConfigurationError, EnrichmentError
from livescribe.schemas.correction import CorrectionRequest, CorrectionSegment


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _request(**overrides) -> CorrectionRequest:
    values = dict(
        segments=[CorrectionSegment(id="1", text="きょうはいい天気"), CorrectionSegment(id="2", text="コントソの会議")],
        language="ja-JP",
        phrase_list=["Contoso"],
    )
    values.update(overrides)
    return CorrectionRequest(**values)


@pytest.mark.parametrize(
    "code,expected",
    [("ja-JP", "ja"), ("en-US", "en"), ("zh-CN", "zh-Hans"), ("zh-TW", "zh-Hant"), ("fr", "fr")],
)
def test_normalize_language(code, expected):
    assert normalize_language(code) == expected


async def test_translator_sends_key_region_and_languages():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[{"translations": [{"text": "Hello", "to": "en"}]}])

    settings = make_settings(TRANSLATOR_KEY="secret", TRANSLATOR_REGION="japaneast")
    async with _client(handler) as client:
        translator = TranslatorClient(settings, client)
        assert await translator.translate("こんにちは", "ja-JP", "en-US") == "Hello"

    request = seen[0]
    assert request.url.path == "/translate"
    assert request.url.params["api-version"] == "3.0"
    assert request.url.params["from"] == "ja"
    assert request.url.params["to"] == "en"
    assert request.headers["Ocp-Apim-Subscription-Key"] == "secret"
    assert request.headers["Ocp-Apim-Subscription-Region"] == "japaneast"
    assert json.loads(request.content) == [{"text": "こんにちは"}]


async def test_translator_rejected_key_reports_quota_message():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, json={"error": {"code": 403001, "message": "Out of call volume quota"}})

    async with _client(handler) as client:
        translator = TranslatorClient(make_settings(TRANSLATOR_KEY="secret"), client)
        with pytest.raises(EnrichmentError) as excinfo:
            await translator.translate("hello", None, "fr")
    assert "limit" in str(excinfo.value)
    assert excinfo.value.field == "translation"


async def test_translator_service_error_keeps_message():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": {"code": 400036, "message": "The target language is not valid."}})

    async with _client(handler) as client:
        translator = TranslatorClient(make_settings(TRANSLATOR_KEY="secret"), client)
        with pytest.raises(EnrichmentError, match="target language is not valid"):
            await translator.translate("hello", None, "xx")


async def test_translator_requires_credentials():
    translator = TranslatorClient(make_settings(TRANSLATOR_KEY=""))
    with pytest.raises(ConfigurationError):
        await translator.translate("hello", None, "fr")


async def test_translator_skips_empty_text():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    async with _client(handler) as client:
        translator = TranslatorClient(make_settings(TRANSLATOR_KEY="secret"), client)
        assert await translator.translate("   ", None, "fr") == ""


async def test_http_correction_posts_camel_case_and_accepts_wrapped_body():
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(
            200,
            json={
                "success": True,
                "data": {"corrections": [{"id": "1", "original": "きょうはいい天気", "corrected": "今日はいい天気"}]},
            },
        )

    settings = make_settings(CORRECTION_URL="https://correct.example/api/realtime-correction")
    async with _client(handler) as client:
        response = await HttpCorrectionClient(settings, client).correct(_request())

    assert seen[0]["phraseList"] == ["Contoso"]
    assert seen[0]["segments"][0] == {"id": "1", "text": "きょうはいい天気"}
    assert [(c.id, c.corrected) for c in response.corrections] == [("1", "今日はいい天気")]


async def test_http_correction_accepts_bare_body():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"corrections": []})

    settings = make_settings(CORRECTION_URL="https://correct.example/api")
    async with _client(handler) as client:
        response = await HttpCorrectionClient(settings, client).correct(_request())
    assert response.corrections == []


async def test_http_correction_failure_carries_segment_ids():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"success": False, "error": "model overloaded"})

    settings = make_settings(CORRECTION_URL="https://correct.example/api")
    async with _client(handler) as client:
        with pytest.raises(EnrichmentError) as excinfo:
            await HttpCorrectionClient(settings, client).correct(_request())
    assert excinfo.value.segment_ids == (1, 2)
    assert "model overloaded" in str(excinfo.value)


async def test_http_correction_server_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502)

    settings = make_settings(CORRECTION_URL="https://correct.example/api")
    async with _client(handler) as client:
        with pytest.raises(EnrichmentError, match="502"):
            await HttpCorrectionClient(settings, client).correct(_request())


async def test_http_correction_requires_url():
    with pytest.raises(ConfigurationError):
        await HttpCorrectionClient(make_settings(CORRECTION_URL="")).correct(_request())


async def test_workers_ai_correction_parses_fenced_json():
    seen: list[httpx.Request] = []
    answer = '```json\n{"corrections": [{"id": 2, "original": "コントソの会議", "corrected": "Contosoの会議"}]}\n```'

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"result": {"response": answer}, "success": True})

    async with _client(handler) as client:
        response = await WorkersAICorrectionClient(make_settings(), client).correct(_request())

    assert [(c.id, c.corrected) for c in response.corrections] == [("2", "Contosoの会議")]
    request = seen[0]
    assert request.url.path.endswith("/ai/run/@cf/meta/llama-3.1-8b-instruct")
    assert request.headers["Authorization"] == "Bearer token"
    body = json.loads(request.content)
    system, user = body["messages"]
    assert "Contoso" in system["content"]
    assert "[1] きょうはいい天気" in user["content"]


async def test_workers_ai_correction_rejects_prose_answer():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"result": {"response": "Everything looks fine to me."}})

    async with _client(handler) as client:
        with pytest.raises(EnrichmentError, match="not valid JSON"):
            await WorkersAICorrectionClient(make_settings(), client).correct(_request())


async def test_cloudflare_whisper_posts_pcm_bytes():
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"result": {"text": " hello world "}, "success": True})

    async with _client(handler) as client:
        engine = CloudflareWhisperEngine(make_settings(), client)
        result = await engine.transcribe(np.zeros(160, dtype=np.float32))

    assert result.text == "hello world"
    assert result.segments is None
    assert len(seen[0]["audio"]) == 320  # 160 int16 samples


async def test_cloudflare_whisper_rejection_is_connection_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"errors": [{"message": "Authentication error"}]})

    async with _client(handler) as client:
        engine = CloudflareWhisperEngine(make_settings(), client)
        with pytest.raises(BackendConnectionError, match="401"):
            await engine.transcribe(np.zeros(160, dtype=np.float32))


def test_cloudflare_whisper_validate_requires_credentials():
    engine = CloudflareWhisperEngine(make_settings(CLOUDFLARE_API_TOKEN=""))
    with pytest.raises(ConfigurationError):
        engine.validate()
