"""
CloudflareWhisperEngine: Whisper via Cloudflare Workers AI.

Accepts float32 audio; converts to PCM bytes for the API.
No segment timing: each call returns one block of text for the whole chunk.
"""
from __future__ import annotations

import logging

import httpx
import numpy as np

from livescribe.asr.base import ASREngine, ASRResult
from livescribe.audio.resample import float32_to_int16
from livescribe.config import Settings, get_settings
from livescribe.errors import BackendConnectionError, ConfigurationError

logger = logging.getLogger(__name__)


def _extract_text(data: dict) -> str:
    result = data.get("result", data)
    if isinstance(result, dict):
        text = result.get("text", result.get("transcript", ""))
    elif isinstance(result, str):
        text = result
    else:
        text = ""
    return (text or "").strip()


class CloudflareWhisperEngine(ASREngine):
    """Remote Whisper via Cloudflare Workers AI over httpx."""

    def __init__(self, settings: Settings | None = None, client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings or get_settings()
        self._client = client

    def validate(self) -> None:
        if not self._settings.CLOUDFLARE_ACCOUNT_ID.strip() or not self._settings.CLOUDFLARE_API_TOKEN.strip():
            raise ConfigurationError("CLOUDFLARE_ACCOUNT_ID and CLOUDFLARE_API_TOKEN are required for recognition")

    async def transcribe(
        self,
        audio: np.ndarray,
        language: str | None = None,
        prompt: str | None = None,
    ) -> ASRResult:
        """POST PCM bytes to Workers AI. language/prompt are not supported by this model."""
        self.validate()
        settings = self._settings
        url = (
            f"https://api.cloudflare.com/client/v4/accounts/{settings.CLOUDFLARE_ACCOUNT_ID}"
            f"/ai/run/{settings.CLOUDFLARE_WHISPER_MODEL}"
        )
        headers = {"Authorization": f"Bearer {settings.CLOUDFLARE_API_TOKEN}"}
        body = {"audio": list(float32_to_int16(audio).tobytes())}

        try:
            if self._client is not None:
                resp = await self._client.post(url, headers=headers, json=body)
            else:
                async with httpx.AsyncClient(timeout=30.0) as client:
                    resp = await client.post(url, headers=headers, json=body)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            raise BackendConnectionError(
                f"Cloudflare whisper rejected request: {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise BackendConnectionError(f"Cloudflare whisper unreachable: {e}") from e
        except ValueError as e:
            raise BackendConnectionError(f"Cloudflare whisper returned invalid JSON: {e}") from e

        return ASRResult(text=_extract_text(data), segments=None)

    @property
    def sample_rate(self) -> int:
        return self._settings.SAMPLE_RATE
