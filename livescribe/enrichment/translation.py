"""
Translation backend: Microsoft Translator REST API v3 over httpx.

POST {endpoint}/translate?api-version=3.0&from=ja&to=en
Headers: Ocp-Apim-Subscription-Key / Ocp-Apim-Subscription-Region
Body: [{"text": "..."}]  → [{"translations": [{"text": "...", "to": "en"}]}]
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from livescribe.config import Settings, get_settings, require_translator_credentials
from livescribe.errors import EnrichmentError

logger = logging.getLogger(__name__)

# Region-qualified Chinese keeps its script; everything else is reduced to the primary subtag.
_LANGUAGE_OVERRIDES = {
    "zh-cn": "zh-Hans",
    "zh-sg": "zh-Hans",
    "zh-hans": "zh-Hans",
    "zh-tw": "zh-Hant",
    "zh-hk": "zh-Hant",
    "zh-hant": "zh-Hant",
}

_QUOTA_MESSAGE = "Translation service limit reached or key rejected; try again later"


def normalize_language(code: str) -> str:
    """ja-JP → ja, en-US → en, zh-TW → zh-Hant."""
    code = (code or "").strip()
    if not code:
        return code
    override = _LANGUAGE_OVERRIDES.get(code.lower())
    if override:
        return override
    return code.split("-")[0].lower()


class TranslationBackend(ABC):
    """translate(text, from, to) -> translated text. No ordering guarantees across calls."""

    @abstractmethod
    async def translate(self, text: str, from_lang: Optional[str], to_lang: str) -> str:
        """Raises EnrichmentError on failure, ConfigurationError when not configured."""
        ...


def _error_message(resp: httpx.Response) -> str:
    message = ""
    try:
        body = resp.json()
        if isinstance(body, dict) and isinstance(body.get("error"), dict):
            message = str(body["error"].get("message") or "")
    except ValueError:
        pass
    if resp.status_code in (401, 403) or "quota" in message.lower():
        return _QUOTA_MESSAGE
    if message:
        return f"Translation error: {message}"
    return f"Translation error: {resp.status_code} {resp.reason_phrase}"


class TranslatorClient(TranslationBackend):
    def __init__(self, settings: Settings | None = None, client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings or get_settings()
        self._client = client

    def validate(self) -> None:
        require_translator_credentials(self._settings)

    async def translate(self, text: str, from_lang: Optional[str], to_lang: str) -> str:
        self.validate()
        if not (text or "").strip():
            return ""
        settings = self._settings
        url = f"{settings.TRANSLATOR_ENDPOINT.rstrip('/')}/translate"
        params = {"api-version": "3.0", "to": normalize_language(to_lang)}
        if from_lang:
            params["from"] = normalize_language(from_lang)
        headers = {
            "Ocp-Apim-Subscription-Key": settings.TRANSLATOR_KEY,
            "Ocp-Apim-Subscription-Region": settings.TRANSLATOR_REGION,
            "Content-Type": "application/json",
        }
        body = [{"text": text}]

        try:
            if self._client is not None:
                resp = await self._client.post(url, params=params, headers=headers, json=body)
            else:
                async with httpx.AsyncClient(timeout=15.0) as client:
                    resp = await client.post(url, params=params, headers=headers, json=body)
        except httpx.HTTPError as e:
            raise EnrichmentError(f"Translator unreachable: {e}", field="translation") from e

        if resp.status_code >= 400:
            message = _error_message(resp)
            logger.warning("Translation failed (%s): %s", resp.status_code, message)
            raise EnrichmentError(message, field="translation")

        try:
            data = resp.json()
            return str(data[0]["translations"][0]["text"] or "")
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise EnrichmentError("Translator returned an unexpected response", field="translation") from e
