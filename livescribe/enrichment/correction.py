"""
Correction backends: fix obvious misrecognitions in a batch of recent segments.

- HttpCorrectionClient: POST CORRECTION_URL with {segments, language, phraseList?}.
  Accepts a bare {corrections: [...]} body or one wrapped as {success, data: {corrections}}.
- WorkersAICorrectionClient: sends the correction prompt to a Cloudflare Workers AI LLM
  directly and parses its JSON answer.

Only segments that needed a fix come back; everything else is unchanged.
"""
from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any

import httpx
from pydantic import ValidationError

from livescribe.config import Settings, get_settings
from livescribe.errors import ConfigurationError, EnrichmentError
from livescribe.schemas.correction import CorrectionRequest, CorrectionResponse

logger = logging.getLogger(__name__)


class CorrectionBackend(ABC):
    @abstractmethod
    async def correct(self, request: CorrectionRequest) -> CorrectionResponse:
        """Raises EnrichmentError on failure, ConfigurationError when not configured."""
        ...


def _segment_ids(request: CorrectionRequest) -> list[int]:
    ids: list[int] = []
    for segment in request.segments:
        try:
            ids.append(int(segment.id))
        except ValueError:
            continue
    return ids


def parse_correction_body(data: Any, request: CorrectionRequest) -> CorrectionResponse:
    """Accept {corrections} or {success, data: {corrections}} / {success: false, error}."""
    if isinstance(data, dict) and "success" in data:
        if not data.get("success"):
            raise EnrichmentError(
                f"Correction failed: {data.get('error') or 'unknown error'}",
                segment_ids=_segment_ids(request),
                field="correction",
            )
        data = data.get("data") or {}
    if not isinstance(data, dict):
        raise EnrichmentError(
            "Correction response is not a JSON object", segment_ids=_segment_ids(request), field="correction"
        )
    try:
        return CorrectionResponse.model_validate(data)
    except ValidationError as e:
        raise EnrichmentError(
            f"Correction response has unexpected shape: {e.error_count()} errors",
            segment_ids=_segment_ids(request),
            field="correction",
        ) from e


class HttpCorrectionClient(CorrectionBackend):
    def __init__(self, settings: Settings | None = None, client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings or get_settings()
        self._client = client

    def validate(self) -> None:
        if not self._settings.CORRECTION_URL.strip():
            raise ConfigurationError("CORRECTION_URL is required for CORRECTION_BACKEND=http")

    async def correct(self, request: CorrectionRequest) -> CorrectionResponse:
        self.validate()
        if not request.segments:
            return CorrectionResponse()
        url = self._settings.CORRECTION_URL
        body = request.model_dump(by_alias=True, exclude_none=True)
        try:
            if self._client is not None:
                resp = await self._client.post(url, json=body)
            else:
                async with httpx.AsyncClient(timeout=30.0) as client:
                    resp = await client.post(url, json=body)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            raise EnrichmentError(
                f"Correction API error: {e.response.status_code}",
                segment_ids=_segment_ids(request),
                field="correction",
            ) from e
        except httpx.HTTPError as e:
            raise EnrichmentError(
                f"Correction API unreachable: {e}", segment_ids=_segment_ids(request), field="correction"
            ) from e
        except ValueError as e:
            raise EnrichmentError(
                "Correction API returned invalid JSON", segment_ids=_segment_ids(request), field="correction"
            ) from e
        return parse_correction_body(data, request)


# --- Workers AI: the correction prompt runs against an LLM directly ---

_CORRECTION_SYSTEM_PROMPT = """You proofread speech recognition output in real time.
Check the given utterance segments and fix ONLY obvious misrecognitions.

Fix:
- Homophone errors (a word that sounds the same but is wrong in context)
- Clear mishearings
- Unnatural word boundaries
- Misrecognized proper nouns, when the context makes the right one clear

Do NOT:
- Change what the speaker meant or said
- Change style or tone (keep it conversational)
- Rewrite into "more correct" grammar
- Touch segments that need no fix

Output JSON only:
{
  "corrections": [
    { "id": "segment id", "original": "original text", "corrected": "corrected text" }
  ]
}

If nothing needs fixing, return "corrections": [].
Only include segments that were changed."""


def _language_instruction(language: str) -> str:
    if (language or "").lower().startswith("ja"):
        return ""
    return "\n\nImportant: write each correction in the same language as the original text."


def _phrase_hint(phrases: list[str] | None) -> str:
    if not phrases:
        return ""
    return "\n\nFrequently used proper nouns and terms (reference):\n" + ", ".join(phrases)


def _extract_json_object(raw: str) -> Any:
    """Extract JSON from model response (may be wrapped in markdown code block)."""
    raw = raw.strip()
    if raw.startswith("```"):
        raw = re.sub(r"^```(?:json)?\s*", "", raw)
        raw = re.sub(r"\s*```\s*$", "", raw)
    return json.loads(raw)


class WorkersAICorrectionClient(CorrectionBackend):
    """Correction via Cloudflare Workers AI chat model (CORRECTION_CF_MODEL)."""

    def __init__(self, settings: Settings | None = None, client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings or get_settings()
        self._client = client

    def validate(self) -> None:
        if not self._settings.CLOUDFLARE_ACCOUNT_ID.strip() or not self._settings.CLOUDFLARE_API_TOKEN.strip():
            raise ConfigurationError("CLOUDFLARE_ACCOUNT_ID and CLOUDFLARE_API_TOKEN are required for correction")

    async def correct(self, request: CorrectionRequest) -> CorrectionResponse:
        self.validate()
        if not request.segments:
            return CorrectionResponse()
        settings = self._settings
        system_prompt = (
            _CORRECTION_SYSTEM_PROMPT + _language_instruction(request.language) + _phrase_hint(request.phrase_list)
        )
        segments_text = "\n".join(f"[{s.id}] {s.text}" for s in request.segments)
        url = (
            f"https://api.cloudflare.com/client/v4/accounts/{settings.CLOUDFLARE_ACCOUNT_ID}"
            f"/ai/run/{settings.CORRECTION_CF_MODEL}"
        )
        payload = {
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": f"Check the following utterance segments:\n\n{segments_text}"},
            ],
            "max_tokens": settings.CORRECTION_MAX_TOKENS,
            "temperature": 0.2,
        }
        headers = {"Authorization": f"Bearer {settings.CLOUDFLARE_API_TOKEN}", "Content-Type": "application/json"}
        ids = _segment_ids(request)

        try:
            if self._client is not None:
                resp = await self._client.post(url, json=payload, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=60.0) as client:
                    resp = await client.post(url, json=payload, headers=headers)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            raise EnrichmentError(
                f"Workers AI correction error: {e.response.status_code}", segment_ids=ids, field="correction"
            ) from e
        except httpx.HTTPError as e:
            raise EnrichmentError(f"Workers AI unreachable: {e}", segment_ids=ids, field="correction") from e
        except ValueError as e:
            raise EnrichmentError("Workers AI returned invalid JSON", segment_ids=ids, field="correction") from e

        # Workers AI returns { "result": { "response": "..." } } or direct { "response": "..." }
        result = data.get("result", data) if isinstance(data, dict) else data
        if isinstance(result, dict):
            content = result.get("response", "") or ""
        elif isinstance(result, str):
            content = result
        else:
            content = ""
        if isinstance(content, dict):
            # Some models already return parsed JSON
            return parse_correction_body(content, request)
        content = (content or "").strip()
        if not content:
            raise EnrichmentError("Workers AI returned empty response", segment_ids=ids, field="correction")

        try:
            parsed = _extract_json_object(content)
        except json.JSONDecodeError as e:
            logger.warning("Correction response was not valid JSON: %s", e)
            raise EnrichmentError("Correction response was not valid JSON", segment_ids=ids, field="correction") from e
        return parse_correction_body(parsed, request)
