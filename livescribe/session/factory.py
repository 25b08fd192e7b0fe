"""Wire a LiveSession from Settings: recognition engine, enrichment backends, storage."""
from __future__ import annotations

import logging
from typing import Any

from livescribe.asr.base import ASREngine
from livescribe.asr.cloudflare import CloudflareWhisperEngine
from livescribe.asr.local_whisper import LocalWhisperEngine
from livescribe.audio.adapter import AudioSource
from livescribe.config import Settings, get_settings, require_recognition_credentials
from livescribe.enrichment.correction import CorrectionBackend, HttpCorrectionClient, WorkersAICorrectionClient
from livescribe.enrichment.translation import TranslationBackend, TranslatorClient
from livescribe.recognition.whisper import WhisperBackend
from livescribe.session.controller import LiveSession
from livescribe.speakers.label_store import JsonFileLabelStore
from livescribe.speakers.tracker import SpeakerTracker
from livescribe.storage import StorageSink, create_storage_sink

logger = logging.getLogger(__name__)


def create_asr_engine(settings: Settings, model: Any = None) -> ASREngine:
    """Cloudflare engine, or the local engine around an already-loaded faster-whisper model."""
    if settings.RECOGNITION_BACKEND == "cloudflare":
        return CloudflareWhisperEngine(settings)
    return LocalWhisperEngine(model=model, settings=settings)


def create_correction_backend(settings: Settings) -> CorrectionBackend | None:
    if not settings.CORRECTION_ENABLED:
        return None
    if settings.CORRECTION_BACKEND == "cloudflare":
        if not settings.CLOUDFLARE_ACCOUNT_ID.strip() or not settings.CLOUDFLARE_API_TOKEN.strip():
            logger.info("Correction disabled: Cloudflare credentials not set")
            return None
        return WorkersAICorrectionClient(settings)
    if not settings.CORRECTION_URL.strip():
        logger.info("Correction disabled: CORRECTION_URL not set")
        return None
    return HttpCorrectionClient(settings)


def create_translation_backend(settings: Settings) -> TranslationBackend | None:
    if not settings.TRANSLATOR_KEY.strip():
        return None
    return TranslatorClient(settings)


def create_live_session(
    source: AudioSource,
    settings: Settings | None = None,
    model: Any = None,
    tracker: SpeakerTracker | None = None,
    storage: StorageSink | None = None,
) -> LiveSession:
    """
    Build a LiveSession for one audio source.
    Raises ConfigurationError when recognition credentials are missing; nothing is started.
    """
    settings = settings or get_settings()
    require_recognition_credentials(settings)
    engine = create_asr_engine(settings, model)
    if tracker is None:
        tracker = SpeakerTracker(JsonFileLabelStore(settings.SPEAKER_LABEL_FILE))
    return LiveSession(
        source,
        backend_factory=lambda: WhisperBackend(engine, settings),
        settings=settings,
        tracker=tracker,
        correction=create_correction_backend(settings),
        translation=create_translation_backend(settings),
        storage=storage if storage is not None else create_storage_sink(settings),
    )
