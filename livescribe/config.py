"""Application configuration. Loads from env vars."""
from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings

from livescribe.errors import ConfigurationError


def _split_csv(value: str) -> list[str]:
    return [part.strip() for part in (value or "").split(",") if part.strip()]


class Settings(BaseSettings):
    """App settings. Override via environment variables."""

    # Audio: PCM 16-bit mono, 16kHz (what the recognition backend requires)
    SAMPLE_RATE: int = 16000
    SAMPLE_WIDTH: int = 2  # 16-bit
    CHANNELS: int = 1
    # Frame: 4096 samples per AudioFrame (~256ms @ 16kHz)
    BLOCK_SAMPLES: int = 4096
    # Native rate of float32 audio sent by the client (browsers default to 48kHz)
    CLIENT_SAMPLE_RATE: int = 48000

    # Recognition backend: "local" (faster-whisper) | "cloudflare" (Workers AI whisper)
    RECOGNITION_BACKEND: Literal["local", "cloudflare"] = "cloudflare"
    RECOGNITION_LANGUAGE: str = "ja-JP"
    PHRASE_LIST: str = ""  # comma-separated proper nouns / jargon biasing recognition and correction

    # Cloudflare Workers AI: ASR (RECOGNITION_BACKEND=cloudflare) and LLM correction (CORRECTION_BACKEND=cloudflare)
    CLOUDFLARE_ACCOUNT_ID: str = ""
    CLOUDFLARE_API_TOKEN: str = ""
    CLOUDFLARE_WHISPER_MODEL: str = "@cf/openai/whisper"

    # Local Whisper (RECOGNITION_BACKEND=local), model loaded once at startup
    LOCAL_WHISPER_MODEL: str = "base"  # base | small | medium | large-v3
    LOCAL_WHISPER_DEVICE: Literal["cpu", "cuda"] = "cpu"
    LOCAL_WHISPER_COMPUTE_TYPE: Literal["int8", "float16"] = "int8"
    LOCAL_WHISPER_BEAM_SIZE: int = 5

    # Rolling buffer: transcribe every STEP over the last WINDOW seconds of audio
    STT_WINDOW_SECONDS: float = 5.0
    STT_STEP_SECONDS: float = 1.0
    STT_MIN_CHUNK_SECONDS: float = 0.5  # do not transcribe chunks < 500ms (prevent hallucination)
    STT_COMMIT_AGE_SECONDS: float = 2.0  # segments ending before (current_audio_time - this) become final

    # Gap-based speaker tags for backends that do not report speakers
    DIARIZATION_ENABLED: bool = True
    DIARIZATION_SPEAKER_GAP_SEC: float = 0.5
    DIARIZATION_MAX_SPEAKERS: int = 2

    # Translator (Microsoft Translator REST v3)
    TRANSLATOR_KEY: str = ""
    TRANSLATOR_REGION: str = "global"
    TRANSLATOR_ENDPOINT: str = "https://api.cognitive.microsofttranslator.com"
    TRANSLATION_TARGET_LANGUAGES: str = ""  # comma-separated; every final segment is translated into each

    # Realtime correction: "http" posts to CORRECTION_URL, "cloudflare" prompts a Workers AI LLM
    CORRECTION_ENABLED: bool = True
    CORRECTION_BACKEND: Literal["http", "cloudflare"] = "http"
    CORRECTION_URL: str = ""
    CORRECTION_CF_MODEL: str = "@cf/meta/llama-3.1-8b-instruct"
    CORRECTION_MAX_TOKENS: int = 2000
    CORRECTION_BATCH_SIZE: int = 5  # new segments before a correction pass is scheduled
    CORRECTION_DEBOUNCE_SECONDS: float = 3.0
    CORRECTION_MAX_CALLS: int = 50  # per recording session
    CORRECTION_CONTEXT_WINDOW: int = 10  # only the most recent N segments are sent

    # Background calls have no natural end in a long-running process; bound them.
    ENRICHMENT_TIMEOUT_SECONDS: float = 30.0
    STOP_FLUSH_TIMEOUT_SECONDS: float = 2.0
    # Pause/stop wait this long for pending finals before tearing recognition down
    RECOGNITION_STOP_TIMEOUT_SECONDS: float = 30.0

    # Speaker labels survive across sessions, keyed by raw speaker tag
    SPEAKER_LABEL_FILE: str = "./speaker_labels.json"

    # Finished transcripts: one JSON file per session
    TRANSCRIPT_SAVE_ENABLED: bool = True
    TRANSCRIPT_DIR: str = "./transcripts"
    TRANSCRIPT_ADD_TIMESTAMPS: bool = True  # prefix each exported line with [MM:SS.ss]

    # Logging: level (DEBUG, INFO, WARNING, ERROR); file path empty = console only
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    class Config:
        env_file = ".env"
        extra = "ignore"

    @property
    def phrase_list(self) -> list[str]:
        return _split_csv(self.PHRASE_LIST)

    @property
    def target_languages(self) -> list[str]:
        return _split_csv(self.TRANSLATION_TARGET_LANGUAGES)


def get_settings() -> Settings:
    return Settings()


def require_recognition_credentials(settings: Settings) -> None:
    """Raise ConfigurationError when the selected recognition backend lacks credentials."""
    if settings.RECOGNITION_BACKEND == "cloudflare":
        if not settings.CLOUDFLARE_ACCOUNT_ID.strip() or not settings.CLOUDFLARE_API_TOKEN.strip():
            raise ConfigurationError(
                "CLOUDFLARE_ACCOUNT_ID and CLOUDFLARE_API_TOKEN are required for RECOGNITION_BACKEND=cloudflare"
            )
    elif not settings.LOCAL_WHISPER_MODEL.strip():
        raise ConfigurationError("LOCAL_WHISPER_MODEL is required for RECOGNITION_BACKEND=local")


def require_translator_credentials(settings: Settings) -> None:
    """Raise ConfigurationError when translator key/region/endpoint are empty."""
    missing = [
        name
        for name in ("TRANSLATOR_KEY", "TRANSLATOR_REGION", "TRANSLATOR_ENDPOINT")
        if not (getattr(settings, name) or "").strip()
    ]
    if missing:
        raise ConfigurationError(f"Translator is not configured: {', '.join(missing)} required")
