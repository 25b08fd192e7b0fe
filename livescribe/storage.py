"""
Storage sink: where a finished transcript goes when the session stops.

- JsonFileStorageSink: one file per session, {TRANSCRIPT_DIR}/{session_id}.json,
  written in an executor so the event loop never blocks on disk I/O.
- NoOpStorageSink: when transcript saving is disabled.
A sink failure is raised as StorageError; the in-memory transcript stays intact.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
import uuid
from abc import ABC, abstractmethod
from typing import Optional

from livescribe.config import Settings, get_settings
from livescribe.errors import StorageError
from livescribe.schemas.transcript import TranscriptPayload

logger = logging.getLogger(__name__)


class StorageSink(ABC):
    @abstractmethod
    async def save(self, payload: TranscriptPayload) -> Optional[str]:
        """Persist a finished transcript. Returns a locator (e.g. file path) or None."""
        ...


class NoOpStorageSink(StorageSink):
    async def save(self, payload: TranscriptPayload) -> Optional[str]:
        return None


class JsonFileStorageSink(StorageSink):
    def __init__(self, transcript_dir: str) -> None:
        self._transcript_dir = transcript_dir

    async def save(self, payload: TranscriptPayload) -> Optional[str]:
        session_id = payload.session_id or uuid.uuid4().hex[:12]
        path = os.path.join(self._transcript_dir, f"{session_id}.json")
        data = payload.model_dump(by_alias=True, exclude_none=True)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._write, path, data)
        except OSError as e:
            logger.warning("Failed to save transcript %s: %s", path, e)
            raise StorageError(f"Could not save transcript to {path}: {e}") from e
        logger.info("Transcript saved: %s (%s segments)", path, len(payload.segments))
        return path

    def _write(self, path: str, data: dict) -> None:
        os.makedirs(self._transcript_dir, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)


def create_storage_sink(settings: Settings | None = None) -> StorageSink:
    """JSON file sink when TRANSCRIPT_SAVE_ENABLED is true; else no-op."""
    settings = settings or get_settings()
    if not settings.TRANSCRIPT_SAVE_ENABLED:
        return NoOpStorageSink()
    return JsonFileStorageSink(settings.TRANSCRIPT_DIR)
