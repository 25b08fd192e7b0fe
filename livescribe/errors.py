"""
Error taxonomy for the live session pipeline.

- ConfigurationError: missing/invalid credentials; the session never starts.
- BackendConnectionError: backend unreachable or rejected the request; ends the session, no auto-retry.
- RecognitionError: backend cancelled mid-session; ends the session, transcript so far is kept.
- AudioSourceError: the capture source failed; ends the session like a recognition error.
- EnrichmentError: correction/translation failure; local to the affected segment fields.
- StorageError: the storage sink rejected the finished transcript; surfaced to the caller.

Superseded enrichment calls are cancelled with asyncio.CancelledError and reported as
Outcome.CANCELLED by the fan-out, never as an error.
"""
from __future__ import annotations

from typing import Sequence


class LivescribeError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(LivescribeError):
    """Missing or invalid configuration. Raised before any network call."""


class BackendConnectionError(LivescribeError, ConnectionError):
    """Recognition/translation/correction backend unreachable or rejected the request."""


class RecognitionError(LivescribeError):
    """Recognition backend cancelled the session with an error."""


class AudioSourceError(LivescribeError):
    """Audio capture source ended with an error."""


class EnrichmentError(LivescribeError):
    """Correction or translation failed for some segments."""

    def __init__(self, message: str, segment_ids: Sequence[int] = (), field: str = "") -> None:
        super().__init__(message)
        self.segment_ids = tuple(segment_ids)
        self.field = field


class StorageError(LivescribeError):
    """Storage sink failed to persist a finished transcript."""


class SessionStateError(LivescribeError, RuntimeError):
    """Operation not allowed in the current state (programming error, reject fast)."""
