"""
EnrichmentFanOut: correction and translation calls against existing segments.

- Calls run as independent asyncio tasks; none of them blocks new Final events.
- Each call owns a CancellationToken in a CallRegistry slot:
  one slot for the session's correction pass, one per (segment, target language).
  A newer call supersedes the older one; a superseded call's result is never applied,
  even when its response arrives last.
- Results are annotate-only patches through the SegmentReconciler. Failure marks the
  affected fields FAILED and keeps their content; there is no retry.

Automatic policy (per recording session):
- every new segment is translated into each configured target language;
- correction runs in batches: once CORRECTION_BATCH_SIZE new segments have accumulated,
  a CORRECTION_DEBOUNCE_SECONDS timer (restarted by every newer segment) sends the last
  CORRECTION_CONTEXT_WINDOW segments still pending; at most CORRECTION_MAX_CALLS per session;
- a correction that changes text re-translates that segment.
"""
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Hashable, Iterable, Optional, Sequence

from livescribe.config import Settings, get_settings
from livescribe.enrichment.cancellation import CallRegistry, CancellationToken
from livescribe.enrichment.correction import CorrectionBackend
from livescribe.enrichment.translation import TranslationBackend
from livescribe.errors import ConfigurationError, LivescribeError
from livescribe.schemas.correction import CorrectionRequest, CorrectionSegment
from livescribe.transcript.models import EnrichmentState, Segment
from livescribe.transcript.reconciler import SegmentReconciler

logger = logging.getLogger(__name__)

CORRECTION_SLOT: Hashable = ("correction",)


def _translation_slot(segment_id: int, language: str) -> Hashable:
    return ("translation", segment_id, language)


class Outcome(str, Enum):
    APPLIED = "applied"
    FAILED = "failed"
    CANCELLED = "cancelled"  # superseded or torn down; nothing was applied
    DROPPED = "dropped"  # target segment no longer exists


class EnrichmentFanOut:
    def __init__(
        self,
        reconciler: SegmentReconciler,
        correction: CorrectionBackend | None = None,
        translation: TranslationBackend | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._reconciler = reconciler
        self._correction = correction
        self._translation = translation
        self._settings = settings or get_settings()
        self._registry = CallRegistry()
        self._tasks: set[asyncio.Task] = set()
        self._debounce: asyncio.TimerHandle | None = None

        self._language = self._settings.RECOGNITION_LANGUAGE
        self._phrase_hints: tuple[str, ...] = tuple(self._settings.phrase_list)
        self._target_languages: tuple[str, ...] = tuple(self._settings.target_languages)
        self._new_since_correction = 0
        self._correction_calls = 0

    @property
    def correction_calls(self) -> int:
        return self._correction_calls

    @property
    def in_flight(self) -> int:
        return sum(1 for task in self._tasks if not task.done())

    def configure(
        self,
        language: Optional[str] = None,
        phrase_hints: Optional[Sequence[str]] = None,
        target_languages: Optional[Sequence[str]] = None,
    ) -> None:
        """Per-session options; None keeps the current value."""
        if language:
            self._language = language
        if phrase_hints is not None:
            self._phrase_hints = tuple(phrase_hints)
        if target_languages is not None:
            self._target_languages = tuple(lang for lang in target_languages if lang)

    # --- automatic policy ---

    def on_segment_added(self, segment: Segment) -> None:
        """Called once per new Final segment, in recognition order."""
        if self._translation is not None:
            for language in self._target_languages:
                self.request_translation(segment.id, language)

        if self._correction is None or not self._settings.CORRECTION_ENABLED:
            return
        self._new_since_correction += 1
        if self._new_since_correction < self._settings.CORRECTION_BATCH_SIZE:
            return
        if self._correction_calls >= self._settings.CORRECTION_MAX_CALLS:
            return
        self._cancel_debounce()
        loop = asyncio.get_running_loop()
        self._debounce = loop.call_later(self._settings.CORRECTION_DEBOUNCE_SECONDS, self._on_debounce)

    def _on_debounce(self) -> None:
        self._debounce = None
        if self._correction_calls >= self._settings.CORRECTION_MAX_CALLS:
            logger.info("Correction call limit reached (%s)", self._settings.CORRECTION_MAX_CALLS)
            return
        ids = self._pending_correction_ids()
        if not ids:
            return
        self._new_since_correction = 0
        self.request_correction(ids)

    def _pending_correction_ids(self) -> list[int]:
        window = self._reconciler.state.segments[-self._settings.CORRECTION_CONTEXT_WINDOW :]
        return [s.id for s in window if s.correction_state == EnrichmentState.PENDING]

    # --- calls ---

    def request_correction(
        self,
        segment_ids: Optional[Iterable[int]] = None,
        language: Optional[str] = None,
        phrase_hints: Optional[Sequence[str]] = None,
    ) -> "asyncio.Task[Outcome]":
        """
        Correct a batch (default: recent segments still pending). Supersedes any
        correction in flight. Raises ConfigurationError when no correction backend is set.
        """
        if self._correction is None:
            raise ConfigurationError("Correction is not configured")
        ids = list(segment_ids) if segment_ids is not None else self._pending_correction_ids()
        token = self._registry.supersede(CORRECTION_SLOT)
        self._correction_calls += 1
        for segment_id in ids:
            self._reconciler.mark_correction(segment_id, EnrichmentState.PENDING)
        hints = tuple(phrase_hints) if phrase_hints is not None else self._phrase_hints
        return self._spawn(token, self._run_correction(token, ids, language or self._language, hints))

    def request_translation(
        self,
        segment_id: int,
        to_lang: str,
        from_lang: Optional[str] = None,
        text: Optional[str] = None,
    ) -> "asyncio.Task[Outcome]":
        """
        Translate one segment into to_lang (default source text: the segment's current text).
        The entry is marked pending first; its previous text stays until the new one lands.
        """
        if self._translation is None:
            raise ConfigurationError("Translator is not configured")
        if self._reconciler.state.get(segment_id) is None:
            return self._spawn(None, self._immediate(Outcome.DROPPED))
        token = self._registry.supersede(_translation_slot(segment_id, to_lang))
        self._reconciler.patch_translation(segment_id, to_lang, None, EnrichmentState.PENDING)
        return self._spawn(
            token, self._run_translation(token, segment_id, to_lang, from_lang or self._language, text)
        )

    async def _run_correction(
        self,
        token: CancellationToken,
        segment_ids: list[int],
        language: str,
        phrase_hints: tuple[str, ...],
    ) -> Outcome:
        state = self._reconciler.state
        segments = [s for s in (state.get(i) for i in segment_ids) if s is not None]
        if not segments:
            self._registry.release(token)
            return Outcome.DROPPED
        request = CorrectionRequest(
            segments=[CorrectionSegment(id=str(s.id), text=s.text) for s in segments],
            language=language,
            phrase_list=list(phrase_hints) or None,
        )
        try:
            response = await asyncio.wait_for(
                self._correction.correct(request), timeout=self._settings.ENRICHMENT_TIMEOUT_SECONDS
            )
        except asyncio.CancelledError:
            return Outcome.CANCELLED
        except (LivescribeError, asyncio.TimeoutError) as e:
            if not self._registry.is_current(token):
                return Outcome.CANCELLED
            self._registry.release(token)
            logger.warning("Correction failed for segments %s: %s", [s.id for s in segments], e or "timeout")
            for segment in segments:
                self._reconciler.mark_correction(segment.id, EnrichmentState.FAILED)
            return Outcome.FAILED

        if not self._registry.is_current(token):
            return Outcome.CANCELLED
        self._registry.release(token)

        corrected = {item.id: item.corrected for item in response.corrections}
        changed: list[int] = []
        present = 0
        for segment in segments:
            current = self._reconciler.state.get(segment.id)
            if current is None:
                continue
            present += 1
            new_text = (corrected.get(str(segment.id)) or "").strip()
            if new_text and new_text != current.text:
                self._reconciler.patch_text(segment.id, new_text)
                changed.append(segment.id)
            else:
                # Checked and unchanged
                self._reconciler.mark_correction(segment.id, EnrichmentState.APPLIED)
        if not present:
            return Outcome.DROPPED
        if changed:
            logger.info("Correction applied to segments %s", changed)
            self._retranslate(changed)
        return Outcome.APPLIED

    async def _run_translation(
        self,
        token: CancellationToken,
        segment_id: int,
        to_lang: str,
        from_lang: Optional[str],
        text: Optional[str],
    ) -> Outcome:
        segment = self._reconciler.state.get(segment_id)
        if segment is None:
            self._registry.release(token)
            return Outcome.DROPPED
        source_text = text if text is not None else segment.text
        try:
            translated = await asyncio.wait_for(
                self._translation.translate(source_text, from_lang, to_lang),
                timeout=self._settings.ENRICHMENT_TIMEOUT_SECONDS,
            )
        except asyncio.CancelledError:
            return Outcome.CANCELLED
        except (LivescribeError, asyncio.TimeoutError) as e:
            if not self._registry.is_current(token):
                return Outcome.CANCELLED
            self._registry.release(token)
            logger.warning("Translation of segment %s to %s failed: %s", segment_id, to_lang, e or "timeout")
            if not self._reconciler.patch_translation(segment_id, to_lang, None, EnrichmentState.FAILED):
                return Outcome.DROPPED
            return Outcome.FAILED

        if not self._registry.is_current(token):
            return Outcome.CANCELLED
        self._registry.release(token)
        if not self._reconciler.patch_translation(segment_id, to_lang, translated, EnrichmentState.APPLIED):
            return Outcome.DROPPED
        return Outcome.APPLIED

    def _retranslate(self, segment_ids: Iterable[int]) -> None:
        if self._translation is None:
            return
        for segment_id in segment_ids:
            segment = self._reconciler.state.get(segment_id)
            if segment is None:
                continue
            for language in list(segment.translations):
                self.request_translation(segment_id, language)

    @staticmethod
    async def _immediate(outcome: Outcome) -> Outcome:
        return outcome

    def _spawn(self, token: CancellationToken | None, coro) -> "asyncio.Task[Outcome]":
        task = asyncio.create_task(coro)
        if token is not None:
            token.bind(task)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Enrichment task failed unexpectedly: %s", exc, exc_info=exc)

    # --- teardown ---

    async def drain(self, timeout: float) -> None:
        """Give in-flight calls up to timeout seconds to land, then cancel the rest."""
        self._cancel_debounce()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + max(0.0, timeout)
        while True:
            pending = [task for task in self._tasks if not task.done()]
            remaining = deadline - loop.time()
            if not pending or remaining <= 0:
                break
            # Re-translations may be spawned while we wait, hence the loop
            await asyncio.wait(pending, timeout=remaining)
        leftover = [task for task in self._tasks if not task.done()]
        self.cancel_all()
        if leftover:
            logger.info("Cancelled %s enrichment calls still in flight", len(leftover))
            await asyncio.gather(*leftover, return_exceptions=True)

    def cancel_all(self) -> None:
        """Cancel the debounce timer and every call in flight."""
        self._cancel_debounce()
        self._registry.cancel_all()
        for task in list(self._tasks):
            if not task.done():
                task.cancel()

    def reset(self) -> None:
        """New recording session: cancel everything and restart the batch counters."""
        self.cancel_all()
        self._new_since_correction = 0
        self._correction_calls = 0

    def _cancel_debounce(self) -> None:
        if self._debounce is not None:
            self._debounce.cancel()
            self._debounce = None
