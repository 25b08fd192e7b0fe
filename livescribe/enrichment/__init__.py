"""Asynchronous correction and translation of finalized segments."""
from livescribe.enrichment.cancellation import CallRegistry, CancellationToken
from livescribe.enrichment.correction import (
    CorrectionBackend,
    HttpCorrectionClient,
    WorkersAICorrectionClient,
)
from livescribe.enrichment.fanout import EnrichmentFanOut, Outcome
from livescribe.enrichment.translation import TranslationBackend, TranslatorClient, normalize_language

__all__ = [
    "CallRegistry",
    "CancellationToken",
    "CorrectionBackend",
    "EnrichmentFanOut",
    "HttpCorrectionClient",
    "Outcome",
    "TranslationBackend",
    "TranslatorClient",
    "WorkersAICorrectionClient",
    "normalize_language",
]
