"""
Speaker label persistence, keyed by raw speaker tag (e.g. "Guest-1").

Labels outlive a recording session: renaming Guest-1 to "Tanaka" once makes every
later session show "Tanaka" for Guest-1. Last write wins; no eviction (process lifetime).
"""
from __future__ import annotations

import json
import logging
import os
import threading
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


class LabelStore(ABC):
    """Key-value store raw_tag -> label. Implementations may raise OSError."""

    @abstractmethod
    def get(self, raw_tag: str) -> str | None:
        ...

    @abstractmethod
    def set(self, raw_tag: str, label: str) -> None:
        ...

    @abstractmethod
    def delete(self, raw_tag: str) -> None:
        ...


class InMemoryLabelStore(LabelStore):
    """Labels for the lifetime of the process only."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._labels: dict[str, str] = dict(initial or {})

    def get(self, raw_tag: str) -> str | None:
        return self._labels.get(raw_tag)

    def set(self, raw_tag: str, label: str) -> None:
        self._labels[raw_tag] = label

    def delete(self, raw_tag: str) -> None:
        self._labels.pop(raw_tag, None)


class JsonFileLabelStore(LabelStore):
    """
    One JSON object on disk: {"Guest-1": "Tanaka", ...}.
    Loaded lazily on first access; every write rewrites the file.
    """

    def __init__(self, path: str) -> None:
        self._path = path
        self._labels: dict[str, str] | None = None
        self._lock = threading.Lock()

    @property
    def path(self) -> str:
        return self._path

    def get(self, raw_tag: str) -> str | None:
        with self._lock:
            return self._load().get(raw_tag)

    def set(self, raw_tag: str, label: str) -> None:
        with self._lock:
            labels = self._load()
            labels[raw_tag] = label
            self._write(labels)

    def delete(self, raw_tag: str) -> None:
        with self._lock:
            labels = self._load()
            if labels.pop(raw_tag, None) is not None:
                self._write(labels)

    def _load(self) -> dict[str, str]:
        if self._labels is not None:
            return self._labels
        labels: dict[str, str] = {}
        if os.path.isfile(self._path):
            try:
                with open(self._path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                if isinstance(data, dict):
                    labels = {str(k): str(v) for k, v in data.items() if v}
            except json.JSONDecodeError as e:
                logger.warning("Speaker label file %s is not valid JSON, starting empty: %s", self._path, e)
        self._labels = labels
        return labels

    def _write(self, labels: dict[str, str]) -> None:
        directory = os.path.dirname(self._path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self._path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(labels, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, self._path)
