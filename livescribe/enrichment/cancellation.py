"""
Per-call cancellation scopes for enrichment calls.

One key = one slot (the session's correction pass, or one (segment, language) translation).
supersede(key) cancels and evicts the previous holder before registering the new one, so
two calls never race into the same field: only the current token's result may be applied.
"""
from __future__ import annotations

import asyncio
from typing import Hashable


class CancellationToken:
    def __init__(self, key: Hashable) -> None:
        self.key = key
        self._cancelled = False
        self._task: asyncio.Task | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def bind(self, task: asyncio.Task) -> None:
        """Attach the task doing the work; cancel() then cancels it as well."""
        self._task = task
        if self._cancelled:
            task.cancel()

    def cancel(self) -> None:
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()


class CallRegistry:
    def __init__(self) -> None:
        self._tokens: dict[Hashable, CancellationToken] = {}

    def supersede(self, key: Hashable) -> CancellationToken:
        """Cancel + evict whatever holds key, then register and return a fresh token."""
        prior = self._tokens.pop(key, None)
        if prior is not None:
            prior.cancel()
        token = CancellationToken(key)
        self._tokens[key] = token
        return token

    def is_current(self, token: CancellationToken) -> bool:
        return not token.cancelled and self._tokens.get(token.key) is token

    def release(self, token: CancellationToken) -> None:
        """Call finished: free the slot if token still holds it."""
        if self._tokens.get(token.key) is token:
            del self._tokens[token.key]

    def cancel_all(self) -> None:
        tokens = list(self._tokens.values())
        self._tokens.clear()
        for token in tokens:
            token.cancel()

    def __contains__(self, key: Hashable) -> bool:
        return key in self._tokens

    def __len__(self) -> int:
        return len(self._tokens)
