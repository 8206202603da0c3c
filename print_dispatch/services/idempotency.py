"""Remember accepted print requests so a retried request does not print twice."""
from __future__ import annotations

import asyncio
import threading
from collections import OrderedDict
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional


class IdempotencyCache:
    """Bounded map of idempotency key -> response body, oldest evicted first.

    Only accepted jobs are stored. A timed-out job has an unknown outcome, so
    a retry of it is allowed through.

    Requests sharing a key run one at a time through :meth:`reserve`, so a
    duplicate that arrives while the first is still printing waits for its
    outcome instead of printing again.
    """

    def __init__(self, max_entries: int = 200) -> None:
        self.max_entries = max_entries
        self._entries: OrderedDict[str, dict] = OrderedDict()
        self._lock = threading.Lock()
        self._in_flight: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    def get(self, key: Optional[str]) -> Optional[dict]:
        if not key:
            return None
        with self._lock:
            return self._entries.get(key)

    def put(self, key: Optional[str], response: dict) -> None:
        if not key or self.max_entries <= 0:
            return
        with self._lock:
            self._entries[key] = response
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    @asynccontextmanager
    async def reserve(self, key: Optional[str]) -> AsyncIterator[None]:
        """Hold *key* exclusively for the duration of the block.

        Requests without a key are never serialized.
        """
        if not key:
            yield
            return

        lock = self._in_flight.setdefault(key, asyncio.Lock())
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if not self._holders[key]:
                del self._holders[key]
                del self._in_flight[key]

    def in_flight(self) -> int:
        return len(self._in_flight)

    def __len__(self) -> int:
        return len(self._entries)
