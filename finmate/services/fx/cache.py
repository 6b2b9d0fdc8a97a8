"""
TTL cache for exchange rates.

DESIGN DECISION: The cache is an object the caller owns and injects, not a
module global. Tests build a fresh one (with a fake clock) per case and never
need to patch imports.

Two windows apply to each entry:
- fresh: served as-is, no refetch
- evict: after this the entry is gone; between fresh and evict a stale value
  is still returned if the refresh fails

Concurrent readers of the same key share one in-flight fetch.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional


@dataclass(frozen=True)
class CachedRate:
    value: float
    fetched_at: float


class RateCache:
    """Memoizes rates by currency-pair key."""

    def __init__(
        self,
        fresh_seconds: float = 5 * 60,
        evict_seconds: float = 30 * 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        if evict_seconds < fresh_seconds:
            raise ValueError("evict_seconds must be >= fresh_seconds")
        self._fresh = fresh_seconds
        self._evict = evict_seconds
        self._clock = clock
        self._entries: dict[str, CachedRate] = {}
        self._inflight: dict[str, asyncio.Task] = {}

    def _evict_expired(self, now: float) -> None:
        expired = [
            key for key, entry in self._entries.items()
            if now - entry.fetched_at >= self._evict
        ]
        for key in expired:
            del self._entries[key]

    def peek(self, key: str) -> Optional[float]:
        """Cached value (fresh or stale), without fetching."""
        self._evict_expired(self._clock())
        entry = self._entries.get(key)
        return entry.value if entry else None

    def clear(self) -> None:
        self._entries.clear()

    async def get_or_fetch(
        self,
        key: str,
        fetch: Callable[[], Awaitable[float]],
    ) -> float:
        """
        Return the cached rate for ``key``, fetching it when not fresh.

        Raises whatever ``fetch`` raises when there is no stale value to fall
        back on.
        """
        now = self._clock()
        self._evict_expired(now)
        entry = self._entries.get(key)
        if entry is not None and now - entry.fetched_at < self._fresh:
            return entry.value

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._refresh(key, fetch))
            self._inflight[key] = task

        try:
            return await asyncio.shield(task)
        except Exception:
            if entry is not None and key in self._entries:
                return entry.value
            raise

    async def _refresh(
        self,
        key: str,
        fetch: Callable[[], Awaitable[float]],
    ) -> float:
        try:
            value = await fetch()
            self._entries[key] = CachedRate(value=value, fetched_at=self._clock())
            return value
        finally:
            self._inflight.pop(key, None)
