"""TTL/LRU route cache with coalescing of concurrent computations."""

from __future__ import annotations

import asyncio
import hashlib
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from threading import Lock
from typing import Awaitable, Callable, Sequence

from .models import RouteResult

logger = logging.getLogger(__name__)

DEFAULT_TTL_S = 24 * 60 * 60.0


def fingerprint(waypoints: Sequence, mode: str, precision: int = 5) -> str:
    """Deterministic cache key from rounded waypoints and travel mode.

    Rounding to 5 decimals (about 1.1 m) lets near-duplicate requests share an entry.
    """
    parts = [mode.lower()]
    for p in waypoints:
        parts.append(f"{round(p.latitude, precision):.{precision}f},{round(p.longitude, precision):.{precision}f}")
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()


@dataclass(slots=True)
class _Entry:
    result: RouteResult
    expires_at: float


class RouteCache:
    """In-memory route cache.

    One instance is constructed per process (or per test) and injected into the
    engine. ``get_or_compute`` guarantees at most one running computation per
    fingerprint: concurrent callers await the same task instead of starting their own.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_S,
        max_entries: int | None = 500,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, _Entry] = OrderedDict()
        self._inflight: dict[str, asyncio.Task[RouteResult]] = {}
        self._lock = Lock()
        self._stats = {
            "hits": 0,
            "misses": 0,
            "coalesced": 0,
            "evictions": 0,
        }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def lookup(self, key: str) -> RouteResult | None:
        return self._get(key, record=True)

    def _get(self, key: str, record: bool) -> RouteResult | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.expires_at <= now:
                del self._entries[key]
                entry = None
            if entry is None:
                if record:
                    self._stats["misses"] += 1
                return None
            self._entries.move_to_end(key)
            if record:
                self._stats["hits"] += 1
            return entry.result

    def store(self, key: str, result: RouteResult, ttl_seconds: float | None = None) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        if ttl <= 0:
            return
        with self._lock:
            self._entries[key] = _Entry(result=result, expires_at=self._clock() + ttl)
            self._entries.move_to_end(key)
            if self.max_entries is not None:
                while len(self._entries) > self.max_entries:
                    self._entries.popitem(last=False)
                    self._stats["evictions"] += 1

    def find(self, predicate: Callable[[RouteResult], bool]) -> RouteResult | None:
        """Most recently used live entry matching ``predicate`` (no LRU touch, no stats)."""
        now = self._clock()
        with self._lock:
            for entry in reversed(self._entries.values()):
                if entry.expires_at > now and predicate(entry.result):
                    return entry.result
        return None

    def invalidate(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)

    async def get_or_compute(
        self,
        key: str,
        compute: Callable[[], Awaitable[RouteResult]],
        ttl_for: Callable[[RouteResult], float | None] | None = None,
    ) -> RouteResult:
        """Return the cached result for ``key`` or compute and store it exactly once.

        ``ttl_for`` may pick a TTL per result (``None`` means the cache default).
        Errors raised by ``compute`` reach every waiting caller and nothing is stored.
        """
        cached = self._get(key, record=False)
        if cached is not None:
            return cached

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._compute_and_store(key, compute, ttl_for))
            self._inflight[key] = task
            task.add_done_callback(lambda _t, k=key: self._release(k, _t))
        else:
            self._stats["coalesced"] += 1
            logger.debug("Joining in-flight computation for %s", key[:12])
        # shield: a cancelled waiter must not cancel the shared computation
        return await asyncio.shield(task)

    async def _compute_and_store(self, key, compute, ttl_for) -> RouteResult:
        result = await compute()
        self.store(key, result, ttl_for(result) if ttl_for else None)
        return result

    def _release(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    def stats(self) -> dict[str, int]:
        with self._lock:
            size = len(self._entries)
        return {"size": size, "inflight": len(self._inflight), **self._stats}
