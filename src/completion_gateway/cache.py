"""In-memory response cache with TTL expiry and hit-count based eviction."""

from __future__ import annotations

import hashlib
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from completion_gateway.maintenance import PeriodicTask
from completion_gateway.types import CacheStats

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.7


def make_cache_key(
    prompt: str,
    provider: str,
    model: str,
    temperature: float | None = None,
) -> str:
    """Derive the cache key for a request.

    Prompts are trimmed and lowercased and temperatures rounded to one
    decimal, so near-identical requests share an entry.
    """
    normalized = prompt.strip().lower()
    temp = DEFAULT_TEMPERATURE if temperature is None else temperature
    digest = hashlib.sha256(normalized.encode("utf-8")).hexdigest()
    return f"{provider}:{model}:{temp:.1f}:{digest}"


@dataclass
class CacheEntry:
    """A cached provider response."""

    key: str
    value: Any
    provider: str
    model: str
    tokens: int
    cost: float
    created_at: float
    expires_at: float
    hit_count: int = 0


class ResponseCache:
    """Bounded, TTL-expiring store of prior completion responses.

    Safe to share across concurrent callers; every public operation takes
    an internal lock for the duration of its map mutation only.
    """

    def __init__(
        self,
        max_entries: int = 1000,
        sweep_interval_seconds: float = 60.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._max_entries = max_entries
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._total_savings = 0.0
        self._sweeper = PeriodicTask(
            "response-cache-sweep", self.clear_expired, sweep_interval_seconds
        )

    def get(
        self,
        prompt: str,
        provider: str,
        model: str,
        temperature: float | None = None,
    ) -> Any | None:
        """Return the cached value, or None on a miss.

        An expired entry is removed before the miss is reported.
        """
        key = make_cache_key(prompt, provider, model, temperature)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            if self._clock() >= entry.expires_at:
                del self._entries[key]
                self._misses += 1
                return None

            entry.hit_count += 1
            self._hits += 1
            self._total_savings += entry.cost
            return entry.value

    def set(
        self,
        prompt: str,
        value: Any,
        provider: str,
        model: str,
        tokens: int,
        cost: float,
        ttl_minutes: float,
        temperature: float | None = None,
    ) -> None:
        """Insert or overwrite an entry, then evict down to ``max_entries``."""
        key = make_cache_key(prompt, provider, model, temperature)
        now = self._clock()
        entry = CacheEntry(
            key=key,
            value=value,
            provider=provider,
            model=model,
            tokens=tokens,
            cost=cost,
            created_at=now,
            expires_at=now + ttl_minutes * 60,
        )
        with self._lock:
            self._entries[key] = entry
            evicted = self._evict_locked()
        if evicted:
            logger.debug("Evicted %d cache entries over capacity", evicted)

    def has(
        self,
        prompt: str,
        provider: str,
        model: str,
        temperature: float | None = None,
    ) -> bool:
        """Check for a live entry without touching hit/miss counters."""
        key = make_cache_key(prompt, provider, model, temperature)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False
            if self._clock() >= entry.expires_at:
                del self._entries[key]
                return False
            return True

    def delete(
        self,
        prompt: str,
        provider: str,
        model: str,
        temperature: float | None = None,
    ) -> bool:
        key = make_cache_key(prompt, provider, model, temperature)
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        """Drop every entry and reset statistics."""
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0
            self._total_savings = 0.0

    def clear_expired(self) -> int:
        """Remove all expired entries. Returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if now >= e.expires_at]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("Cleared %d expired cache entries", len(expired))
        return len(expired)

    def stats(self) -> CacheStats:
        with self._lock:
            total = self._hits + self._misses
            hit_rate = self._hits / total if total > 0 else 0.0
            return CacheStats(
                entries=len(self._entries),
                hits=self._hits,
                misses=self._misses,
                hit_rate=round(hit_rate, 2),
                total_savings=round(self._total_savings, 4),
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def start(self) -> None:
        """Start the periodic expiry sweep."""
        self._sweeper.start()

    async def close(self) -> None:
        """Stop the periodic expiry sweep."""
        await self._sweeper.stop()

    def _evict_locked(self) -> int:
        overflow = len(self._entries) - self._max_entries
        if overflow <= 0:
            return 0
        # Least-hit first, oldest first within equal hit counts.
        victims = sorted(
            self._entries.values(), key=lambda e: (e.hit_count, e.created_at)
        )[:overflow]
        for entry in victims:
            del self._entries[entry.key]
        return overflow
