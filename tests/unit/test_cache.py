"""Tests for the response cache."""

from __future__ import annotations

import asyncio

import pytest

from completion_gateway.cache import ResponseCache, make_cache_key


@pytest.mark.unit
class TestMakeCacheKey:
    def test_deterministic(self) -> None:
        assert make_cache_key("hi", "openai", "gpt-4", 0.7) == make_cache_key(
            "hi", "openai", "gpt-4", 0.7
        )

    def test_prompt_trimmed_and_lowercased(self) -> None:
        assert make_cache_key("  Hello World ", "openai", "gpt-4") == make_cache_key(
            "hello world", "openai", "gpt-4"
        )

    def test_temperature_rounded_to_one_decimal(self) -> None:
        assert make_cache_key("x", "openai", "gpt-4", 0.71) == make_cache_key(
            "x", "openai", "gpt-4", 0.7
        )

    def test_missing_temperature_defaults(self) -> None:
        assert make_cache_key("x", "openai", "gpt-4") == make_cache_key(
            "x", "openai", "gpt-4", 0.7
        )

    def test_layout(self) -> None:
        key = make_cache_key("x", "anthropic", "claude-3-haiku", 0.0)
        provider, model, temp, digest = key.split(":")
        assert (provider, model, temp) == ("anthropic", "claude-3-haiku", "0.0")
        assert len(digest) == 64

    @pytest.mark.parametrize(
        ("a", "b"),
        [
            (("x", "openai", "gpt-4", 0.7), ("x", "anthropic", "gpt-4", 0.7)),
            (("x", "openai", "gpt-4", 0.7), ("x", "openai", "gpt-3.5-turbo", 0.7)),
            (("x", "openai", "gpt-4", 0.7), ("x", "openai", "gpt-4", 0.2)),
            (("x", "openai", "gpt-4", 0.7), ("y", "openai", "gpt-4", 0.7)),
        ],
    )
    def test_any_component_changes_key(self, a: tuple, b: tuple) -> None:
        assert make_cache_key(*a) != make_cache_key(*b)


def _set(cache: ResponseCache, prompt: str, cost: float = 0.01, ttl_minutes: float = 60) -> None:
    cache.set(prompt, f"value:{prompt}", "openai", "gpt-4", tokens=10, cost=cost, ttl_minutes=ttl_minutes)


@pytest.mark.unit
class TestResponseCache:
    def test_miss_then_hit(self, clock) -> None:  # type: ignore[no-untyped-def]
        cache = ResponseCache(clock=clock)
        assert cache.get("p", "openai", "gpt-4") is None

        _set(cache, "p", cost=0.0012)
        assert cache.get("p", "openai", "gpt-4") == "value:p"

        stats = cache.stats()
        assert stats.hits == 1
        assert stats.misses == 1
        assert stats.hit_rate == 0.5
        assert stats.total_savings == pytest.approx(0.0012)
        assert stats.entries == 1

    def test_expired_entry_removed_on_get(self, clock) -> None:  # type: ignore[no-untyped-def]
        cache = ResponseCache(clock=clock)
        _set(cache, "p", ttl_minutes=1)

        clock.advance(59)
        assert cache.get("p", "openai", "gpt-4") == "value:p"
        clock.advance(1)
        assert cache.get("p", "openai", "gpt-4") is None
        assert len(cache) == 0
        assert cache.stats().misses == 1

    def test_zero_ttl_never_hits(self, clock) -> None:  # type: ignore[no-untyped-def]
        cache = ResponseCache(clock=clock)
        _set(cache, "p", ttl_minutes=0)
        assert cache.get("p", "openai", "gpt-4") is None

    def test_set_overwrites_and_resets_hits(self, clock) -> None:  # type: ignore[no-untyped-def]
        cache = ResponseCache(clock=clock)
        _set(cache, "p")
        cache.get("p", "openai", "gpt-4")
        cache.set("p", "new", "openai", "gpt-4", tokens=1, cost=0.0, ttl_minutes=60)

        assert len(cache) == 1
        assert cache.get("p", "openai", "gpt-4") == "new"

    def test_evicts_least_hit_first(self, clock) -> None:  # type: ignore[no-untyped-def]
        cache = ResponseCache(max_entries=2, clock=clock)
        _set(cache, "a")
        clock.advance(1)
        _set(cache, "b")
        cache.get("a", "openai", "gpt-4")
        clock.advance(1)
        _set(cache, "c")

        assert len(cache) == 2
        assert cache.has("a", "openai", "gpt-4")
        assert not cache.has("b", "openai", "gpt-4")
        assert cache.has("c", "openai", "gpt-4")

    def test_evicts_oldest_among_equal_hits(self, clock) -> None:  # type: ignore[no-untyped-def]
        cache = ResponseCache(max_entries=2, clock=clock)
        _set(cache, "a")
        clock.advance(1)
        _set(cache, "b")
        clock.advance(1)
        _set(cache, "c")

        assert not cache.has("a", "openai", "gpt-4")
        assert cache.has("b", "openai", "gpt-4")
        assert cache.has("c", "openai", "gpt-4")

    def test_has_does_not_touch_counters(self, clock) -> None:  # type: ignore[no-untyped-def]
        cache = ResponseCache(clock=clock)
        _set(cache, "p")
        assert cache.has("p", "openai", "gpt-4")
        assert not cache.has("q", "openai", "gpt-4")
        stats = cache.stats()
        assert (stats.hits, stats.misses) == (0, 0)

    def test_delete(self, clock) -> None:  # type: ignore[no-untyped-def]
        cache = ResponseCache(clock=clock)
        _set(cache, "p")
        assert cache.delete("p", "openai", "gpt-4") is True
        assert cache.delete("p", "openai", "gpt-4") is False

    def test_clear_resets_stats(self, clock) -> None:  # type: ignore[no-untyped-def]
        cache = ResponseCache(clock=clock)
        _set(cache, "p")
        cache.get("p", "openai", "gpt-4")
        cache.clear()

        stats = cache.stats()
        assert stats.entries == 0
        assert stats.hits == 0
        assert stats.total_savings == 0.0

    def test_clear_expired(self, clock) -> None:  # type: ignore[no-untyped-def]
        cache = ResponseCache(clock=clock)
        _set(cache, "short", ttl_minutes=1)
        _set(cache, "long", ttl_minutes=10)
        clock.advance(120)

        assert cache.clear_expired() == 1
        assert cache.has("long", "openai", "gpt-4")

    def test_empty_stats(self) -> None:
        stats = ResponseCache().stats()
        assert stats.hit_rate == 0.0
        assert stats.entries == 0

    @pytest.mark.asyncio
    async def test_sweep_removes_expired_entries(self, clock) -> None:  # type: ignore[no-untyped-def]
        cache = ResponseCache(sweep_interval_seconds=0.01, clock=clock)
        _set(cache, "p", ttl_minutes=1)
        clock.advance(61)

        cache.start()
        try:
            for _ in range(100):
                if len(cache) == 0:
                    break
                await asyncio.sleep(0.01)
        finally:
            await cache.close()

        assert len(cache) == 0
