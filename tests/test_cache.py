"""Tests for the result cache and its freshness helpers."""

import pytest

from mask_queue.queue import CropRect, ResultCache, fresh_entry, is_fresh

CROP = CropRect(x1=0, y1=0, x2=10, y2=10)
TTL = 86400


class TestResultCache:
    """Storage and oldest-write eviction."""

    def test_set_and_get(self, clock):
        cache = ResultCache(clock=clock)
        entry = cache.set("k1", "mask-1", CROP)

        assert cache.get("k1") is entry
        assert entry.written_at == clock()
        assert "k1" in cache
        assert cache.get("missing") is None

    def test_evicts_oldest_write_not_least_read(self, clock):
        cache = ResultCache(capacity=2, clock=clock)
        cache.set("a", "mask-a", CROP)
        clock.advance(1)
        cache.set("b", "mask-b", CROP)

        # Reading "a" does not protect it
        for _ in range(3):
            cache.get("a")

        clock.advance(1)
        cache.set("c", "mask-c", CROP)

        assert "a" not in cache
        assert "b" in cache and "c" in cache
        assert len(cache) == 2

    def test_overwrite_refreshes_written_at(self, clock):
        cache = ResultCache(capacity=2, clock=clock)
        cache.set("a", "mask-a", CROP)
        clock.advance(1)
        cache.set("b", "mask-b", CROP)
        clock.advance(1)
        cache.set("a", "mask-a2", CROP)

        clock.advance(1)
        cache.set("c", "mask-c", CROP)

        assert "b" not in cache
        assert cache.get("a").mask == "mask-a2"

    def test_equal_timestamps_evict_first_written(self, clock):
        cache = ResultCache(capacity=2, clock=clock)
        cache.set("a", "mask-a", CROP)
        cache.set("b", "mask-b", CROP)
        cache.set("c", "mask-c", CROP)

        assert list(k for k in ("a", "b", "c") if k in cache) == ["b", "c"]

    def test_clear(self, clock):
        cache = ResultCache(clock=clock)
        cache.set("a", "mask-a", CROP)
        cache.clear()
        assert len(cache) == 0

    @pytest.mark.parametrize("capacity", [0, -1])
    def test_invalid_capacity(self, capacity):
        with pytest.raises(ValueError):
            ResultCache(capacity=capacity)


class TestFreshness:
    """TTL is enforced by the caller, not the cache."""

    def test_stale_entry_still_returned_by_get(self, clock):
        cache = ResultCache(clock=clock)
        cache.set("k", "mask", CROP)
        clock.advance(TTL + 1)

        assert cache.get("k") is not None
        assert fresh_entry(cache, "k", TTL, clock()) is None

    def test_fresh_entry_within_ttl(self, clock):
        cache = ResultCache(clock=clock)
        cache.set("k", "mask", CROP)
        clock.advance(TTL - 1)

        assert fresh_entry(cache, "k", TTL, clock()).mask == "mask"

    def test_entry_at_exact_ttl_is_stale(self, clock):
        cache = ResultCache(clock=clock)
        entry = cache.set("k", "mask", CROP)
        clock.advance(TTL)

        assert not is_fresh(entry, TTL, clock())

    def test_missing_key(self, clock):
        cache = ResultCache(clock=clock)
        assert fresh_entry(cache, "nope", TTL, clock()) is None
