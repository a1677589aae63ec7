"""
Tests for the feed body cache
"""

from unittest.mock import MagicMock

from threatfeed.services.cache import FeedCache, RedisFeedCache, generate_key


class Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestGenerateKey:
    def test_key_is_order_independent(self):
        assert generate_key({"type": "ipv4", "format": "txt"}) == "format:txt|type:ipv4"
        assert generate_key({"format": "txt", "type": "ipv4"}) == "format:txt|type:ipv4"


class TestFeedCache:
    """In-memory LRU with TTL."""

    def test_set_and_get(self):
        cache = FeedCache(10, 60, clock=Clock())
        cache.set("k", "body")
        assert cache.get("k") == "body"
        assert cache.hits == 1

    def test_miss_counts(self):
        cache = FeedCache(10, 60, clock=Clock())
        assert cache.get("absent") is None
        assert cache.misses == 1

    def test_lru_eviction(self):
        """Test the least recently read key goes first."""
        cache = FeedCache(2, 60, clock=Clock())
        cache.set("a", "A")
        cache.set("b", "B")
        cache.get("a")
        cache.set("c", "C")

        assert cache.get("b") is None
        assert cache.get("a") == "A"
        assert cache.get("c") == "C"
        assert cache.evictions == 1
        assert len(cache) == 2

    def test_expired_entry_removed_on_read(self):
        clock = Clock()
        cache = FeedCache(10, 60, clock=clock)
        cache.set("k", "body")
        clock.now += 60

        assert cache.get("k") is None
        assert len(cache) == 0

    def test_per_entry_ttl(self):
        clock = Clock()
        cache = FeedCache(10, 60, clock=clock)
        cache.set("short", "s", ttl_seconds=5)
        cache.set("long", "l")
        clock.now += 10

        assert cache.get("short") is None
        assert cache.get("long") == "l"

    def test_explicit_zero_ttl_is_not_the_default(self):
        cache = FeedCache(10, 60, clock=Clock())
        cache.set("k", "body", ttl_seconds=0)
        assert cache.get("k") is None

    def test_sweep(self):
        clock = Clock()
        cache = FeedCache(10, 60, clock=clock)
        cache.set("old", "o")
        clock.now += 30
        cache.set("new", "n")
        clock.now += 40

        assert cache.sweep() == 1
        assert len(cache) == 1

    def test_invalidate(self):
        cache = FeedCache(10, 60, clock=Clock())
        cache.set("a", "A")
        cache.set("b", "B")

        assert cache.invalidate("a") is True
        assert cache.invalidate("a") is False
        assert cache.invalidate_all() == 1
        assert len(cache) == 0

    def test_disabled_cache_never_stores(self):
        cache = FeedCache(10, 60, enabled=False, clock=Clock())
        cache.set("k", "body")
        assert cache.get("k") is None
        assert cache.stats()["size"] == 0


class TestRedisFeedCache:
    def test_set_uses_millisecond_ttl(self):
        client = MagicMock()
        cache = RedisFeedCache(client, 60)
        cache.set("format:txt|type:ipv4", "body")
        client.set.assert_called_once_with("feed:format:txt|type:ipv4", "body", px=60000)

    def test_get_counts_hits_and_misses(self):
        client = MagicMock()
        client.get.side_effect = [None, "body"]
        cache = RedisFeedCache(client, 60)

        assert cache.get("k") is None
        assert cache.get("k") == "body"
        assert (cache.hits, cache.misses) == (1, 1)

    def test_zero_ttl_is_not_stored(self):
        client = MagicMock()
        cache = RedisFeedCache(client, 60)
        cache.set("k", "body", ttl_seconds=0)
        client.set.assert_not_called()

        cache.set("k", "body", ttl_seconds=2.5)
        client.set.assert_called_once_with("feed:k", "body", px=2500)
