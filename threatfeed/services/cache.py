"""
Cache of serialized feed bodies, keyed by the request parameters
"""

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, Mapping, Optional

from .. import config

logger = logging.getLogger("threatfeed.cache")


def generate_key(params: Mapping[str, object]) -> str:
    """Stable key from request parameters: sorted ``k:v`` pairs joined by ``|``."""
    return "|".join(f"{k}:{params[k]}" for k in sorted(params))


@dataclass
class FeedCacheEntry:
    key: str
    body: str
    created_at: float
    ttl: float

    def expired(self, now: float) -> bool:
        return now - self.created_at >= self.ttl


class FeedCache:
    """LRU map with a TTL per entry; reads refresh recency and drop stale entries."""

    def __init__(self, max_keys: int, ttl_seconds: float, enabled: bool = True,
                 clock: Callable[[], float] = time.monotonic):
        self.max_keys = max_keys
        self.ttl_seconds = ttl_seconds
        self.enabled = enabled
        self.clock = clock
        self._entries: "OrderedDict[str, FeedCacheEntry]" = OrderedDict()
        self._lock = Lock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def get(self, key: str) -> Optional[str]:
        if not self.enabled:
            return None
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            if entry.expired(self.clock()):
                del self._entries[key]
                self.misses += 1
                return None
            self._entries.move_to_end(key)
            self.hits += 1
            return entry.body

    def set(self, key: str, body: str, ttl_seconds: Optional[float] = None) -> None:
        if not self.enabled:
            return
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        entry = FeedCacheEntry(key, body, self.clock(), ttl)
        with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)
            self._entries[key] = entry
            while len(self._entries) > self.max_keys:
                evicted, _ = self._entries.popitem(last=False)
                self.evictions += 1
                logger.debug("Evicted feed cache entry %s", evicted)

    def invalidate(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def invalidate_all(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        return count

    def sweep(self) -> int:
        """Remove every expired entry; returns how many were dropped."""
        now = self.clock()
        with self._lock:
            expired = [k for k, entry in self._entries.items() if entry.expired(now)]
            for k in expired:
                del self._entries[k]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> Dict[str, object]:
        with self._lock:
            size = len(self._entries)
        return {
            "backend": "memory",
            "enabled": self.enabled,
            "size": size,
            "max_keys": self.max_keys,
            "ttl_seconds": self.ttl_seconds,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
        }


class RedisFeedCache:
    """Shared-backend variant: Redis handles TTL, so there is nothing to sweep."""

    def __init__(self, client, ttl_seconds: float, enabled: bool = True, prefix: str = "feed:"):
        self.r = client
        self.ttl_seconds = ttl_seconds
        self.enabled = enabled
        self.prefix = prefix
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[str]:
        if not self.enabled:
            return None
        body = self.r.get(self.prefix + key)
        if body is None:
            self.misses += 1
            return None
        self.hits += 1
        return body

    def set(self, key: str, body: str, ttl_seconds: Optional[float] = None) -> None:
        if not self.enabled:
            return
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        ttl_ms = int(ttl * 1000)
        if ttl_ms <= 0:
            # nothing to serve; Redis rejects PX 0
            return
        self.r.set(self.prefix + key, body, px=ttl_ms)

    def invalidate(self, key: str) -> bool:
        return bool(self.r.delete(self.prefix + key))

    def invalidate_all(self) -> int:
        count = 0
        for key in self.r.scan_iter(match=self.prefix + "*"):
            count += self.r.delete(key)
        return count

    def sweep(self) -> int:
        return 0

    def stats(self) -> Dict[str, object]:
        return {
            "backend": "redis",
            "enabled": self.enabled,
            "ttl_seconds": self.ttl_seconds,
            "hits": self.hits,
            "misses": self.misses,
        }


def build_feed_cache():
    if config.FEED_CACHE_BACKEND == "redis" and config.REDIS_URL:
        import redis  # type: ignore
        client = redis.Redis.from_url(config.REDIS_URL, decode_responses=True)
        logger.info("Feed cache using redis backend")
        return RedisFeedCache(client, config.FEED_CACHE_TTL_SEC, enabled=config.ENABLE_FEED_CACHE)
    if config.FEED_CACHE_BACKEND == "redis":
        logger.warning("FEED_CACHE_BACKEND=redis but REDIS_URL is unset, using memory")
    return FeedCache(config.FEED_CACHE_MAX_KEYS, config.FEED_CACHE_TTL_SEC,
                     enabled=config.ENABLE_FEED_CACHE)


feed_cache = build_feed_cache()
