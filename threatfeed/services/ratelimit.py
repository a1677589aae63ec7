import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Callable, Dict, Optional

from .. import config

logger = logging.getLogger("threatfeed.ratelimit")


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: int  # epoch milliseconds
    limit: int

    def retry_after(self, now_ms: Optional[int] = None) -> int:
        """Whole seconds until the window resets, never less than 1."""
        now_ms = _now_ms() if now_ms is None else now_ms
        return max(1, -(-(self.reset_at - now_ms) // 1000))


def headers(result: RateLimitResult) -> Dict[str, str]:
    reset = datetime.fromtimestamp(result.reset_at / 1000, tz=timezone.utc)
    return {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": reset.isoformat().replace("+00:00", "Z"),
    }


class RateLimiter:
    """Fixed-window request counter per feed token, held in process memory."""

    def __init__(self, max_requests: int, window_ms: int, enabled: bool = True,
                 clock: Callable[[], int] = _now_ms):
        self.max_requests = max_requests
        self.window_ms = window_ms
        self.enabled = enabled
        self.clock = clock
        self._windows: Dict[str, list] = {}  # token -> [count, reset_at]
        self._lock = Lock()

    def check(self, token: str) -> RateLimitResult:
        now = self.clock()
        if not self.enabled:
            return RateLimitResult(True, self.max_requests, now + self.window_ms, self.max_requests)
        with self._lock:
            window = self._windows.get(token)
            if window is None or now >= window[1]:
                window = [0, now + self.window_ms]
                self._windows[token] = window
            if window[0] >= self.max_requests:
                return RateLimitResult(False, 0, window[1], self.max_requests)
            window[0] += 1
            return RateLimitResult(True, self.max_requests - window[0], window[1], self.max_requests)

    def reset(self, token: Optional[str] = None) -> None:
        with self._lock:
            if token is None:
                self._windows.clear()
            else:
                self._windows.pop(token, None)

    def cleanup(self) -> int:
        """Drop windows that have already expired."""
        now = self.clock()
        with self._lock:
            expired = [token for token, (_, reset_at) in self._windows.items() if now >= reset_at]
            for token in expired:
                del self._windows[token]
        return len(expired)

    def stats(self) -> Dict[str, object]:
        with self._lock:
            tracked = len(self._windows)
        return {
            "backend": "memory",
            "enabled": self.enabled,
            "max_requests": self.max_requests,
            "window_ms": self.window_ms,
            "tracked_tokens": tracked,
        }


class RedisRateLimiter:
    """Same contract as RateLimiter, with windows kept in a shared Redis."""

    def __init__(self, client, max_requests: int, window_ms: int, enabled: bool = True,
                 prefix: str = "rl:feed:", clock: Callable[[], int] = _now_ms):
        self.r = client
        self.max_requests = max_requests
        self.window_ms = window_ms
        self.enabled = enabled
        self.prefix = prefix
        self.clock = clock

    def check(self, token: str) -> RateLimitResult:
        now = self.clock()
        if not self.enabled:
            return RateLimitResult(True, self.max_requests, now + self.window_ms, self.max_requests)
        key = self.prefix + token
        # SET NX PX creates the window with its expiry; INCR keeps the TTL
        p = self.r.pipeline()
        p.set(key, 0, px=self.window_ms, nx=True)
        p.incr(key)
        p.pttl(key)
        _, count, ttl = p.execute()
        count = int(count)
        reset_at = now + (ttl if ttl and ttl > 0 else self.window_ms)
        if count > self.max_requests:
            return RateLimitResult(False, 0, reset_at, self.max_requests)
        return RateLimitResult(True, self.max_requests - count, reset_at, self.max_requests)

    def reset(self, token: Optional[str] = None) -> None:
        if token is not None:
            self.r.delete(self.prefix + token)
            return
        for key in self.r.scan_iter(match=self.prefix + "*"):
            self.r.delete(key)

    def cleanup(self) -> int:
        # Redis expires windows itself
        return 0

    def stats(self) -> Dict[str, object]:
        return {
            "backend": "redis",
            "enabled": self.enabled,
            "max_requests": self.max_requests,
            "window_ms": self.window_ms,
        }


def build_rate_limiter():
    if config.RATE_LIMIT_BACKEND == "redis" and config.REDIS_URL:
        import redis  # type: ignore
        client = redis.Redis.from_url(config.REDIS_URL, decode_responses=True)
        logger.info("Feed rate limiter using redis backend")
        return RedisRateLimiter(client, config.RATE_LIMIT_MAX_REQUESTS, config.RATE_LIMIT_WINDOW_MS,
                                enabled=config.ENABLE_RATE_LIMIT)
    if config.RATE_LIMIT_BACKEND == "redis":
        logger.warning("RATE_LIMIT_BACKEND=redis but REDIS_URL is unset, using memory")
    return RateLimiter(config.RATE_LIMIT_MAX_REQUESTS, config.RATE_LIMIT_WINDOW_MS,
                       enabled=config.ENABLE_RATE_LIMIT)


rate_limiter = build_rate_limiter()
