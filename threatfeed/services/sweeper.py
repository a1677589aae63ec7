import logging
import threading
from typing import Callable, Optional

from .. import config
from .prometheus_metrics import prometheus_metrics

logger = logging.getLogger("threatfeed.sweeper")


class BackgroundSweeper:
    """Periodically drops expired feed cache entries and rate limit windows."""

    def __init__(self, interval_sec: Optional[float] = None,
                 cache_getter: Optional[Callable] = None,
                 limiter_getter: Optional[Callable] = None):
        self.interval_sec = interval_sec or config.SWEEP_INTERVAL_SEC
        # resolved on every pass so swapped singletons are picked up
        self._cache_getter = cache_getter or _current_cache
        self._limiter_getter = limiter_getter or _current_limiter
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def run_once(self) -> dict:
        cache = self._cache_getter()
        swept = cache.sweep()
        cleaned = self._limiter_getter().cleanup()
        size = cache.stats().get("size")
        if size is not None:
            prometheus_metrics.set_feed_cache_entries(size)
        if swept or cleaned:
            logger.info("Sweep removed %d cache entries, %d rate limit windows", swept, cleaned)
        return {"cache_entries": swept, "rate_limit_windows": cleaned}

    def _loop(self):
        while not self._stop.wait(self.interval_sec):
            try:
                self.run_once()
            except Exception:
                logger.exception("Feed sweep failed")

    def start(self):
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="feed-sweeper", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0):
        self._stop.set()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None

    @property
    def running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())


def _current_cache():
    from . import cache
    return cache.feed_cache


def _current_limiter():
    from . import ratelimit
    return ratelimit.rate_limiter
