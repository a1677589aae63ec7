"""
Tests for the validator scheduler and the feed sweeper
"""

import threading

from threatfeed.errors import AuthError
from threatfeed.scheduler import WHITELIST_INTERVAL_SEC, ValidatorScheduler
from threatfeed.services.cache import FeedCache
from threatfeed.services.ratelimit import RateLimiter
from threatfeed.services.sweeper import BackgroundSweeper


class TestValidatorScheduler:
    def test_run_once_passes_session_factory(self):
        calls = []
        scheduler = ValidatorScheduler(names=["otx"], session_factory="sf",
                                       runner=lambda name, **kw: calls.append((name, kw)) or "done")
        assert scheduler.run_once("otx") == "done"
        assert calls == [("otx", {"session_factory": "sf"})]

    def test_run_once_contains_failures(self):
        def auth_fails(name, **kw):
            raise AuthError(name)

        def crashes(name, **kw):
            raise RuntimeError("boom")

        assert ValidatorScheduler(runner=auth_fails).run_once("otx") is None
        assert ValidatorScheduler(runner=crashes).run_once("otx") is None

    def test_intervals(self, monkeypatch):
        monkeypatch.setenv("OTX_INTERVAL_SEC", "120")
        monkeypatch.setenv("IPQS_ENABLED", "false")
        scheduler = ValidatorScheduler()
        assert scheduler._interval("otx") == 120
        assert scheduler._interval("ipqs") is None
        assert scheduler._interval("whitelist") == WHITELIST_INTERVAL_SEC

    def test_start_runs_immediately_and_stops(self, monkeypatch):
        monkeypatch.delenv("URLSCAN_ENABLED", raising=False)
        ran = threading.Event()

        def runner(name, **kw):
            ran.set()

        scheduler = ValidatorScheduler(names=["urlscan"], runner=runner)
        scheduler.start()
        try:
            assert ran.wait(5)
            assert scheduler.scheduled == ["urlscan"]
        finally:
            scheduler.stop()
        assert scheduler.scheduled == []

    def test_disabled_vendor_not_started(self, monkeypatch):
        monkeypatch.setenv("HONEYDB_ENABLED", "false")
        scheduler = ValidatorScheduler(names=["honeydb"], runner=lambda name, **kw: None)
        scheduler.start()
        assert scheduler.scheduled == []
        scheduler.stop()


class TestBackgroundSweeper:
    def test_run_once_cleans_cache_and_limiter(self):
        now = {"s": 100.0, "ms": 100_000}
        cache = FeedCache(10, 60, clock=lambda: now["s"])
        limiter = RateLimiter(3, 1000, clock=lambda: now["ms"])
        cache.set("k", "body")
        limiter.check("tok")
        now["s"] += 61
        now["ms"] += 1001

        sweeper = BackgroundSweeper(interval_sec=1, cache_getter=lambda: cache,
                                    limiter_getter=lambda: limiter)
        assert sweeper.run_once() == {"cache_entries": 1, "rate_limit_windows": 1}
        assert len(cache) == 0

    def test_start_stop(self):
        sweeper = BackgroundSweeper(interval_sec=60, cache_getter=lambda: FeedCache(1, 1),
                                    limiter_getter=lambda: RateLimiter(1, 1))
        sweeper.start()
        assert sweeper.running
        sweeper.stop()
        assert not sweeper.running
