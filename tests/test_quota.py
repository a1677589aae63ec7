"""
Tests for the per-vendor quota manager
"""

import threading
from datetime import datetime

import pytest

from threatfeed.services.quota import QuotaManager, period_key
from threatfeed.vendors import VendorSettings


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


def _manager(session_factory, clock, limit=10, period="day"):
    return QuotaManager(
        session_factory=session_factory,
        clock=clock,
        settings_loader=lambda name: VendorSettings(name, quota_limit=limit, quota_period=period),
    )


class TestPeriodKey:
    def test_daily_and_monthly_keys(self):
        now = datetime(2024, 3, 9, 23, 59)
        assert period_key("day", now) == "2024-03-09"
        assert period_key("month", now) == "2024-03"


class TestQuotaManager:
    """Quota counters backed by the database."""

    def test_fresh_vendor_has_full_quota(self, session_factory):
        """Test a vendor with no counter row has its whole limit."""
        manager = _manager(session_factory, FakeClock(datetime(2024, 3, 9, 12)))
        assert manager.remaining("otx") == 10

    def test_increment_reduces_remaining(self, session_factory):
        """Test increments are subtracted from the limit."""
        manager = _manager(session_factory, FakeClock(datetime(2024, 3, 9, 12)))
        manager.increment("otx", 3)
        manager.increment("otx", 2)
        assert manager.remaining("otx") == 5

    def test_remaining_never_negative(self, session_factory):
        """Test over-use clamps remaining at 0."""
        manager = _manager(session_factory, FakeClock(datetime(2024, 3, 9, 12)), limit=2)
        manager.increment("otx", 5)
        assert manager.remaining("otx") == 0

    def test_negative_increment_rejected(self, session_factory):
        """Test a negative increment is a ValueError."""
        manager = _manager(session_factory, FakeClock(datetime(2024, 3, 9, 12)))
        with pytest.raises(ValueError):
            manager.increment("otx", -1)

    def test_zero_increment_is_noop(self, session_factory):
        """Test n=0 writes nothing."""
        manager = _manager(session_factory, FakeClock(datetime(2024, 3, 9, 12)))
        manager.increment("otx", 0)
        assert manager.usage("otx")["used"] == 0

    def test_new_day_resets(self, session_factory):
        """Test a daily quota starts over in the next UTC day."""
        clock = FakeClock(datetime(2024, 3, 9, 23, 59))
        manager = _manager(session_factory, clock)
        manager.increment("otx", 10)
        assert manager.remaining("otx") == 0

        clock.now = datetime(2024, 3, 10, 0, 1)
        assert manager.remaining("otx") == 10

    def test_monthly_quota_spans_days(self, session_factory):
        """Test a monthly quota keeps counting across days in the same month."""
        clock = FakeClock(datetime(2024, 3, 1, 8))
        manager = _manager(session_factory, clock, period="month")
        manager.increment("ipqs", 4)
        clock.now = datetime(2024, 3, 28, 8)
        assert manager.remaining("ipqs") == 6
        clock.now = datetime(2024, 4, 1, 0, 0)
        assert manager.remaining("ipqs") == 10

    def test_usage_report(self, session_factory):
        """Test the usage dict shape."""
        manager = _manager(session_factory, FakeClock(datetime(2024, 3, 9, 12)))
        manager.increment("virustotal", 4)
        usage = manager.usage("virustotal")
        assert usage == {
            "vendor": "virustotal",
            "period": "day",
            "period_key": "2024-03-09",
            "used": 4,
            "limit": 10,
            "remaining": 6,
        }

    def test_cleanup_stale_periods(self, session_factory):
        """Test counters from past periods are removed, the current one kept."""
        clock = FakeClock(datetime(2024, 3, 8, 12))
        manager = _manager(session_factory, clock)
        manager.increment("otx", 1)
        clock.now = datetime(2024, 3, 9, 12)
        manager.increment("otx", 2)

        assert manager.cleanup_stale_periods() == 1
        assert manager.usage("otx")["used"] == 2

    def test_concurrent_increments_are_not_lost(self, session_factory):
        """Test parallel writers all land on the same counter."""
        manager = _manager(session_factory, FakeClock(datetime(2024, 3, 9, 12)), limit=1000)
        manager.increment("otx", 1)

        def worker():
            for _ in range(5):
                manager.increment("otx", 1)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert manager.usage("otx")["used"] == 41
