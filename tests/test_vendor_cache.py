"""
Tests for the durable vendor result cache
"""

from datetime import datetime, timedelta

from threatfeed.services.vendor_cache import VendorCache


class Clock:
    def __init__(self):
        self.now = datetime(2024, 5, 1, 12, 0)

    def __call__(self):
        return self.now


class TestVendorCache:
    def test_put_then_get(self, session_factory):
        clock = Clock()
        cache = VendorCache("otx", 3600, session_factory=session_factory, clock=clock)
        cache.put("1.2.3.4", "ipv4", 72.0, "malicious", {"fields": {"otx_verdict": "malicious"}})

        entry = cache.get("1.2.3.4", "ipv4")
        assert entry is not None
        assert entry.score == 72.0
        assert entry.verdict == "malicious"
        assert entry.raw_payload["fields"]["otx_verdict"] == "malicious"

    def test_entries_are_per_vendor_and_kind(self, session_factory):
        clock = Clock()
        otx = VendorCache("otx", 3600, session_factory=session_factory, clock=clock)
        vt = VendorCache("virustotal", 3600, session_factory=session_factory, clock=clock)
        otx.put("example.com", "domain", 10.0)

        assert vt.get("example.com", "domain") is None
        assert otx.get("example.com", "ipv4") is None

    def test_expired_entry_is_a_miss(self, session_factory):
        """Test an entry past its TTL is not returned."""
        clock = Clock()
        cache = VendorCache("otx", 60, session_factory=session_factory, clock=clock)
        cache.put("1.2.3.4", "ipv4", 50.0)

        clock.now += timedelta(seconds=59)
        assert cache.get("1.2.3.4", "ipv4") is not None
        clock.now += timedelta(seconds=1)
        assert cache.get("1.2.3.4", "ipv4") is None

    def test_put_overwrites(self, session_factory):
        """Test a second put replaces the score and refreshes expiry."""
        clock = Clock()
        cache = VendorCache("otx", 60, session_factory=session_factory, clock=clock)
        cache.put("1.2.3.4", "ipv4", 50.0)
        clock.now += timedelta(seconds=50)
        cache.put("1.2.3.4", "ipv4", 80.0)
        clock.now += timedelta(seconds=50)

        entry = cache.get("1.2.3.4", "ipv4")
        assert entry is not None
        assert entry.score == 80.0

    def test_zero_ttl_disables_cache(self, session_factory):
        cache = VendorCache("otx", 0, session_factory=session_factory, clock=Clock())
        cache.put("1.2.3.4", "ipv4", 50.0)
        assert cache.get("1.2.3.4", "ipv4") is None

    def test_cleanup_expired(self, session_factory):
        """Test cleanup only deletes this vendor's stale rows."""
        clock = Clock()
        otx = VendorCache("otx", 60, session_factory=session_factory, clock=clock)
        vt = VendorCache("virustotal", 60, session_factory=session_factory, clock=clock)
        otx.put("1.1.1.1", "ipv4", 1.0)
        vt.put("1.1.1.1", "ipv4", 1.0)
        clock.now += timedelta(seconds=30)
        otx.put("2.2.2.2", "ipv4", 1.0)
        clock.now += timedelta(seconds=45)

        assert otx.cleanup_expired() == 1
        assert otx.get("2.2.2.2", "ipv4") is not None
        assert vt.cleanup_expired() == 1
