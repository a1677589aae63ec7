"""
Tests for candidate aggregation and the raw indicator store
"""

import pytest

from threatfeed.services import aggregator, merger, store


def _raw(session_factory, rows):
    return store.add_raw_indicators(
        [{"indicator": i, "kind": k, "source": s} for i, k, s in rows],
        session_factory=session_factory,
    )


class TestNormalization:
    def test_ipv4_is_trimmed(self):
        assert store.normalize_indicator(" 8.8.8.8 ", "ipv4") == "8.8.8.8"

    def test_domain_is_lowercased_without_trailing_dot(self):
        assert store.normalize_indicator("Example.COM.", "domain") == "example.com"

    @pytest.mark.parametrize("value,kind", [
        ("not-an-ip", "ipv4"),
        ("300.1.1.1", "ipv4"),
        ("", "domain"),
        ("localhost", "domain"),
        ("http://x.com/path", "domain"),
        ("1.2.3.4", "url"),
    ])
    def test_invalid_values_rejected(self, value, kind):
        with pytest.raises(ValueError):
            store.normalize_indicator(value, kind)


class TestRawIndicators:
    def test_invalid_rows_are_skipped(self, session_factory):
        """Test bad rows are dropped while the rest of the batch lands."""
        written = _raw(session_factory, [
            ("1.2.3.4", "ipv4", "feed_a"),
            ("garbage", "ipv4", "feed_a"),
            ("evil.example", "domain", "feed_b"),
        ])
        assert written == 2

    def test_duplicate_rows_upsert(self, session_factory):
        """Test a repeated (indicator, kind, source) stays a single source."""
        _raw(session_factory, [("1.2.3.4", "ipv4", "feed_a"), ("1.2.3.4", "ipv4", "feed_a")])
        candidates = aggregator.get_candidates("ipv4", session_factory=session_factory)
        assert len(candidates) == 1
        assert candidates[0].source_count == 1


class TestCandidateAggregation:
    """Grouping raw rows into candidates."""

    def test_sources_are_counted_per_indicator(self, session_factory):
        _raw(session_factory, [
            ("1.1.1.1", "ipv4", "feed_c"),
            ("1.1.1.1", "ipv4", "feed_a"),
            ("1.1.1.1", "ipv4", "feed_b"),
            ("2.2.2.2", "ipv4", "feed_a"),
            ("evil.example", "domain", "feed_a"),
        ])
        candidates = aggregator.get_candidates("ipv4", session_factory=session_factory)
        assert [c.indicator for c in candidates] == ["1.1.1.1", "2.2.2.2"]
        assert candidates[0].sources == ["feed_a", "feed_b", "feed_c"]
        assert candidates[0].source_count == 3
        assert candidates[1].source_count == 1

    def test_groups_split_across_pages(self, session_factory):
        """Test an indicator whose sources straddle a page boundary is counted once."""
        _raw(session_factory, [
            ("1.1.1.1", "ipv4", "feed_a"),
            ("1.1.1.1", "ipv4", "feed_b"),
            ("1.1.1.1", "ipv4", "feed_c"),
            ("2.2.2.2", "ipv4", "feed_a"),
            ("3.3.3.3", "ipv4", "feed_a"),
        ])
        for page_size in (1, 2, 3, 4, 100):
            candidates = aggregator.get_candidates("ipv4", page_size=page_size,
                                                   session_factory=session_factory)
            assert [(c.indicator, c.source_count) for c in candidates] == [
                ("1.1.1.1", 3), ("2.2.2.2", 1), ("3.3.3.3", 1),
            ], page_size

    def test_limit(self, session_factory):
        _raw(session_factory, [(f"10.0.0.{i}", "ipv4", "feed_a") for i in range(1, 6)])
        candidates = aggregator.get_candidates("ipv4", limit=2, page_size=2,
                                               session_factory=session_factory)
        assert len(candidates) == 2

    def test_tombstoned_rows_are_excluded(self, session_factory):
        """Test a removed source no longer counts, and re-adding restores it."""
        _raw(session_factory, [("1.1.1.1", "ipv4", "feed_a"), ("1.1.1.1", "ipv4", "feed_b")])
        assert store.tombstone_raw_indicator("1.1.1.1", "ipv4", "feed_b", session_factory=session_factory)

        candidates = aggregator.get_candidates("ipv4", session_factory=session_factory)
        assert candidates[0].source_count == 1

        _raw(session_factory, [("1.1.1.1", "ipv4", "feed_b")])
        candidates = aggregator.get_candidates("ipv4", session_factory=session_factory)
        assert candidates[0].source_count == 2

    def test_empty_store(self, session_factory):
        assert aggregator.get_candidates("domain", session_factory=session_factory) == []


class TestSelectCandidates:
    """Per-vendor candidate selection."""

    def test_checked_indicators_are_skipped(self, session_factory):
        _raw(session_factory, [("1.1.1.1", "ipv4", "feed_a"), ("2.2.2.2", "ipv4", "feed_a")])
        merger.merge_validator_result("1.1.1.1", "ipv4", "otx", 10, {"otx_checked": True},
                                      source_count=1, session_factory=session_factory)

        selected = aggregator.select_candidates("ipv4", "otx", 10, session_factory=session_factory)
        assert [c.indicator for c in selected] == ["2.2.2.2"]

        other = aggregator.select_candidates("ipv4", "virustotal", 10, session_factory=session_factory)
        assert [c.indicator for c in other] == ["1.1.1.1", "2.2.2.2"]

    def test_recheck_includes_checked(self, session_factory):
        _raw(session_factory, [("1.1.1.1", "ipv4", "feed_a")])
        merger.merge_validator_result("1.1.1.1", "ipv4", "otx", 10, {"otx_checked": True},
                                      source_count=1, session_factory=session_factory)
        selected = aggregator.select_candidates("ipv4", "otx", 10, recheck=True,
                                                session_factory=session_factory)
        assert [c.indicator for c in selected] == ["1.1.1.1"]

    def test_new_sources_make_checked_indicator_eligible(self, session_factory):
        """Test an indicator that gained sources after its check is selected again."""
        _raw(session_factory, [("1.1.1.1", "ipv4", "feed_a"), ("2.2.2.2", "ipv4", "feed_a")])
        for indicator in ("1.1.1.1", "2.2.2.2"):
            merger.merge_validator_result(indicator, "ipv4", "otx", 10, {"otx_checked": True},
                                          source_count=1, session_factory=session_factory)
        assert aggregator.select_candidates("ipv4", "otx", 10, session_factory=session_factory) == []

        _raw(session_factory, [("2.2.2.2", "ipv4", "feed_b")])
        selected = aggregator.select_candidates("ipv4", "otx", 10, session_factory=session_factory)
        assert [(c.indicator, c.source_count) for c in selected] == [("2.2.2.2", 2)]

    def test_limit_across_pages(self, session_factory):
        _raw(session_factory, [(f"10.0.0.{i}", "ipv4", "feed_a") for i in range(1, 8)])
        selected = aggregator.select_candidates("ipv4", "otx", 3, page_size=2,
                                                session_factory=session_factory)
        assert len(selected) == 3

    def test_unknown_vendor(self, session_factory):
        with pytest.raises(ValueError):
            aggregator.select_candidates("ipv4", "shodan", 10, session_factory=session_factory)


class TestStoreDelegates:
    def test_store_candidates_and_merge(self, session_factory):
        """Test the store entry points reach the aggregator and the merger."""
        _raw(session_factory, [("1.1.1.1", "ipv4", "feed_a"), ("1.1.1.1", "ipv4", "feed_b")])
        candidates = store.get_candidates("ipv4", session_factory=session_factory)
        assert [(c.indicator, c.source_count) for c in candidates] == [("1.1.1.1", 2)]

        row = store.merge_validator_result("1.1.1.1", "ipv4", "otx", 30, {"otx_checked": True},
                                           source_count=candidates[0].source_count,
                                           session_factory=session_factory)
        assert row.confidence == 75
        assert store.get_feed_indicators("ipv4", 70, session_factory=session_factory) == ["1.1.1.1"]
        assert store.get_feed_indicators("ipv4", 80, session_factory=session_factory) == []
