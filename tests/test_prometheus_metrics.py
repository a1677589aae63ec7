"""
Tests for Prometheus metrics functionality
"""

from threatfeed.services.prometheus_metrics import PrometheusMetrics, prometheus_metrics


class TestPrometheusMetrics:
    """Test the PrometheusMetrics class."""

    def test_prometheus_metrics_initialization(self):
        """Test Prometheus metrics initializes correctly."""
        metrics = PrometheusMetrics()
        assert metrics is not None

    def test_validator_counters(self):
        """Test validator run and indicator counters."""
        metrics = PrometheusMetrics()
        metrics.increment_validator_run("otx", "completed")
        metrics.increment_validator_indicators("otx", "validated", 5)
        metrics.increment_validator_indicators("otx", "failed", 0)
        metrics.observe_validator_run("otx", 12.5)

    def test_vendor_call_status_classes(self):
        """Test vendor calls are bucketed by status class."""
        metrics = PrometheusMetrics()
        metrics.increment_vendor_call("virustotal", 200)
        metrics.increment_vendor_call("virustotal", 503)
        metrics.increment_vendor_call("virustotal", None)

        text = metrics.get_metrics().decode("utf-8")
        assert 'status_class="2xx"' in text
        assert 'status_class="5xx"' in text
        assert 'status_class="error"' in text

    def test_feed_metrics(self):
        """Test feed request, cache and rate limit metrics."""
        metrics = PrometheusMetrics()
        metrics.increment_feed_request(200)
        metrics.increment_feed_request(429)
        metrics.record_feed_cache(True)
        metrics.record_feed_cache(False)
        metrics.increment_rate_limited()
        metrics.set_feed_cache_entries(3)

    def test_merge_metrics(self):
        """Test merge retry and conflict counters."""
        metrics = PrometheusMetrics()
        metrics.increment_merge_retry("stale")
        metrics.increment_merge_conflict()
        metrics.set_quota_remaining("ipqs", 120)

    def test_get_metrics(self):
        """Test metrics retrieval."""
        metrics = PrometheusMetrics()
        metrics_data = metrics.get_metrics()

        assert isinstance(metrics_data, bytes)
        text = metrics_data.decode('utf-8')
        assert '# HELP' in text
        assert '# TYPE' in text
        assert 'threatfeed_build_info' in text

    def test_get_content_type(self):
        """Test content type retrieval."""
        content_type = prometheus_metrics.get_content_type()
        assert 'text/plain' in content_type
