"""
Prometheus metrics for the threat feed service
"""

from prometheus_client import Counter, Gauge, Histogram, generate_latest, CONTENT_TYPE_LATEST

from ..config import API_VERSION

# Build info
BUILD_INFO = Gauge(
    'threatfeed_build_info',
    'Build information',
    ['version']
)

# Validator runs
VALIDATOR_RUNS_TOTAL = Counter(
    'threatfeed_validator_runs_total',
    'Total number of validator runs',
    ['vendor', 'status']
)

VALIDATOR_INDICATORS_TOTAL = Counter(
    'threatfeed_validator_indicators_total',
    'Indicators processed by validators',
    ['vendor', 'outcome']
)

VENDOR_API_CALLS_TOTAL = Counter(
    'threatfeed_vendor_api_calls_total',
    'External vendor API calls',
    ['vendor', 'status_class']
)

VALIDATOR_RUN_SECONDS = Histogram(
    'threatfeed_validator_run_seconds',
    'Validator run duration in seconds',
    ['vendor'],
    buckets=[1, 5, 15, 60, 300, 900, 3600]
)

QUOTA_REMAINING = Gauge(
    'threatfeed_quota_remaining',
    'Remaining vendor calls in the current quota period',
    ['vendor']
)

# Merger
MERGE_RETRIES_TOTAL = Counter(
    'threatfeed_merge_retries_total',
    'Merge attempts retried after a concurrent write',
    ['reason']
)

MERGE_CONFLICTS_TOTAL = Counter(
    'threatfeed_merge_conflicts_total',
    'Merges that gave up after bounded retries'
)

# Feed serving
FEED_REQUESTS_TOTAL = Counter(
    'threatfeed_feed_requests_total',
    'Feed requests by response status',
    ['status']
)

FEED_CACHE_HITS_TOTAL = Counter(
    'threatfeed_feed_cache_hits_total',
    'Feed cache hits'
)

FEED_CACHE_MISSES_TOTAL = Counter(
    'threatfeed_feed_cache_misses_total',
    'Feed cache misses'
)

FEED_RATE_LIMITED_TOTAL = Counter(
    'threatfeed_feed_rate_limited_total',
    'Feed requests rejected by the rate limiter'
)

FEED_CACHE_ENTRIES = Gauge(
    'threatfeed_feed_cache_entries',
    'Entries currently held by the feed cache'
)


class PrometheusMetrics:
    """Thin wrapper so call sites do not touch metric objects directly."""

    def __init__(self):
        BUILD_INFO.labels(version=API_VERSION).set(1)

    def increment_validator_run(self, vendor: str, status: str):
        VALIDATOR_RUNS_TOTAL.labels(vendor=vendor, status=status).inc()

    def increment_validator_indicators(self, vendor: str, outcome: str, count: int = 1):
        if count:
            VALIDATOR_INDICATORS_TOTAL.labels(vendor=vendor, outcome=outcome).inc(count)

    def increment_vendor_call(self, vendor: str, status_code: int = None):
        if status_code is None:
            status_class = "error"
        else:
            status_class = f"{status_code // 100}xx"
        VENDOR_API_CALLS_TOTAL.labels(vendor=vendor, status_class=status_class).inc()

    def observe_validator_run(self, vendor: str, seconds: float):
        VALIDATOR_RUN_SECONDS.labels(vendor=vendor).observe(seconds)

    def set_quota_remaining(self, vendor: str, remaining: int):
        QUOTA_REMAINING.labels(vendor=vendor).set(remaining)

    def increment_merge_retry(self, reason: str):
        MERGE_RETRIES_TOTAL.labels(reason=reason).inc()

    def increment_merge_conflict(self):
        MERGE_CONFLICTS_TOTAL.inc()

    def increment_feed_request(self, status: int):
        FEED_REQUESTS_TOTAL.labels(status=str(status)).inc()

    def record_feed_cache(self, hit: bool):
        if hit:
            FEED_CACHE_HITS_TOTAL.inc()
        else:
            FEED_CACHE_MISSES_TOTAL.inc()

    def increment_rate_limited(self):
        FEED_RATE_LIMITED_TOTAL.inc()

    def set_feed_cache_entries(self, count: int):
        FEED_CACHE_ENTRIES.set(count)

    def get_metrics(self) -> bytes:
        """Get Prometheus metrics in text format."""
        return generate_latest()

    def get_content_type(self) -> str:
        """Get the content type for Prometheus metrics."""
        return CONTENT_TYPE_LATEST


# Global metrics instance
prometheus_metrics = PrometheusMetrics()
