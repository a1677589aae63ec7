"""
Feed rendering: published indicators -> serialized body, through the feed cache
"""

import logging
from typing import Optional, Tuple

from .. import config
from . import serializers, store
from .cache import generate_key
from .prometheus_metrics import prometheus_metrics

logger = logging.getLogger("threatfeed.feed")

FEED_FORMATS = ("txt", "csv", "json")


def build_body(feed_type: str, fmt: str, threshold: Optional[int] = None,
               session_factory=None) -> str:
    kind = store.FEED_TYPES[feed_type]
    threshold = config.FEED_PUBLISH_THRESHOLD if threshold is None else threshold
    if fmt == "txt":
        indicators = store.get_feed_indicators(kind, threshold, session_factory=session_factory)
        return serializers.serialize_to_text(indicators)
    rows = store.get_feed_rows(kind, threshold, session_factory=session_factory)
    if fmt == "csv":
        return serializers.serialize_to_csv(rows)
    if fmt == "json":
        return serializers.serialize_to_json({"type": feed_type, "count": len(rows), "indicators": rows})
    raise ValueError(f"Unsupported format: {fmt}")


def render_feed(feed_type: str, fmt: str, cache, session_factory=None) -> Tuple[str, bool]:
    """Return ``(body, cache_hit)`` for one feed variant."""
    key = generate_key({"type": feed_type, "format": fmt})
    body = cache.get(key)
    if body is not None:
        prometheus_metrics.record_feed_cache(True)
        return body, True
    prometheus_metrics.record_feed_cache(False)
    body = build_body(feed_type, fmt, session_factory=session_factory)
    cache.set(key, body)
    logger.debug("Rendered %s feed as %s (%d bytes)", feed_type, fmt, len(body))
    return body, False
