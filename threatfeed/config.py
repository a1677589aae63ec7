"""
Configuration module for the threat feed service
"""

import os
import logging

logger = logging.getLogger("threatfeed.config")


def env_bool(key: str, default: bool = False) -> bool:
    """Get boolean value from environment variable"""
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    value = value.strip().lower()
    if value in ("true", "1", "yes", "on"):
        return True
    if value in ("false", "0", "no", "off"):
        return False
    logger.warning("Invalid boolean for %s=%r, using default %s", key, value, default)
    return default


def env_int(key: str, default: int, minimum: int = None) -> int:
    """Get integer value from environment variable, falling back on bad input"""
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        logger.warning("Invalid integer for %s=%r, using default %s", key, raw, default)
        return default
    if minimum is not None and value < minimum:
        logger.warning("Out of range value for %s=%r, using default %s", key, raw, default)
        return default
    return value


def env_float(key: str, default: float, minimum: float = None) -> float:
    """Get float value from environment variable, falling back on bad input"""
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw.strip())
    except ValueError:
        logger.warning("Invalid number for %s=%r, using default %s", key, raw, default)
        return default
    if minimum is not None and value < minimum:
        logger.warning("Out of range value for %s=%r, using default %s", key, raw, default)
        return default
    return value


API_VERSION = os.getenv("APP_VERSION", "0.3.0")

# Database configuration
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./threatfeed.db")

# Admin API configuration
ADMIN_API_KEY = os.getenv("ADMIN_API_KEY", "TEST_ADMIN_KEY")
API_PREFIX = "/v1"

# Logging configuration
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "json")

# Feed cache configuration
FEED_CACHE_TTL_SEC = env_int("FEED_CACHE_TTL_SEC", 60, minimum=1)
FEED_CACHE_MAX_KEYS = env_int("FEED_CACHE_MAX_KEYS", 100, minimum=1)
ENABLE_FEED_CACHE = env_bool("ENABLE_FEED_CACHE", True)
FEED_CACHE_BACKEND = os.getenv("FEED_CACHE_BACKEND", "memory").lower()

# Rate limit configuration
RATE_LIMIT_MAX_REQUESTS = env_int("RATE_LIMIT_MAX_REQUESTS", 100, minimum=1)
RATE_LIMIT_WINDOW_MS = env_int("RATE_LIMIT_WINDOW_MS", 60000, minimum=1)
ENABLE_RATE_LIMIT = env_bool("ENABLE_RATE_LIMIT", True)
RATE_LIMIT_BACKEND = os.getenv("RATE_LIMIT_BACKEND", "memory").lower()

# Shared key-value store for horizontally scaled deployments
REDIS_URL = os.getenv("REDIS_URL")

# Background sweeps of the feed cache and rate limiter
SWEEP_INTERVAL_SEC = env_float("SWEEP_INTERVAL_SEC", 300.0, minimum=1.0)

# Feed publishing
FEED_PUBLISH_THRESHOLD = env_int("FEED_PUBLISH_THRESHOLD", 70, minimum=0)

# Merge and aggregation
MERGE_MAX_ATTEMPTS = env_int("MERGE_MAX_ATTEMPTS", 8, minimum=1)
AGGREGATOR_PAGE_SIZE = env_int("AGGREGATOR_PAGE_SIZE", 1000, minimum=1)

# Validator scheduling
VALIDATOR_SCHEDULER_ENABLED = env_bool("VALIDATOR_SCHEDULER_ENABLED", False)
VENDOR_HTTP_TIMEOUT_SEC = env_float("VENDOR_HTTP_TIMEOUT_SEC", 20.0, minimum=0.1)
