"""
Request-scoped dependencies shared by the routers
"""

from . import db
from .services import cache, ratelimit


def get_session_factory():
    return db.SessionLocal


def get_feed_cache():
    return cache.feed_cache


def get_rate_limiter():
    return ratelimit.rate_limiter
