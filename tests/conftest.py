# tests/conftest.py
import os
import tempfile

# Point the module-level engine at a throwaway file before threatfeed is imported
os.environ.setdefault("DATABASE_URL", f"sqlite:///{tempfile.mkdtemp()}/threatfeed-test.db")
os.environ.setdefault("LOG_FORMAT", "text")

import pytest
from sqlalchemy.orm import sessionmaker

from threatfeed import config
from threatfeed.db import init_db, make_engine
from threatfeed.deps import get_feed_cache, get_rate_limiter, get_session_factory
from threatfeed.services.cache import FeedCache
from threatfeed.services.ratelimit import RateLimiter


@pytest.fixture
def session_factory(tmp_path):
    """Fresh SQLite database per test, shared by every thread that uses it."""
    engine = make_engine(f"sqlite:///{tmp_path / 'threatfeed.db'}")
    init_db(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def feed_cache():
    return FeedCache(max_keys=10, ttl_seconds=60)


@pytest.fixture
def rate_limiter():
    return RateLimiter(max_requests=3, window_ms=60000)


@pytest.fixture
def client(session_factory, feed_cache, rate_limiter):
    """
    TestClient wired to the per-test database, cache and limiter.
    Used without a context manager so the lifespan (sweeper, scheduler) stays off.
    """
    from fastapi.testclient import TestClient
    from threatfeed.main import app

    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_feed_cache] = lambda: feed_cache
    app.dependency_overrides[get_rate_limiter] = lambda: rate_limiter
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {config.ADMIN_API_KEY}"}
