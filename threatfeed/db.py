"""
Database configuration and session management
"""
import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import DATABASE_URL

logger = logging.getLogger(__name__)


def make_engine(url: str):
    """Create an engine; SQLite needs thread and lock-wait settings."""
    connect_args = {"check_same_thread": False, "timeout": 30} if url.startswith("sqlite") else {}
    kwargs = {"future": True, "connect_args": connect_args}
    if not url.startswith("sqlite"):
        kwargs.update(pool_pre_ping=True, pool_size=10, max_overflow=20)
    return create_engine(url, **kwargs)


engine = make_engine(DATABASE_URL)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)

# Create base class for models
Base = declarative_base()


def init_db(bind=None):
    """Initialize database tables"""
    # Make sure all models are imported so Base.metadata is populated
    from . import models  # noqa: F401
    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database tables created successfully")
