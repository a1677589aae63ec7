from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String

from ..db import Base
from ..utils.clock import utcnow


class FeedToken(Base):
    __tablename__ = "feed_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    token = Column(String(64), unique=True, index=True, nullable=False)
    enabled = Column(Boolean, nullable=False, default=True)
    type = Column(String(16), nullable=True)  # restricts the token to one feed type when set
    customer_id = Column(String(64), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class FeedAccessLog(Base):
    __tablename__ = "feed_access_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    token = Column(String(64), nullable=False)
    kind = Column(String(16), nullable=False)
    ip = Column(String(64), nullable=True)
    ua = Column(String(512), nullable=True)
    accessed_at = Column(DateTime, nullable=False)

    __table_args__ = (
        Index("idx_feed_access_token_time", "token", "accessed_at"),
    )
