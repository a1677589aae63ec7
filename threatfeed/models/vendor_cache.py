from sqlalchemy import JSON, Column, DateTime, Float, Index, Integer, String, UniqueConstraint

from ..db import Base


class VendorCacheEntry(Base):
    __tablename__ = "vendor_cache"

    id = Column(Integer, primary_key=True, autoincrement=True)
    vendor = Column(String(32), nullable=False)
    indicator = Column(String(255), nullable=False)
    kind = Column(String(16), nullable=False)
    score = Column(Float, nullable=True)
    verdict = Column(String(32), nullable=True)
    raw_payload = Column(JSON, nullable=True)
    checked_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("vendor", "indicator", "kind", name="uq_vendor_cache_entry"),
        Index("idx_vendor_cache_expires", "vendor", "expires_at"),
    )
