from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.sql import func

from ..db import Base


class QuotaCounter(Base):
    __tablename__ = "quota_counters"

    id = Column(Integer, primary_key=True, autoincrement=True)
    vendor = Column(String(32), nullable=False)
    period = Column(String(8), nullable=False)  # day | month
    period_key = Column(String(10), nullable=False)  # YYYY-MM-DD | YYYY-MM
    used_count = Column(Integer, nullable=False, default=0)
    limit = Column(Integer, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("vendor", "period_key", name="uq_quota_vendor_period"),
    )
